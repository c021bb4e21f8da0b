"""CSV reading/writing helpers shared by the importers and exporters."""

from __future__ import annotations

import csv
import io
import logging
import math
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

_HEADER_NOISE = re.compile(r"[^a-z0-9]")


def normalize_header(header: str) -> str:
    """``teamName``, ``team_name`` and ``Team Name`` all become ``teamname``."""
    return _HEADER_NOISE.sub("", header.strip().lower())


def parse_csv(text: str) -> List[List[str]]:
    """Split CSV text into rows of stripped cells, skipping blank lines."""
    if not text or not text.strip():
        return []
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")), skipinitialspace=True)
    rows = []
    for row in reader:
        cells = [cell.strip() for cell in row]
        if any(cells):
            rows.append(cells)
    return rows


def read_rows(text: str) -> List[Dict[str, str]]:
    """Return data rows keyed by normalized header.

    Missing trailing cells read as empty strings.
    """
    rows = parse_csv(text)
    if not rows:
        return []
    headers = [normalize_header(h) for h in rows[0]]
    result = []
    for row in rows[1:]:
        padded = list(row) + [""] * (len(headers) - len(row))
        result.append({header: padded[i] for i, header in enumerate(headers) if header})
    return result


def first_value(row: Dict[str, str], *keys: str) -> str:
    """First non-empty value among normalized ``keys``."""
    for key in keys:
        value = row.get(normalize_header(key))
        if value:
            return value
    return ""


def str_or_none(value: Optional[str]) -> Optional[str]:
    """Convert empty strings to None."""
    if value is None:
        return None
    value = str(value).strip()
    return value if value else None


def float_or_none(value: Optional[str]) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    cleaned = str(value).strip().replace(",", "").lstrip("$£€")
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def int_or_default(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return default


def date_or_none(value: Optional[str]) -> Optional[date]:
    """Parse ISO dates (a trailing time part is ignored)."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        logger.warning("Failed to parse date value: %s", text)
        return None


def write_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """Render rows as CSV text, quoting only where needed."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if value is None else _cell(value) for value in row])
    return buffer.getvalue()


def _cell(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
