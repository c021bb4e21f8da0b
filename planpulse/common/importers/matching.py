"""Name reconciliation between CSV values and existing records."""

from __future__ import annotations

import difflib
import re
from typing import Generic, Iterable, List, Literal, Optional, Tuple, TypeVar

from pydantic import BaseModel

DEFAULT_FUZZY_CUTOFF = 0.9
SUGGESTION_CUTOFF = 0.6

T = TypeVar("T")

_PUNCTUATION = re.compile(r"[^a-z0-9]+")


def normalize_name(name: str) -> str:
    """Lowercase and drop punctuation/whitespace, e.g. ``Front-end Team`` -> ``frontendteam``."""
    return _PUNCTUATION.sub("", name.lower())


class NameMatch(BaseModel, Generic[T]):
    query: str
    matched_name: str
    kind: Literal["exact", "normalized", "fuzzy"]
    score: float
    item: T

    @property
    def is_fuzzy(self) -> bool:
        return self.kind == "fuzzy"

    def warning(self, label: str) -> Optional[str]:
        if not self.is_fuzzy:
            return None
        return f'{label} "{self.query}" matched to "{self.matched_name}" ({self.score:.0%} similar)'


def find_best_match(
    name: str,
    candidates: Iterable[Tuple[str, T]],
    cutoff: float = DEFAULT_FUZZY_CUTOFF,
    exact_only: bool = False,
) -> Optional[NameMatch[T]]:
    """Match ``name`` against ``(candidate_name, item)`` pairs.

    Tries a case-insensitive exact match, then a punctuation-insensitive
    match, then the closest ``difflib`` ratio at or above ``cutoff``. With
    ``exact_only`` only the first of these is tried.
    """
    query = name.strip()
    if not query:
        return None
    pairs = [(candidate.strip(), item) for candidate, item in candidates if candidate]

    lowered = query.lower()
    for candidate, item in pairs:
        if candidate.lower() == lowered:
            return NameMatch(query=query, matched_name=candidate, kind="exact", score=1.0, item=item)
    if exact_only:
        return None

    normalized = normalize_name(query)
    if normalized:
        for candidate, item in pairs:
            if normalize_name(candidate) == normalized:
                return NameMatch(query=query, matched_name=candidate, kind="normalized", score=1.0, item=item)

    best: Optional[NameMatch[T]] = None
    for candidate, item in pairs:
        score = difflib.SequenceMatcher(None, lowered, candidate.lower()).ratio()
        if score >= cutoff and (best is None or score > best.score):
            best = NameMatch(query=query, matched_name=candidate, kind="fuzzy", score=score, item=item)
    return best


def suggest(name: str, candidates: Iterable[str], limit: int = 3) -> List[str]:
    """Close candidate names for "Did you mean" hints."""
    options = {candidate.lower(): candidate for candidate in candidates if candidate}
    close = difflib.get_close_matches(name.strip().lower(), list(options), n=limit, cutoff=SUGGESTION_CUTOFF)
    return [options[key] for key in close]


def not_found(label: str, name: str, candidates: Iterable[str]) -> str:
    message = f'{label} "{name}" not found'
    hints = suggest(name, candidates)
    if hints:
        message += f". Did you mean: {', '.join(hints)}?"
    return message
