"""Allocation CSV import.

Expected columns: ``teamName, epicName, epicType, sprintNumber, percentage,
quarter``. Rows with ``epicType`` of ``Run Work`` allocate to a run-work
category instead of an epic.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from planpulse.common.dto.models import (
    AllocationRecord,
    CycleRecord,
    EpicRecord,
    RunWorkCategoryRecord,
    TeamRecord,
)
from .csv_utils import first_value, float_or_none, int_or_default, read_rows
from .matching import DEFAULT_FUZZY_CUTOFF, find_best_match, not_found

logger = logging.getLogger(__name__)

RUN_WORK = "run work"
IMPORT_NOTE = "Imported from CSV"


class AllocationImportRow(BaseModel):
    team_name: str
    epic_name: str
    epic_type: str = ""
    sprint_number: int = 1
    percentage: float = 0.0
    quarter: str = ""

    @property
    def is_run_work(self) -> bool:
        return self.epic_type.strip().lower() == RUN_WORK


class ResolvedAllocationRow(BaseModel):
    row_number: int
    source: AllocationImportRow
    team_id: str
    cycle_id: str
    epic_id: Optional[str] = None
    run_work_category_id: Optional[str] = None


class AllocationValidation(BaseModel):
    valid: List[ResolvedAllocationRow] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def parse_allocation_csv(text: str) -> List[AllocationImportRow]:
    """Parse allocation rows, dropping rows without a team or epic name.

    Unparseable sprint numbers become 1 and unparseable percentages 0.
    """
    rows = []
    for raw in read_rows(text):
        team_name = first_value(raw, "teamName", "team")
        epic_name = first_value(raw, "epicName", "epic", "work")
        if not team_name or not epic_name:
            continue
        sprint = int_or_default(first_value(raw, "sprintNumber", "sprint", "iteration"), 1)
        rows.append(
            AllocationImportRow(
                team_name=team_name,
                epic_name=epic_name,
                epic_type=first_value(raw, "epicType", "type"),
                sprint_number=sprint if sprint >= 1 else 1,
                percentage=float_or_none(first_value(raw, "percentage", "percent", "allocation")) or 0.0,
                quarter=first_value(raw, "quarter", "cycle"),
            )
        )
    return rows


def validate_allocation_import(
    rows: Sequence[AllocationImportRow],
    teams: Sequence[TeamRecord],
    epics: Sequence[EpicRecord],
    run_work_categories: Sequence[RunWorkCategoryRecord],
    cycles: Sequence[CycleRecord],
    cutoff: float = DEFAULT_FUZZY_CUTOFF,
) -> AllocationValidation:
    """Resolve names to ids, collecting one ``Row N: ...`` error per bad row.

    Row numbers count the header as row 1. Quarters must match a quarterly
    cycle name exactly (ignoring case); other names may match fuzzily, which
    adds a warning.
    """
    result = AllocationValidation()
    team_pairs = [(t.name, t) for t in teams]
    epic_pairs = [(e.name, e) for e in epics]
    category_pairs = [(c.name, c) for c in run_work_categories]
    quarter_pairs = [(c.name, c) for c in cycles if c.type == "quarterly"]

    for index, row in enumerate(rows):
        row_number = index + 2
        problems: List[str] = []
        notes: List[str] = []

        team = find_best_match(row.team_name, team_pairs, cutoff)
        if team is None:
            problems.append(not_found("Team", row.team_name, [name for name, _ in team_pairs]))
        elif team.is_fuzzy:
            notes.append(team.warning("Team"))

        quarter = find_best_match(row.quarter, quarter_pairs, exact_only=True)
        if quarter is None:
            problems.append(f'Quarter "{row.quarter}" not found')

        epic = category = None
        if row.is_run_work:
            category = find_best_match(row.epic_name, category_pairs, cutoff)
            if category is None:
                problems.append(not_found("Run work category", row.epic_name, [n for n, _ in category_pairs]))
            elif category.is_fuzzy:
                notes.append(category.warning("Run work category"))
        else:
            epic = find_best_match(row.epic_name, epic_pairs, cutoff)
            if epic is None:
                problems.append(not_found("Epic", row.epic_name, [n for n, _ in epic_pairs]))
            elif epic.is_fuzzy:
                notes.append(epic.warning("Epic"))

        if not 1 <= row.percentage <= 100:
            problems.append(f"Invalid percentage {row.percentage:g}. Must be between 1-100")

        if problems:
            result.errors.append(f"Row {row_number}: {'; '.join(problems)}")
            continue
        result.warnings.extend(f"Row {row_number}: {note}" for note in notes)
        result.valid.append(
            ResolvedAllocationRow(
                row_number=row_number,
                source=row,
                team_id=team.item.id,
                cycle_id=quarter.item.id,
                epic_id=epic.item.id if epic else None,
                run_work_category_id=category.item.id if category else None,
            )
        )

    logger.info(
        "Validated %d allocation row(s): %d valid, %d error(s), %d warning(s)",
        len(rows),
        len(result.valid),
        len(result.errors),
        len(result.warnings),
    )
    return result


def _import_id() -> str:
    return f"imported-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def to_allocation(row: ResolvedAllocationRow) -> AllocationRecord:
    return AllocationRecord(
        id=_import_id(),
        team_id=row.team_id,
        cycle_id=row.cycle_id,
        iteration_number=row.source.sprint_number,
        epic_id=row.epic_id,
        run_work_category_id=row.run_work_category_id,
        percentage=row.source.percentage,
        notes=IMPORT_NOTE,
    )


def convert_import_to_allocations(
    rows: Sequence[AllocationImportRow],
    teams: Sequence[TeamRecord],
    epics: Sequence[EpicRecord],
    run_work_categories: Sequence[RunWorkCategoryRecord],
    cycles: Sequence[CycleRecord],
    cutoff: float = DEFAULT_FUZZY_CUTOFF,
) -> List[AllocationRecord]:
    """Allocations for every row that resolves; unresolvable rows are skipped."""
    validation = validate_allocation_import(rows, teams, epics, run_work_categories, cycles, cutoff)
    return [to_allocation(row) for row in validation.valid]
