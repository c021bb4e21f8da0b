"""Planning cycle generation: quarters of a financial year and their iterations."""

from __future__ import annotations

import calendar
import re
from datetime import date, timedelta
from typing import Iterable, List, Optional

from planpulse.common.dto.models import CycleRecord
from planpulse.common.storage.repository import generate_id

ITERATION_NUMBER_RE = re.compile(r"(\d+)\s*$")


def add_months(value: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def generate_quarters(fy_start: date) -> List[CycleRecord]:
    """Four consecutive quarters starting at ``fy_start``.

    Quarters are named ``Q{n} {year}`` after the financial year's start year.
    Each one ends the day before the next begins. The first quarter is
    ``active``, the others ``planning``.
    """
    quarters = []
    for index in range(4):
        start = add_months(fy_start, index * 3)
        end = add_months(fy_start, (index + 1) * 3) - timedelta(days=1)
        quarters.append(
            CycleRecord(
                id=generate_id("cycle"),
                name=f"Q{index + 1} {fy_start.year}",
                type="quarterly",
                start_date=start,
                end_date=end,
                status="active" if index == 0 else "planning",
            )
        )
    return quarters


def _iteration_end(start: date, iteration_length: str) -> date:
    if iteration_length == "monthly":
        return add_months(start, 1) - timedelta(days=1)
    if iteration_length == "6-weekly":
        return start + timedelta(weeks=6) - timedelta(days=1)
    return start + timedelta(weeks=2) - timedelta(days=1)


def generate_iterations(quarter: CycleRecord, iteration_length: str = "fortnightly") -> List[CycleRecord]:
    """Split a quarter into iterations of ``iteration_length``.

    The final iteration is clamped to the quarter end and may be short.
    """
    if quarter.type != "quarterly":
        raise ValueError(f"Cycle '{quarter.name}' is not a quarter")

    iterations = []
    current = quarter.start_date
    number = 1
    while current <= quarter.end_date:
        end = min(_iteration_end(current, iteration_length), quarter.end_date)
        iterations.append(
            CycleRecord(
                id=generate_id("cycle"),
                name=f"{quarter.name} - Iteration {number}",
                type="iteration",
                start_date=current,
                end_date=end,
                parent_cycle_id=quarter.id,
                status="planning",
            )
        )
        current = end + timedelta(days=1)
        number += 1
    return iterations


def iteration_number_from_name(name: str) -> Optional[int]:
    """Trailing integer of an iteration name, e.g. ``Q1 2025 - Iteration 3`` -> 3."""
    match = ITERATION_NUMBER_RE.search(name or "")
    return int(match.group(1)) if match else None


def iterations_for(cycles: Iterable[CycleRecord], quarter_id: str) -> List[CycleRecord]:
    """Iteration cycles under a quarter, in date order."""
    children = [c for c in cycles if c.type == "iteration" and c.parent_cycle_id == quarter_id]
    return sorted(children, key=lambda c: c.start_date)


def find_iteration(cycles: Iterable[CycleRecord], quarter_id: str, iteration_number: int) -> Optional[CycleRecord]:
    """Iteration cycle for an allocation's (quarter, iteration number).

    Named iterations are matched by their trailing number, otherwise by position.
    """
    children = iterations_for(cycles, quarter_id)
    for child in children:
        if iteration_number_from_name(child.name) == iteration_number:
            return child
    if 1 <= iteration_number <= len(children):
        return children[iteration_number - 1]
    return None


def find_current_cycle(cycles: Iterable[CycleRecord], cycle_type: str, today: Optional[date] = None) -> Optional[CycleRecord]:
    today = today or date.today()
    for cycle in cycles:
        if cycle.type == cycle_type and cycle.start_date <= today <= cycle.end_date:
            return cycle
    return None


def get_current_iteration(cycles: Iterable[CycleRecord], today: Optional[date] = None) -> Optional[dict]:
    """Current quarter and iteration with the iteration's 1-based number."""
    cycles = list(cycles)
    today = today or date.today()
    quarter = find_current_cycle(cycles, "quarterly", today)
    if quarter is None:
        return None
    for index, iteration in enumerate(iterations_for(cycles, quarter.id), start=1):
        if iteration.start_date <= today <= iteration.end_date:
            return {
                "quarter": quarter,
                "iteration": iteration,
                "iteration_number": iteration_number_from_name(iteration.name) or index,
            }
    return {"quarter": quarter, "iteration": None, "iteration_number": None}


def cycle_days(cycle: CycleRecord) -> int:
    """Whole days from a cycle's start date to its end date."""
    return max((cycle.end_date - cycle.start_date).days, 0)
