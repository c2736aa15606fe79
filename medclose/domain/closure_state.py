from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from medclose.domain.constants import ClosureState
from medclose.domain.errors import ValidationFailureError


@dataclass(frozen=True, slots=True)
class ClosureRecord:
    id: int
    hospital_id: int
    period_start_calc: date
    period_end_calc: date
    period_start: date
    period_end: date
    is_adjusted: bool
    adjust_reason: str | None = None

    @property
    def state(self) -> ClosureState:
        return closure_state(
            self.period_start_calc, self.period_end_calc, self.period_start, self.period_end
        )


@dataclass(frozen=True, slots=True)
class GroupStatusRecord:
    id: int
    closure_id: int
    group_id: int | None
    is_consolidated: bool
    consolidated_at: datetime | None = None


def is_adjusted(calc_start: date, calc_end: date, start: date, end: date) -> bool:
    return start != calc_start or end != calc_end


def closure_state(calc_start: date, calc_end: date, start: date, end: date) -> ClosureState:
    if is_adjusted(calc_start, calc_end, start, end):
        return ClosureState.ADJUSTED
    return ClosureState.CALCULATED


def validate_effective_period(start: date | None, end: date | None) -> tuple[date, date]:
    # a one-day period (start == end) is allowed
    if start is None or end is None:
        raise ValidationFailureError("Las fechas de inicio y fin son requeridas")
    if start > end:
        raise ValidationFailureError("La fecha de inicio no puede ser posterior a la fecha de fin")
    return start, end


def normalize_reason(reason: str | None) -> str | None:
    if reason is None:
        return None
    return reason.strip() or None


def missing_group_ids(
    wanted: list[int | None] | set[int | None], existing: set[int | None]
) -> list[int | None]:
    """Groups lacking a status row; the ungrouped bucket (None) is always wanted."""
    ordered: list[int | None] = []
    for group_id in [*wanted, None]:
        if group_id in existing or group_id in ordered:
            continue
        ordered.append(group_id)
    return ordered
