"""Monthly closing periods derived from a hospital's closing day.

A period runs from one closing through the day before the next one, so
consecutive periods are contiguous. Two month-end policies are supported:

* ``CLAMP`` pins a closing day past the month's length to its last day.
* ``ROLLOVER`` applies plain date rollover (day 31 of April is May 1st), which
  is what historical closures were keyed with. A rolled closing still belongs
  to the month it was computed for.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from medclose.domain.constants import MonthEndPolicy
from medclose.domain.errors import ValidationFailureError
from medclose.domain.naive_clock import format_date

PERIOD_END_TIME = time(23, 59, 59, 999000)


@dataclass(frozen=True, slots=True)
class ClosingPeriod:
    start: date
    end: date

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.start, time(0, 0, 0))

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.end, PERIOD_END_TIME)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True, slots=True)
class HospitalCycle:
    hospital_id: int
    hospital_name: str
    closing_day: int | None


@dataclass(frozen=True, slots=True)
class ClosingInfo:
    hospital_id: int
    hospital_name: str
    closing_date: date
    closing_day: int
    period: ClosingPeriod
    is_past: bool

    @property
    def key(self) -> str:
        return f"{self.hospital_id}-{format_date(self.closing_date)}"


@dataclass(frozen=True, slots=True)
class ClosingSchedule:
    upcoming: list[ClosingInfo] = field(default_factory=list)
    past: list[ClosingInfo] = field(default_factory=list)


def validate_closing_day(closing_day: int) -> int:
    if isinstance(closing_day, bool) or not isinstance(closing_day, int) or not 1 <= closing_day <= 31:
        raise ValidationFailureError(f"El día de cierre debe estar entre 1 y 31: {closing_day!r}")
    return closing_day


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _rolled_day(year: int, month: int, day: int) -> date:
    # day 0 is the last day of the previous month, overflow spills forward
    return date(year, month, 1) + timedelta(days=day - 1)


def closing_in_month(
    year: int, month: int, closing_day: int, policy: MonthEndPolicy = MonthEndPolicy.CLAMP
) -> date:
    validate_closing_day(closing_day)
    if policy is MonthEndPolicy.ROLLOVER:
        return _rolled_day(year, month, closing_day)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(closing_day, last_day))


def _closing_month(closing_date: date, closing_day: int, policy: MonthEndPolicy) -> tuple[int, int]:
    # a rolled-over closing belongs to the month before the one it lands in
    prev_year, prev_month = _shift_month(closing_date.year, closing_date.month, -1)
    if policy is MonthEndPolicy.ROLLOVER and _rolled_day(prev_year, prev_month, closing_day) == closing_date:
        return prev_year, prev_month
    return closing_date.year, closing_date.month


def next_closing(
    reference: date, closing_day: int, policy: MonthEndPolicy = MonthEndPolicy.CLAMP
) -> date:
    """Earliest closing date on or after ``reference``."""
    year, month = _shift_month(reference.year, reference.month, -1)
    while True:
        candidate = closing_in_month(year, month, closing_day, policy)
        if candidate >= reference:
            return candidate
        year, month = _shift_month(year, month, 1)


def previous_closing(
    closing_date: date, closing_day: int, policy: MonthEndPolicy = MonthEndPolicy.CLAMP
) -> date:
    year, month = _closing_month(closing_date, closing_day, policy)
    year, month = _shift_month(year, month, -1)
    return closing_in_month(year, month, closing_day, policy)


def period_for(
    closing_date: date, closing_day: int, policy: MonthEndPolicy = MonthEndPolicy.CLAMP
) -> ClosingPeriod:
    """``[previous closing, closing - 1 day]`` for the closing ``closing_date`` falls on.

    A date that is not a closing is read as the closing of its own month.
    """
    validate_closing_day(closing_day)
    year, month = _closing_month(closing_date, closing_day, policy)
    this_closing = closing_in_month(year, month, closing_day, policy)
    start = previous_closing(this_closing, closing_day, policy)
    return ClosingPeriod(start=start, end=this_closing - timedelta(days=1))


def enumerate_closings(
    from_date: date,
    to_date: date,
    closing_day: int,
    *,
    descending: bool = False,
    policy: MonthEndPolicy = MonthEndPolicy.CLAMP,
) -> list[date]:
    validate_closing_day(closing_day)
    if from_date > to_date:
        return []
    # start one month early: a rolled-over closing can land in from_date's month
    year, month = _shift_month(from_date.year, from_date.month, -1)
    closings: list[date] = []
    while (year, month) <= (to_date.year, to_date.month):
        candidate = closing_in_month(year, month, closing_day, policy)
        if from_date <= candidate <= to_date and (not closings or closings[-1] != candidate):
            closings.append(candidate)
        year, month = _shift_month(year, month, 1)
    if descending:
        closings.reverse()
    return closings


def past_closings(
    today: date,
    closing_day: int,
    cutoff: date,
    policy: MonthEndPolicy = MonthEndPolicy.CLAMP,
) -> list[date]:
    """Closings strictly before ``today`` and not before ``cutoff``, newest first."""
    return enumerate_closings(
        cutoff, today - timedelta(days=1), closing_day, descending=True, policy=policy
    )


def _closing_info(cycle: HospitalCycle, closing_date: date, is_past: bool, policy: MonthEndPolicy) -> ClosingInfo:
    closing_day = validate_closing_day(cycle.closing_day or 0)
    return ClosingInfo(
        hospital_id=cycle.hospital_id,
        hospital_name=cycle.hospital_name,
        closing_date=closing_date,
        closing_day=closing_day,
        period=period_for(closing_date, closing_day, policy),
        is_past=is_past,
    )


def build_schedule(
    hospitals: Iterable[HospitalCycle],
    today: date,
    cutoff: date,
    policy: MonthEndPolicy = MonthEndPolicy.CLAMP,
) -> ClosingSchedule:
    upcoming: list[ClosingInfo] = []
    past: list[ClosingInfo] = []
    for cycle in hospitals:
        if not cycle.closing_day:
            continue
        upcoming.append(_closing_info(cycle, next_closing(today, cycle.closing_day, policy), False, policy))
        for closing_date in past_closings(today, cycle.closing_day, cutoff, policy):
            past.append(_closing_info(cycle, closing_date, True, policy))

    upcoming.sort(key=lambda info: (info.closing_date, info.hospital_name, info.hospital_id))
    past.sort(key=lambda info: (info.hospital_name, info.hospital_id))
    past.sort(key=lambda info: info.closing_date, reverse=True)
    return ClosingSchedule(upcoming=upcoming, past=past)


def closing_events(
    hospitals: Iterable[HospitalCycle],
    range_start: date,
    range_end: date,
    today: date,
    policy: MonthEndPolicy = MonthEndPolicy.CLAMP,
) -> list[ClosingInfo]:
    events = [
        _closing_info(cycle, closing_date, closing_date < today, policy)
        for cycle in hospitals
        if cycle.closing_day
        for closing_date in enumerate_closings(range_start, range_end, cycle.closing_day, policy=policy)
    ]
    events.sort(key=lambda info: (info.closing_date, info.hospital_name, info.hospital_id))
    return events
