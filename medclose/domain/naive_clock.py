"""Wall-clock parsing and arithmetic without timezones.

Dates travel as ``YYYY-MM-DD`` and instants as ``YYYY-MM-DDTHH:mm:ss``. Both
are read and written digit for digit; no local or UTC offset is ever applied.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import NamedTuple

from medclose.domain.constants import MidnightPolicy
from medclose.domain.errors import MalformedInputError, ValidationFailureError

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_INSTANT_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:T(\d{2}):(\d{2}):(\d{2}))?$")
_OFFSET_RE = re.compile(r"(Z|[+-]\d{2}:?\d{2})$")

_MONTH_ABBR = ("ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sep", "oct", "nov", "dic")
_DAY_SECONDS = 24 * 60 * 60


class NaiveInstant(NamedTuple):
    day: date
    wall: time

    def as_datetime(self) -> datetime:
        return datetime.combine(self.day, self.wall)

    @classmethod
    def from_datetime(cls, value: datetime) -> NaiveInstant:
        if value.tzinfo is not None:
            raise MalformedInputError("Se esperaba una fecha y hora sin zona horaria", value)
        return cls(value.date(), value.time().replace(microsecond=0))


def _build_date(year: str, month: str, day: str, raw: str) -> date:
    try:
        return date(int(year), int(month), int(day))
    except ValueError as exc:
        raise MalformedInputError(f"Fecha inválida: {raw!r}", raw) from exc


def parse_date(value: str | None) -> date:
    if not value:
        raise MalformedInputError("La fecha es requerida", value)
    match = _DATE_RE.match(value.strip())
    if not match:
        raise MalformedInputError(f"Formato de fecha inválido (se espera AAAA-MM-DD): {value!r}", value)
    return _build_date(*match.groups(), raw=value)


def parse_instant(value: str | None, fallback: NaiveInstant | None = None) -> NaiveInstant:
    """Parse ``YYYY-MM-DDTHH:mm:ss`` (or a bare date at midnight).

    An empty value is an error unless the caller hands in ``fallback``.
    """
    if not value or not value.strip():
        if fallback is not None:
            return fallback
        raise MalformedInputError("La fecha y hora son requeridas", value)
    raw = value.strip()
    match = _INSTANT_RE.match(raw)
    if not match:
        if "T" in raw and _OFFSET_RE.search(raw):
            raise MalformedInputError(f"No se aceptan zonas horarias: {value!r}", value)
        raise MalformedInputError(
            f"Formato de fecha y hora inválido (se espera AAAA-MM-DDTHH:mm:ss): {value!r}", value
        )
    year, month, day, hours, minutes, seconds = match.groups()
    day_value = _build_date(year, month, day, raw=value)
    if hours is None:
        return NaiveInstant(day_value, time(0, 0, 0))
    try:
        wall = time(int(hours), int(minutes), int(seconds))
    except ValueError as exc:
        raise MalformedInputError(f"Hora inválida: {value!r}", value) from exc
    return NaiveInstant(day_value, wall)


def format_date(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def format_time_of_day(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}"


def format_instant(value: NaiveInstant | datetime) -> str:
    if isinstance(value, datetime):
        value = NaiveInstant.from_datetime(value)
    return f"{format_date(value.day)}T{format_time_of_day(value.wall)}"


def _as_instant(value: NaiveInstant | str) -> NaiveInstant:
    return parse_instant(value) if isinstance(value, str) else value


def duration_hours(
    start: NaiveInstant | str,
    end: NaiveInstant | str,
    midnight: MidnightPolicy = MidnightPolicy.REJECT,
) -> float:
    """Elapsed hours between two instants on the same nominal clock.

    An end whose wall time is earlier than start's on the same literal date is
    either shifted by 24h (``MidnightPolicy.CROSS``) or refused
    (``MidnightPolicy.REJECT``). Any other end-before-start is refused.
    """
    start_at = _as_instant(start)
    end_at = _as_instant(end)
    seconds = (end_at.as_datetime() - start_at.as_datetime()).total_seconds()
    if seconds < 0:
        same_day_wrap = start_at.day == end_at.day and end_at.wall < start_at.wall
        if same_day_wrap and midnight is MidnightPolicy.CROSS:
            seconds += _DAY_SECONDS
        elif same_day_wrap:
            raise ValidationFailureError("La hora de fin debe ser posterior a la hora de inicio")
        else:
            raise ValidationFailureError("La fecha de fin debe ser posterior a la fecha de inicio")
    return seconds / 3600


def wall_clock_hours(start: NaiveInstant | str, end: NaiveInstant | str) -> float:
    """Hours between the time-of-day parts only, minute precision.

    An earlier end time is read as crossing midnight.
    """
    start_at = _as_instant(start)
    end_at = _as_instant(end)
    start_minutes = start_at.wall.hour * 60 + start_at.wall.minute
    end_minutes = end_at.wall.hour * 60 + end_at.wall.minute
    diff = end_minutes - start_minutes
    if diff < 0:
        diff += 24 * 60
    return diff / 60


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def format_display_date(value: str | date | None) -> str:
    if not value:
        return ""
    day = value if isinstance(value, date) else parse_instant(value).day
    return f"{day.day} de {_MONTH_ABBR[day.month - 1]} de {day.year}"


def format_time_12h(value: str | None) -> str:
    if not value:
        return ""
    wall = parse_instant(value).wall
    period = "p. m." if wall.hour >= 12 else "a. m."
    hour = wall.hour % 12 or 12
    return f"{hour:02d}:{wall.minute:02d} {period}"
