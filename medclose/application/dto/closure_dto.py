from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from medclose.domain.constants import ClosureState


class ClosureAdjustRequest(BaseModel):
    """Effective bounds as ``YYYY-MM-DD`` strings; parsed by the service."""

    model_config = ConfigDict(str_strip_whitespace=True)

    period_start: str | None = None
    period_end: str | None = None
    reason: str | None = None


class ClosureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    hospital_id: int
    period_start_calc: date
    period_end_calc: date
    period_start: date
    period_end: date
    is_adjusted: bool
    adjust_reason: str | None = None
    state: ClosureState


class GroupStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    closure_id: int
    group_id: int | None = None
    is_consolidated: bool
    consolidated_at: datetime | None = None
