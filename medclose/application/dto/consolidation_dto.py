from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict

from medclose.application.dto.closure_dto import ClosureResponse


class PeriodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: date
    end: date


class ClosingInfoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    hospital_id: int
    hospital_name: str
    closing_date: date
    closing_day: int
    period: PeriodResponse
    is_past: bool


class ClosingScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    upcoming: list[ClosingInfoResponse]
    past: list[ClosingInfoResponse]


class EntryDetailResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entry_date: date
    start_at: str | None = None
    end_at: str | None = None
    quantity: float
    display_hours: float
    value: float
    notes: str | None = None
    role: str | None = None


class ActTotalsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    act_id: int
    act_name: str
    unit_type: str
    total_quantity: float
    display_quantity: float
    total_value: float
    total_patients: int | None = None
    entries: list[EntryDetailResponse]


class GroupTotalsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    group_id: int | None = None
    group_name: str
    sort_order: int
    acts: list[ActTotalsResponse]
    total_value: float
    is_consolidated: bool
    status_id: int | None = None


class ConsolidationBreakdownResponse(BaseModel):
    hospital_id: int
    hospital_name: str
    closing_date: date
    closure: ClosureResponse
    groups: list[GroupTotalsResponse]
    grand_total: float
