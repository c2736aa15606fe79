from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EntryCreateRequest(BaseModel):
    """Instants travel as naive ``YYYY-MM-DDTHH:mm:ss`` strings."""

    model_config = ConfigDict(str_strip_whitespace=True)

    hospital_id: int
    act_id: int
    start_at: str = Field(..., min_length=1)
    end_at: str = Field(..., min_length=1)
    role: str | None = None
    patients_count: int | None = Field(default=None, ge=0)
    notes: str | None = None


class EntryUpdateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    start_at: str = Field(..., min_length=1)
    end_at: str = Field(..., min_length=1)
    role: str | None = None
    patients_count: int | None = Field(default=None, ge=0)
    notes: str | None = None


class EntryResponse(BaseModel):
    id: int
    hospital_id: int
    act_id: int
    act_name: str
    entry_date: date
    start_at: str | None = None
    end_at: str | None = None
    quantity: float
    role: str | None = None
    patients_count: int | None = None
    total_amount: float | None = None
    calculation_detail: dict[str, Any] | None = None
    notes: str | None = None
    updated_at: datetime | None = None
