from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CustomHospitalRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    closing_day: int | None = Field(default=None, ge=1, le=31)


class CatalogHospitalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    closing_day: int | None = None
    is_custom: bool = False


class HospitalAssignmentResponse(BaseModel):
    id: int
    catalog_hospital_id: int
    hospital: CatalogHospitalResponse | None = None
