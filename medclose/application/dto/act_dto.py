from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from medclose.domain.constants import UnitType


class MedicalActUpdateRequest(BaseModel):
    """Full act configuration; role and flat values are mutually exclusive."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    unit_type: str = Field(default=UnitType.UNITS.value)
    unit_value: float | None = None
    supports_roles: bool = False
    unit_value_principal: float | None = None
    unit_value_assistant: float | None = None
    requires_patients: bool = False
    group_id: int | None = None

    @field_validator("unit_type")
    @classmethod
    def _validate_unit_type(cls, v: str) -> str:
        if v not in UnitType.values():
            raise ValueError("El tipo de unidad debe ser 'hours' o 'units'")
        return v


class MedicalActCreateRequest(MedicalActUpdateRequest):
    hospital_id: int
    pricing_rules: dict[str, Any] | None = None


class RoleValuesRequest(BaseModel):
    unit_value_principal: float = Field(..., gt=0)
    unit_value_assistant: float = Field(..., gt=0)


class ReportGroupCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    hospital_id: int
    name: str = Field(..., min_length=1)


class ReportGroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    sort_order: int


class MedicalActResponse(BaseModel):
    id: int
    hospital_id: int
    name: str
    unit_type: str
    unit_value: float | None = None
    supports_roles: bool = False
    unit_value_principal: float | None = None
    unit_value_assistant: float | None = None
    requires_patients: bool = False
    pricing_rules: dict[str, Any] | None = None
    group: ReportGroupResponse | None = None
    is_active: bool = True
