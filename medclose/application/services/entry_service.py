from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import date
from typing import Any, cast

from sqlalchemy.orm import Session

from medclose.application.dto.entry_dto import EntryCreateRequest, EntryResponse, EntryUpdateRequest
from medclose.domain.constants import MidnightPolicy
from medclose.domain.errors import NotFoundError, ValidationFailureError
from medclose.domain.naive_clock import duration_hours, format_instant, parse_instant
from medclose.domain.pricing import coerce_role, price_entry
from medclose.infrastructure.db.errors import store_errors
from medclose.infrastructure.db.models_sqlalchemy import Entry, MedicalAct
from medclose.infrastructure.db.repositories.act_repo import ActRepository, to_pricing
from medclose.infrastructure.db.repositories.entry_repo import EntryRepository
from medclose.infrastructure.db.repositories.hospital_repo import HospitalRepository
from medclose.infrastructure.db.session import session_scope

logger = logging.getLogger(__name__)


def _to_entry_response(entry: Entry) -> EntryResponse:
    act = cast(MedicalAct, entry.act)
    start_at = entry.start_at
    end_at = entry.end_at
    detail = cast(str | None, entry.calculation_detail_json)
    return EntryResponse(
        id=cast(int, entry.id),
        hospital_id=cast(int, entry.user_hospital_id),
        act_id=cast(int, entry.act_id),
        act_name=cast(str, act.name),
        entry_date=cast(date, entry.date),
        start_at=format_instant(start_at) if start_at is not None else None,
        end_at=format_instant(end_at) if end_at is not None else None,
        quantity=cast(float, entry.quantity),
        role=cast(str | None, entry.role),
        patients_count=cast(int | None, entry.patients_count),
        total_amount=cast(float | None, entry.total_amount),
        calculation_detail=json.loads(detail) if detail else None,
        notes=cast(str | None, entry.notes),
        updated_at=entry.updated_at,
    )


def build_entry_values(
    act: MedicalAct,
    *,
    start_at: str,
    end_at: str,
    role: str | None,
    patients_count: int | None,
    notes: str | None,
) -> dict[str, Any]:
    """Column values for an entry; raises before anything is written."""
    start = parse_instant(start_at)
    end = parse_instant(end_at)
    if end.as_datetime() <= start.as_datetime():
        raise ValidationFailureError("La hora de fin debe ser posterior a la hora de inicio")
    quantity = duration_hours(start, end, MidnightPolicy.REJECT)

    pricing = to_pricing(act)
    entry_role = coerce_role(role) if pricing.supports_roles else None
    result = price_entry(quantity, pricing, entry_role)

    return {
        "date": start.day,
        "start_at": start.as_datetime(),
        "end_at": end.as_datetime(),
        "quantity": quantity,
        "notes": (notes or "").strip() or None,
        "patients_count": patients_count if act.requires_patients else None,
        "role": entry_role.value if entry_role else None,
        # flat acts are valued on read
        "total_amount": result.amount if result.breakdown else None,
        "calculation_detail_json": json.dumps(result.breakdown.as_dict()) if result.breakdown else None,
    }


class EntryService:
    def __init__(
        self,
        entry_repo: EntryRepository | None = None,
        act_repo: ActRepository | None = None,
        hospital_repo: HospitalRepository | None = None,
        session_factory: Callable = session_scope,
    ) -> None:
        self.entry_repo = entry_repo or EntryRepository()
        self.act_repo = act_repo or ActRepository()
        self.hospital_repo = hospital_repo or HospitalRepository()
        self.session_factory = session_factory

    def _load_act(self, session: Session, user_id: int, act_id: int, operation: str) -> MedicalAct:
        act = self.act_repo.get(session, act_id, user_id)
        if act is None:
            raise NotFoundError("Acto no encontrado", operation=operation, key={"act_id": act_id})
        return act

    def record_entry(self, user_id: int, request: EntryCreateRequest) -> EntryResponse:
        key = {"user_id": user_id, "act_id": request.act_id}
        with store_errors("record_entry", **key), self.session_factory() as session:
            if self.hospital_repo.get_assignment(session, user_id, request.hospital_id) is None:
                raise NotFoundError(
                    "Hospital no encontrado", operation="record_entry", key={"hospital_id": request.hospital_id}
                )
            act = self._load_act(session, user_id, request.act_id, "record_entry")
            if cast(int, act.user_hospital_id) != request.hospital_id:
                raise ValidationFailureError("El acto no pertenece al hospital seleccionado")
            if not act.is_active:
                raise ValidationFailureError("El acto no está activo")
            values = build_entry_values(
                act,
                start_at=request.start_at,
                end_at=request.end_at,
                role=request.role,
                patients_count=request.patients_count,
                notes=request.notes,
            )
            entry = self.entry_repo.create(
                session,
                user_id=user_id,
                user_hospital_id=request.hospital_id,
                act_id=request.act_id,
                **values,
            )
            response = _to_entry_response(entry)
        logger.info("Entry %s recorded for act %s", response.id, request.act_id)
        return response

    def update_entry(self, user_id: int, entry_id: int, request: EntryUpdateRequest) -> EntryResponse:
        with store_errors("update_entry", entry_id=entry_id), self.session_factory() as session:
            entry = self.entry_repo.get(session, entry_id, user_id)
            if entry is None:
                raise NotFoundError("Registro no encontrado", operation="update_entry", key={"entry_id": entry_id})
            act = cast(MedicalAct, entry.act)
            values = build_entry_values(
                act,
                start_at=request.start_at,
                end_at=request.end_at,
                role=request.role,
                patients_count=request.patients_count,
                notes=request.notes,
            )
            for name, value in values.items():
                setattr(entry, name, value)
            session.flush()
            return _to_entry_response(entry)

    def list_entries(
        self,
        user_id: int,
        date_from: date,
        date_to: date,
        hospital_id: int | None = None,
    ) -> list[EntryResponse]:
        with store_errors("list_entries", user_id=user_id), self.session_factory() as session:
            entries = self.entry_repo.list_between(
                session, user_id=user_id, date_from=date_from, date_to=date_to, hospital_id=hospital_id
            )
            return [_to_entry_response(entry) for entry in entries]
