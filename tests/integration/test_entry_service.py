from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import cast

import pytest
from sqlalchemy import update

from medclose.application.dto.entry_dto import EntryCreateRequest, EntryUpdateRequest
from medclose.application.services.entry_service import EntryService
from medclose.domain.errors import MalformedInputError, MissingRoleRateError, NotFoundError, ValidationFailureError
from medclose.infrastructure.db.engine import get_engine
from medclose.infrastructure.db.models_sqlalchemy import Base, HospitalCatalog, MedicalAct, UserHospital
from medclose.infrastructure.db.session import SessionFactory, build_session_factory

USER_ID = 1


def make_session_factory(db_path: Path) -> SessionFactory:
    engine = get_engine(f"sqlite:///{db_path.as_posix()}", echo=False)
    Base.metadata.create_all(engine)
    return build_session_factory(engine)


def seed(session_factory) -> dict[str, int]:
    with session_factory() as session:
        catalog = HospitalCatalog(name="Hospital Central", closing_day=15)
        other_catalog = HospitalCatalog(name="Hospital Sur", closing_day=5)
        session.add_all([catalog, other_catalog])
        session.flush()
        hospital = UserHospital(user_id=USER_ID, catalog_hospital_id=catalog.id)
        other = UserHospital(user_id=USER_ID, catalog_hospital_id=other_catalog.id)
        session.add_all([hospital, other])
        session.flush()
        guard = MedicalAct(
            user_id=USER_ID, user_hospital_id=hospital.id, name="Guardia", unit_type="hours", unit_value=100.0
        )
        surgery = MedicalAct(
            user_id=USER_ID,
            user_hospital_id=hospital.id,
            name="Cirugía",
            unit_type="hours",
            supports_roles=True,
            unit_value_principal=500.0,
            unit_value_assistant=200.0,
            requires_patients=False,
        )
        half_configured = MedicalAct(
            user_id=USER_ID,
            user_hospital_id=hospital.id,
            name="Ayudantía",
            unit_type="hours",
            supports_roles=True,
            unit_value_principal=300.0,
        )
        consult = MedicalAct(
            user_id=USER_ID,
            user_hospital_id=hospital.id,
            name="Consulta",
            unit_type="units",
            unit_value=20.0,
            requires_patients=True,
        )
        elsewhere = MedicalAct(
            user_id=USER_ID, user_hospital_id=other.id, name="Guardia", unit_type="hours", unit_value=90.0
        )
        session.add_all([guard, surgery, half_configured, consult, elsewhere])
        session.flush()
        return {
            "hospital": cast(int, hospital.id),
            "guard": cast(int, guard.id),
            "surgery": cast(int, surgery.id),
            "half_configured": cast(int, half_configured.id),
            "consult": cast(int, consult.id),
            "elsewhere": cast(int, elsewhere.id),
        }


def _request(ids: dict[str, int], act: str, start_at: str, end_at: str, **kwargs) -> EntryCreateRequest:
    return EntryCreateRequest(hospital_id=ids["hospital"], act_id=ids[act], start_at=start_at, end_at=end_at, **kwargs)


def test_overnight_entry_derives_date_and_quantity(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "entries_overnight.db")
    ids = seed(session_factory)
    service = EntryService(session_factory=session_factory)

    entry = service.record_entry(
        USER_ID, _request(ids, "guard", "2024-03-01T20:00:00", "2024-03-02T06:00:00", notes="  noche  ")
    )

    assert entry.entry_date == date(2024, 3, 1)
    assert entry.quantity == 10.0
    assert entry.start_at == "2024-03-01T20:00:00"
    assert entry.end_at == "2024-03-02T06:00:00"
    assert entry.total_amount is None
    assert entry.role is None
    assert entry.notes == "noche"


def test_role_entry_is_priced_at_write_time(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "entries_role.db")
    ids = seed(session_factory)
    service = EntryService(session_factory=session_factory)

    entry = service.record_entry(
        USER_ID, _request(ids, "surgery", "2024-03-05T10:00:00", "2024-03-05T11:30:00", role="assistant")
    )

    assert entry.role == "assistant"
    assert entry.total_amount == 300.0
    assert entry.calculation_detail == {"role": "assistant", "rate": 200.0, "quantity": 1.5, "total": 300.0}


def test_calculation_errors_block_the_write(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "entries_blocked.db")
    ids = seed(session_factory)
    service = EntryService(session_factory=session_factory)

    with pytest.raises(ValidationFailureError):
        service.record_entry(USER_ID, _request(ids, "surgery", "2024-03-05T10:00:00", "2024-03-05T11:00:00"))
    with pytest.raises(MissingRoleRateError):
        service.record_entry(
            USER_ID,
            _request(ids, "half_configured", "2024-03-05T10:00:00", "2024-03-05T11:00:00", role="assistant"),
        )
    with pytest.raises(ValidationFailureError):
        service.record_entry(USER_ID, _request(ids, "guard", "2024-03-01T22:00:00", "2024-03-01T02:00:00"))
    with pytest.raises(ValidationFailureError):
        service.record_entry(USER_ID, _request(ids, "guard", "2024-03-01T10:00:00", "2024-03-01T10:00:00"))
    with pytest.raises(MalformedInputError):
        service.record_entry(USER_ID, _request(ids, "guard", "2024-03-01T10:00:00Z", "2024-03-01T12:00:00Z"))

    assert service.list_entries(USER_ID, date(2024, 1, 1), date(2024, 12, 31)) == []


def test_patients_count_kept_only_when_required(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "entries_patients.db")
    ids = seed(session_factory)
    service = EntryService(session_factory=session_factory)

    consult = service.record_entry(
        USER_ID, _request(ids, "consult", "2024-03-01T09:00:00", "2024-03-01T12:00:00", patients_count=8)
    )
    guard = service.record_entry(
        USER_ID, _request(ids, "guard", "2024-03-01T13:00:00", "2024-03-01T15:00:00", patients_count=8)
    )

    assert consult.patients_count == 8
    assert guard.patients_count is None


def test_act_must_belong_to_hospital(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "entries_scope.db")
    ids = seed(session_factory)
    service = EntryService(session_factory=session_factory)

    with pytest.raises(ValidationFailureError):
        service.record_entry(USER_ID, _request(ids, "elsewhere", "2024-03-01T09:00:00", "2024-03-01T10:00:00"))
    with pytest.raises(NotFoundError):
        service.record_entry(
            USER_ID,
            EntryCreateRequest(
                hospital_id=ids["hospital"], act_id=999, start_at="2024-03-01T09:00:00", end_at="2024-03-01T10:00:00"
            ),
        )


def test_inactive_act_cannot_be_recorded(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "entries_inactive.db")
    ids = seed(session_factory)
    with session_factory() as session:
        session.execute(update(MedicalAct).where(MedicalAct.id == ids["guard"]).values(is_active=False))
    service = EntryService(session_factory=session_factory)

    with pytest.raises(ValidationFailureError) as exc_info:
        service.record_entry(USER_ID, _request(ids, "guard", "2024-03-01T09:00:00", "2024-03-01T10:00:00"))
    assert exc_info.value.message == "El acto no está activo"
    assert service.list_entries(USER_ID, date(2024, 1, 1), date(2024, 12, 31)) == []


def test_update_entry_recomputes_values(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "entries_update.db")
    ids = seed(session_factory)
    service = EntryService(session_factory=session_factory)
    entry = service.record_entry(
        USER_ID, _request(ids, "surgery", "2024-03-05T10:00:00", "2024-03-05T11:00:00", role="principal")
    )

    updated = service.update_entry(
        USER_ID,
        entry.id,
        EntryUpdateRequest(start_at="2024-03-06T10:00:00", end_at="2024-03-06T12:00:00", role="assistant"),
    )

    assert updated.entry_date == date(2024, 3, 6)
    assert updated.quantity == 2.0
    assert updated.total_amount == 400.0
    listed = service.list_entries(USER_ID, date(2024, 3, 1), date(2024, 3, 31), hospital_id=ids["hospital"])
    assert [(item.id, item.total_amount) for item in listed] == [(entry.id, 400.0)]

    with pytest.raises(NotFoundError):
        service.update_entry(
            USER_ID + 1,
            entry.id,
            EntryUpdateRequest(start_at="2024-03-06T10:00:00", end_at="2024-03-06T12:00:00", role="assistant"),
        )
