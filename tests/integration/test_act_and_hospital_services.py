from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from medclose.application.dto.act_dto import (
    MedicalActCreateRequest,
    MedicalActUpdateRequest,
    ReportGroupCreateRequest,
    RoleValuesRequest,
)
from medclose.application.dto.entry_dto import EntryCreateRequest
from medclose.application.dto.hospital_dto import CustomHospitalRequest
from medclose.application.services.act_service import ActService
from medclose.application.services.entry_service import EntryService
from medclose.application.services.hospital_service import HospitalService
from medclose.domain.errors import ConflictError, NotFoundError, ValidationFailureError
from medclose.infrastructure.db.engine import get_engine
from medclose.infrastructure.db.models_sqlalchemy import Base, Entry, MedicalAct
from medclose.infrastructure.db.session import SessionFactory, build_session_factory

USER_ID = 1


def make_session_factory(db_path: Path) -> SessionFactory:
    engine = get_engine(f"sqlite:///{db_path.as_posix()}", echo=False)
    Base.metadata.create_all(engine)
    return build_session_factory(engine)


def test_hospital_assignment_flow(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "hospitals.db")
    service = HospitalService(session_factory=session_factory)
    central = service.create_catalog_hospital("Hospital Central", 15)
    service.create_catalog_hospital("Clínica Norte", None)

    assert [hospital.name for hospital in service.list_catalog()] == ["Clínica Norte", "Hospital Central"]

    assignment = service.add_hospital(USER_ID, central.id)
    assert assignment.hospital is not None
    assert assignment.hospital.closing_day == 15

    with pytest.raises(ConflictError) as exc_info:
        service.add_hospital(USER_ID, central.id)
    assert exc_info.value.message == "Este hospital ya está agregado"
    with pytest.raises(NotFoundError):
        service.add_hospital(USER_ID, 999)

    custom = service.create_custom_hospital(USER_ID, CustomHospitalRequest(name="  Sanatorio Propio ", closing_day=31))
    assert custom.hospital is not None
    assert custom.hospital.name == "Sanatorio Propio"
    assert custom.hospital.is_custom is True

    listed = service.list_assignments(USER_ID)
    assert [item.id for item in listed] == [assignment.id, custom.id]
    assert service.list_assignments(USER_ID + 1) == []
    assert [hospital.name for hospital in service.list_catalog()] == ["Clínica Norte", "Hospital Central"]


def test_custom_hospital_rejects_invalid_closing_day() -> None:
    with pytest.raises(ValidationError):
        CustomHospitalRequest(name="Sanatorio", closing_day=32)


def _hospital(session_factory) -> int:
    hospitals = HospitalService(session_factory=session_factory)
    catalog = hospitals.create_catalog_hospital("Hospital Central", 15)
    return hospitals.add_hospital(USER_ID, catalog.id).id


def test_groups_get_next_sort_order(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "groups.db")
    hospital_id = _hospital(session_factory)
    service = ActService(session_factory=session_factory)

    first = service.create_group(USER_ID, ReportGroupCreateRequest(hospital_id=hospital_id, name="Cirugía"))
    second = service.create_group(USER_ID, ReportGroupCreateRequest(hospital_id=hospital_id, name="Clínica"))

    assert (first.sort_order, second.sort_order) == (1, 2)
    assert [group.name for group in service.list_groups(hospital_id)] == ["Cirugía", "Clínica"]
    with pytest.raises(NotFoundError):
        service.create_group(USER_ID + 1, ReportGroupCreateRequest(hospital_id=hospital_id, name="Ajeno"))


def test_act_configuration_rules(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "acts.db")
    hospital_id = _hospital(session_factory)
    service = ActService(session_factory=session_factory)

    with pytest.raises(ValidationFailureError):
        service.create_act(
            USER_ID,
            MedicalActCreateRequest(
                hospital_id=hospital_id, name="Cirugía", supports_roles=True, unit_value_principal=500.0
            ),
        )
    with pytest.raises(ValidationFailureError):
        service.create_act(
            USER_ID, MedicalActCreateRequest(hospital_id=hospital_id, name="Consulta", unit_value=0.0)
        )
    with pytest.raises(ValidationError):
        MedicalActCreateRequest(hospital_id=hospital_id, name="Consulta", unit_type="days")

    night = service.create_act(
        USER_ID,
        MedicalActCreateRequest(
            hospital_id=hospital_id,
            name="Guardia nocturna",
            unit_type="hours",
            unit_value=100.0,
            pricing_rules={"nocturnal": {"multiplier": 1.5}},
        ),
    )
    assert night.pricing_rules == {"nocturnal": {"multiplier": 1.5}}

    with pytest.raises(ConflictError):
        service.create_act(
            USER_ID, MedicalActCreateRequest(hospital_id=hospital_id, name="Guardia nocturna", unit_value=10.0)
        )

    updated = service.set_unit_value(USER_ID, night.id, 120.0)
    assert updated.unit_value == 120.0
    with pytest.raises(ValidationFailureError):
        service.set_unit_value(USER_ID, night.id, -5.0)
    with pytest.raises(ValidationFailureError):
        service.update_role_values(
            USER_ID, night.id, RoleValuesRequest(unit_value_principal=10.0, unit_value_assistant=5.0)
        )


def test_role_values_and_group_assignment(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "acts_roles.db")
    hospital_id = _hospital(session_factory)
    service = ActService(session_factory=session_factory)
    group = service.create_group(USER_ID, ReportGroupCreateRequest(hospital_id=hospital_id, name="Cirugía"))
    surgery = service.create_act(
        USER_ID,
        MedicalActCreateRequest(
            hospital_id=hospital_id,
            name="Cirugía mayor",
            supports_roles=True,
            unit_value_principal=500.0,
            unit_value_assistant=200.0,
        ),
    )

    updated = service.update_role_values(
        USER_ID, surgery.id, RoleValuesRequest(unit_value_principal=550.0, unit_value_assistant=220.0)
    )
    assert (updated.unit_value_principal, updated.unit_value_assistant) == (550.0, 220.0)

    grouped = service.assign_group(USER_ID, surgery.id, group.id)
    assert grouped.group is not None
    assert grouped.group.id == group.id

    ungrouped = service.assign_group(USER_ID, surgery.id, None)
    assert ungrouped.group is None

    with pytest.raises(NotFoundError):
        service.assign_group(USER_ID, surgery.id, 999)
    with pytest.raises(NotFoundError):
        service.assign_group(USER_ID + 1, surgery.id, None)

    assert [act.name for act in service.list_acts(USER_ID, hospital_id)] == ["Cirugía mayor"]


def test_update_act_switches_between_role_and_flat_values(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "acts_update.db")
    hospital_id = _hospital(session_factory)
    service = ActService(session_factory=session_factory)
    group = service.create_group(USER_ID, ReportGroupCreateRequest(hospital_id=hospital_id, name="Cirugía"))
    act = service.create_act(
        USER_ID,
        MedicalActCreateRequest(
            hospital_id=hospital_id,
            name="Guardia",
            unit_type="hours",
            unit_value=100.0,
            pricing_rules={"nocturnal": {"multiplier": 1.5}},
        ),
    )

    with_roles = service.update_act(
        USER_ID,
        act.id,
        MedicalActUpdateRequest(
            name=" Cirugía mayor ",
            unit_type="units",
            unit_value=100.0,
            supports_roles=True,
            unit_value_principal=500.0,
            unit_value_assistant=200.0,
            requires_patients=True,
            group_id=group.id,
        ),
    )
    assert with_roles.name == "Cirugía mayor"
    assert with_roles.unit_type == "units"
    assert with_roles.unit_value is None
    assert (with_roles.unit_value_principal, with_roles.unit_value_assistant) == (500.0, 200.0)
    assert with_roles.requires_patients is True
    assert with_roles.group is not None
    assert with_roles.pricing_rules == {"nocturnal": {"multiplier": 1.5}}

    flat = service.update_act(
        USER_ID,
        act.id,
        MedicalActUpdateRequest(
            name="Cirugía mayor", unit_type="hours", unit_value=80.0, unit_value_principal=500.0
        ),
    )
    assert flat.supports_roles is False
    assert flat.unit_value == 80.0
    assert (flat.unit_value_principal, flat.unit_value_assistant) == (None, None)
    assert flat.group is None


def test_update_act_validates_the_new_configuration(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "acts_update_invalid.db")
    hospital_id = _hospital(session_factory)
    service = ActService(session_factory=session_factory)
    act = service.create_act(USER_ID, MedicalActCreateRequest(hospital_id=hospital_id, name="Guardia", unit_value=10.0))
    service.create_act(USER_ID, MedicalActCreateRequest(hospital_id=hospital_id, name="Consulta", unit_value=5.0))

    with pytest.raises(ValidationFailureError):
        service.update_act(
            USER_ID,
            act.id,
            MedicalActUpdateRequest(name="Guardia", supports_roles=True, unit_value_principal=500.0),
        )
    with pytest.raises(ValidationFailureError):
        service.update_act(USER_ID, act.id, MedicalActUpdateRequest(name="Guardia", unit_value=0.0))
    with pytest.raises(ConflictError):
        service.update_act(USER_ID, act.id, MedicalActUpdateRequest(name="Consulta", unit_value=10.0))
    with pytest.raises(NotFoundError):
        service.update_act(USER_ID + 1, act.id, MedicalActUpdateRequest(name="Guardia", unit_value=10.0))

    unchanged = service.list_acts(USER_ID, hospital_id)
    assert [(item.name, item.unit_value) for item in unchanged] == [("Consulta", 5.0), ("Guardia", 10.0)]


def test_remove_hospital_drops_its_acts_and_entries(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "hospital_remove.db")
    hospital_id = _hospital(session_factory)
    act = ActService(session_factory=session_factory).create_act(
        USER_ID, MedicalActCreateRequest(hospital_id=hospital_id, name="Guardia", unit_type="hours", unit_value=10.0)
    )
    EntryService(session_factory=session_factory).record_entry(
        USER_ID,
        EntryCreateRequest(
            hospital_id=hospital_id, act_id=act.id, start_at="2026-02-20T09:00:00", end_at="2026-02-20T11:00:00"
        ),
    )
    service = HospitalService(session_factory=session_factory)

    with pytest.raises(NotFoundError):
        service.remove_hospital(USER_ID + 1, hospital_id)
    service.remove_hospital(USER_ID, hospital_id)

    assert service.list_assignments(USER_ID) == []
    with session_factory() as session:
        assert session.execute(select(func.count()).select_from(MedicalAct)).scalar_one() == 0
        assert session.execute(select(func.count()).select_from(Entry)).scalar_one() == 0
    with pytest.raises(NotFoundError):
        service.remove_hospital(USER_ID, hospital_id)
    assert [hospital.name for hospital in service.list_catalog()] == ["Hospital Central"]
