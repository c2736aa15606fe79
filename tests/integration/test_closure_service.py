from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import cast

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from medclose.application.dto.closure_dto import ClosureAdjustRequest
from medclose.application.services.closure_service import ClosureService
from medclose.domain.constants import ClosureState
from medclose.domain.errors import MalformedInputError, NotFoundError, ValidationFailureError
from medclose.infrastructure.db.engine import get_engine
from medclose.infrastructure.db.models_sqlalchemy import (
    AuditLog,
    Base,
    ClosureGroupStatus,
    HospitalCatalog,
    HospitalClosure,
    ReportGroup,
    UserHospital,
)
from medclose.infrastructure.db.repositories.closure_repo import ClosureRepository
from medclose.infrastructure.db.session import SessionFactory, build_session_factory

CALC_START = date(2024, 2, 15)
CALC_END = date(2024, 3, 14)
FIXED_NOW = datetime(2024, 3, 20, 9, 30, 0)


def make_session_factory(db_path: Path) -> SessionFactory:
    engine = get_engine(f"sqlite:///{db_path.as_posix()}", echo=False)
    Base.metadata.create_all(engine)
    return build_session_factory(engine)


def seed_hospital(session_factory, group_names: list[str]) -> tuple[int, list[int]]:
    with session_factory() as session:
        catalog = HospitalCatalog(name="Hospital Central", closing_day=15)
        session.add(catalog)
        session.flush()
        assignment = UserHospital(user_id=1, catalog_hospital_id=catalog.id)
        session.add(assignment)
        session.flush()
        groups = []
        for index, name in enumerate(group_names, start=1):
            group = ReportGroup(user_id=1, user_hospital_id=assignment.id, name=name, sort_order=index)
            session.add(group)
            groups.append(group)
        session.flush()
        return cast(int, assignment.id), [cast(int, group.id) for group in groups]


class _RacingClosureRepository(ClosureRepository):
    """Misses the first lookups, as if another writer committed in between."""

    def __init__(self) -> None:
        self.closure_lookups = 0
        self.status_lookups = 0

    def get_by_key(self, session, hospital_id, period_start_calc, period_end_calc):  # noqa: ANN001
        self.closure_lookups += 1
        if self.closure_lookups == 1:
            return None
        return super().get_by_key(session, hospital_id, period_start_calc, period_end_calc)

    def list_statuses(self, session, closure_id):  # noqa: ANN001
        self.status_lookups += 1
        if self.status_lookups == 1:
            return []
        return super().list_statuses(session, closure_id)


def _count(session_factory, model) -> int:
    with session_factory() as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


def test_ensure_closure_is_idempotent(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "closure_idempotent.db")
    hospital_id, _ = seed_hospital(session_factory, [])
    service = ClosureService(session_factory=session_factory)

    first = service.ensure_closure(1, hospital_id, CALC_START, CALC_END)
    second = service.ensure_closure(1, hospital_id, CALC_START, CALC_END)

    assert first.id == second.id
    assert first.period_start == CALC_START
    assert first.period_end == CALC_END
    assert first.state is ClosureState.CALCULATED
    assert _count(session_factory, HospitalClosure) == 1


def test_concurrent_create_resolves_to_existing_row(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "closure_race.db")
    hospital_id, _ = seed_hospital(session_factory, [])
    winner = ClosureService(session_factory=session_factory).ensure_closure(1, hospital_id, CALC_START, CALC_END)

    racing_repo = _RacingClosureRepository()
    loser = ClosureService(closure_repo=racing_repo, session_factory=session_factory)
    result = loser.ensure_closure(1, hospital_id, CALC_START, CALC_END)

    assert result.id == winner.id
    assert racing_repo.closure_lookups == 2
    assert _count(session_factory, HospitalClosure) == 1


def test_ensure_group_statuses_backfills_ungrouped_bucket(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "closure_statuses.db")
    hospital_id, group_ids = seed_hospital(session_factory, ["Cirugía", "Clínica"])
    service = ClosureService(session_factory=session_factory)
    closure = service.ensure_closure(1, hospital_id, CALC_START, CALC_END)

    statuses = service.ensure_group_statuses(closure.id, group_ids)
    again = service.ensure_group_statuses(closure.id, group_ids)

    assert {status.group_id for status in statuses} == {*group_ids, None}
    assert [status.id for status in again] == [status.id for status in statuses]
    assert not any(status.is_consolidated for status in statuses)
    assert _count(session_factory, ClosureGroupStatus) == 3


def test_concurrent_status_backfill_resolves_by_reread(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "closure_status_race.db")
    hospital_id, group_ids = seed_hospital(session_factory, ["Cirugía"])
    plain = ClosureService(session_factory=session_factory)
    closure = plain.ensure_closure(1, hospital_id, CALC_START, CALC_END)
    existing = plain.ensure_group_statuses(closure.id, group_ids)

    racing = ClosureService(closure_repo=_RacingClosureRepository(), session_factory=session_factory)
    statuses = racing.ensure_group_statuses(closure.id, group_ids)

    assert sorted(status.id for status in statuses) == sorted(status.id for status in existing)
    assert _count(session_factory, ClosureGroupStatus) == 2


def test_toggle_sets_and_clears_timestamp(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "closure_toggle.db")
    hospital_id, group_ids = seed_hospital(session_factory, ["Cirugía"])
    service = ClosureService(session_factory=session_factory, clock=lambda: FIXED_NOW)
    closure = service.ensure_closure(1, hospital_id, CALC_START, CALC_END)
    status = next(s for s in service.ensure_group_statuses(closure.id, group_ids) if s.group_id == group_ids[0])

    on = service.toggle_consolidated(status.id)
    assert on.is_consolidated is True
    assert on.consolidated_at == FIXED_NOW

    off = service.toggle_consolidated(status.id)
    assert off.is_consolidated is False
    assert off.consolidated_at is None

    explicit = service.set_consolidated(status.id, True)
    assert explicit.is_consolidated is True


def test_toggle_reads_and_writes_in_one_session(tmp_path: Path) -> None:
    base_factory = make_session_factory(tmp_path / "closure_toggle_once.db")
    opened: list[int] = []

    @contextmanager
    def counting_factory() -> Iterator[Session]:
        opened.append(1)
        with base_factory() as session:
            yield session

    hospital_id, group_ids = seed_hospital(base_factory, ["Cirugía"])
    service = ClosureService(session_factory=counting_factory, clock=lambda: FIXED_NOW)
    closure = service.ensure_closure(1, hospital_id, CALC_START, CALC_END)
    status = next(s for s in service.ensure_group_statuses(closure.id, group_ids) if s.group_id == group_ids[0])
    assert status.is_consolidated is False

    # another caller consolidates the group after this one last read it
    ClosureService(session_factory=base_factory, clock=lambda: FIXED_NOW).set_consolidated(status.id, True)

    opened.clear()
    toggled = service.toggle_consolidated(status.id)

    assert len(opened) == 1
    assert toggled.is_consolidated is False
    assert toggled.consolidated_at is None


def test_consolidation_of_missing_status_raises_not_found(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "closure_missing.db")
    service = ClosureService(session_factory=session_factory)

    with pytest.raises(NotFoundError) as exc_info:
        service.toggle_consolidated(999)
    assert exc_info.value.key == {"status_id": 999}
    with pytest.raises(NotFoundError):
        service.set_consolidated(999, True)
    with pytest.raises(NotFoundError):
        service.get_closure(999)


def test_adjust_and_reset_period(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "closure_adjust.db")
    hospital_id, _ = seed_hospital(session_factory, [])
    service = ClosureService(session_factory=session_factory)
    closure = service.ensure_closure(1, hospital_id, CALC_START, CALC_END)

    adjusted = service.adjust_period(
        closure.id,
        ClosureAdjustRequest(period_start="2024-02-15", period_end="2024-03-16", reason="  feriado largo  "),
        user_id=1,
    )
    assert adjusted.period_end == date(2024, 3, 16)
    assert adjusted.is_adjusted is True
    assert adjusted.state is ClosureState.ADJUSTED
    assert adjusted.adjust_reason == "feriado largo"
    assert adjusted.period_start_calc == CALC_START
    assert adjusted.period_end_calc == CALC_END

    same_as_calculated = service.adjust_period(
        closure.id, ClosureAdjustRequest(period_start="2024-02-15", period_end="2024-03-14", reason="   ")
    )
    assert same_as_calculated.is_adjusted is False
    assert same_as_calculated.adjust_reason is None

    single_day = service.adjust_period(
        closure.id, ClosureAdjustRequest(period_start="2024-03-01", period_end="2024-03-01")
    )
    assert single_day.period_start == single_day.period_end == date(2024, 3, 1)

    reset = service.reset_period(closure.id, user_id=1)
    assert reset.period_start == CALC_START
    assert reset.period_end == CALC_END
    assert reset.is_adjusted is False
    assert service.get_closure(closure.id).state is ClosureState.CALCULATED

    with session_factory() as session:
        actions = [
            row.action
            for row in session.execute(
                select(AuditLog).where(AuditLog.entity_type == "hospital_closure").order_by(AuditLog.id)
            ).scalars()
        ]
    assert actions == ["adjust_period", "adjust_period", "adjust_period", "reset_period"]


def test_adjust_period_validation(tmp_path: Path) -> None:
    session_factory = make_session_factory(tmp_path / "closure_adjust_invalid.db")
    hospital_id, _ = seed_hospital(session_factory, [])
    service = ClosureService(session_factory=session_factory)
    closure = service.ensure_closure(1, hospital_id, CALC_START, CALC_END)

    with pytest.raises(ValidationFailureError):
        service.adjust_period(closure.id, ClosureAdjustRequest(period_start="2024-03-10", period_end="2024-03-01"))
    with pytest.raises(ValidationFailureError):
        service.adjust_period(closure.id, ClosureAdjustRequest(period_start="2024-03-10", period_end=""))
    with pytest.raises(MalformedInputError):
        service.adjust_period(closure.id, ClosureAdjustRequest(period_start="10/03/2024", period_end="2024-03-20"))
    with pytest.raises(NotFoundError):
        service.adjust_period(999, ClosureAdjustRequest(period_start="2024-03-01", period_end="2024-03-02"))

    assert service.get_closure(closure.id).is_adjusted is False
