from __future__ import annotations

from datetime import date, datetime
from typing import cast

from sqlalchemy import case, not_, null, select, update
from sqlalchemy.orm import Session

from medclose.domain.closure_state import ClosureRecord, GroupStatusRecord
from medclose.infrastructure.db.models_sqlalchemy import ClosureGroupStatus, HospitalClosure


def to_closure_record(closure: HospitalClosure) -> ClosureRecord:
    return ClosureRecord(
        id=cast(int, closure.id),
        hospital_id=cast(int, closure.user_hospital_id),
        period_start_calc=cast(date, closure.period_start_calc),
        period_end_calc=cast(date, closure.period_end_calc),
        period_start=cast(date, closure.period_start),
        period_end=cast(date, closure.period_end),
        is_adjusted=bool(closure.is_adjusted),
        adjust_reason=cast(str | None, closure.adjust_reason),
    )


def to_status_record(status: ClosureGroupStatus) -> GroupStatusRecord:
    return GroupStatusRecord(
        id=cast(int, status.id),
        closure_id=cast(int, status.closure_id),
        group_id=cast(int | None, status.user_report_group_id),
        is_consolidated=bool(status.is_consolidated),
        consolidated_at=cast(datetime | None, status.consolidated_at),
    )


class ClosureRepository:
    def get(self, session: Session, closure_id: int) -> HospitalClosure | None:
        stmt = select(HospitalClosure).where(HospitalClosure.id == closure_id)
        return session.execute(stmt).scalar_one_or_none()

    def get_by_key(
        self, session: Session, hospital_id: int, period_start_calc: date, period_end_calc: date
    ) -> HospitalClosure | None:
        stmt = select(HospitalClosure).where(
            HospitalClosure.user_hospital_id == hospital_id,
            HospitalClosure.period_start_calc == period_start_calc,
            HospitalClosure.period_end_calc == period_end_calc,
        )
        return session.execute(stmt).scalar_one_or_none()

    def insert(
        self,
        session: Session,
        *,
        user_id: int,
        hospital_id: int,
        period_start_calc: date,
        period_end_calc: date,
    ) -> HospitalClosure:
        """Insert inside a SAVEPOINT; a uniqueness violation leaves the outer transaction usable."""
        closure = HospitalClosure(
            user_id=user_id,
            user_hospital_id=hospital_id,
            period_start_calc=period_start_calc,
            period_end_calc=period_end_calc,
            period_start=period_start_calc,
            period_end=period_end_calc,
            is_adjusted=False,
        )
        with session.begin_nested():
            session.add(closure)
        return closure

    def update_period(
        self,
        session: Session,
        closure_id: int,
        *,
        period_start: date,
        period_end: date,
        is_adjusted: bool,
        adjust_reason: str | None,
    ) -> None:
        stmt = (
            update(HospitalClosure)
            .where(HospitalClosure.id == closure_id)
            .values(
                period_start=period_start,
                period_end=period_end,
                is_adjusted=is_adjusted,
                adjust_reason=adjust_reason,
            )
        )
        session.execute(stmt)

    def list_statuses(self, session: Session, closure_id: int) -> list[ClosureGroupStatus]:
        stmt = (
            select(ClosureGroupStatus)
            .where(ClosureGroupStatus.closure_id == closure_id)
            .order_by(ClosureGroupStatus.id.asc())
        )
        return list(session.execute(stmt).scalars())

    def get_status(self, session: Session, status_id: int) -> ClosureGroupStatus | None:
        stmt = select(ClosureGroupStatus).where(ClosureGroupStatus.id == status_id)
        return session.execute(stmt).scalar_one_or_none()

    def insert_status(self, session: Session, closure_id: int, group_id: int | None) -> ClosureGroupStatus:
        status = ClosureGroupStatus(closure_id=closure_id, user_report_group_id=group_id, is_consolidated=False)
        with session.begin_nested():
            session.add(status)
        return status

    def set_consolidated(
        self,
        session: Session,
        status_id: int,
        *,
        is_consolidated: bool,
        consolidated_at: datetime | None,
    ) -> None:
        stmt = (
            update(ClosureGroupStatus)
            .where(ClosureGroupStatus.id == status_id)
            .values(is_consolidated=is_consolidated, consolidated_at=consolidated_at)
        )
        session.execute(stmt)

    def toggle_consolidated(self, session: Session, status_id: int, *, consolidated_at: datetime) -> bool:
        """Flip the flag in a single UPDATE; False when no row matched."""
        stmt = (
            update(ClosureGroupStatus)
            .where(ClosureGroupStatus.id == status_id)
            .values(
                is_consolidated=not_(ClosureGroupStatus.is_consolidated),
                consolidated_at=case((ClosureGroupStatus.is_consolidated, null()), else_=consolidated_at),
            )
            .execution_options(synchronize_session=False)
        )
        return session.execute(stmt).rowcount > 0
