from __future__ import annotations

from datetime import date, datetime
from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.orm import Session

from medclose.domain.aggregation import EntryRecord
from medclose.domain.naive_clock import format_instant
from medclose.infrastructure.db.models_sqlalchemy import Entry, MedicalAct
from medclose.infrastructure.db.repositories.act_repo import to_act_record


def _instant_or_none(value: datetime | None) -> str | None:
    return format_instant(value) if value is not None else None


def to_entry_record(entry: Entry) -> EntryRecord:
    return EntryRecord(
        id=cast(int, entry.id),
        entry_date=cast(date, entry.date),
        quantity=cast(float, entry.quantity),
        act=to_act_record(cast(MedicalAct, entry.act)),
        start_at=_instant_or_none(cast(datetime | None, entry.start_at)),
        end_at=_instant_or_none(cast(datetime | None, entry.end_at)),
        notes=cast(str | None, entry.notes),
        patients_count=cast(int | None, entry.patients_count),
        role=cast(str | None, entry.role),
        total_amount=cast(float | None, entry.total_amount),
    )


class EntryRepository:
    def get(self, session: Session, entry_id: int, user_id: int) -> Entry | None:
        stmt = select(Entry).where(Entry.id == entry_id, Entry.user_id == user_id)
        return session.execute(stmt).unique().scalar_one_or_none()

    def create(self, session: Session, **values: Any) -> Entry:
        entry = Entry(**values)
        session.add(entry)
        session.flush()
        return entry

    def list_between(
        self,
        session: Session,
        *,
        user_id: int,
        date_from: date,
        date_to: date,
        hospital_id: int | None = None,
    ) -> list[Entry]:
        stmt = select(Entry).where(Entry.user_id == user_id, Entry.date >= date_from, Entry.date <= date_to)
        if hospital_id is not None:
            stmt = stmt.where(Entry.user_hospital_id == hospital_id)
        stmt = stmt.order_by(Entry.date.asc(), Entry.start_at.asc(), Entry.id.asc())
        return list(session.execute(stmt).unique().scalars())

    def list_for_period(
        self,
        session: Session,
        *,
        user_id: int,
        hospital_id: int,
        date_from: date,
        date_to: date,
    ) -> list[EntryRecord]:
        entries = self.list_between(
            session, user_id=user_id, date_from=date_from, date_to=date_to, hospital_id=hospital_id
        )
        return [to_entry_record(entry) for entry in entries]

    def group_ids_with_entries(
        self,
        session: Session,
        *,
        user_id: int,
        hospital_id: int,
        date_from: date,
        date_to: date,
    ) -> set[int | None]:
        stmt = (
            select(MedicalAct.user_report_group_id)
            .join(Entry, Entry.act_id == MedicalAct.id)
            .where(
                Entry.user_id == user_id,
                Entry.user_hospital_id == hospital_id,
                Entry.date >= date_from,
                Entry.date <= date_to,
            )
            .distinct()
        )
        return {cast(int | None, row) for row in session.execute(stmt).scalars()}
