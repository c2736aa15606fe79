from __future__ import annotations

from typing import cast

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from medclose.domain.periods import HospitalCycle
from medclose.infrastructure.db.models_sqlalchemy import HospitalCatalog, UserHospital


def to_cycle(assignment: UserHospital) -> HospitalCycle:
    # the catalog join yields zero or one record
    catalog = cast(HospitalCatalog | None, assignment.hospital)
    return HospitalCycle(
        hospital_id=cast(int, assignment.id),
        hospital_name=cast(str, catalog.name) if catalog else "",
        closing_day=cast(int | None, catalog.closing_day) if catalog else None,
    )


class HospitalRepository:
    def list_catalog(self, session: Session) -> list[HospitalCatalog]:
        stmt = select(HospitalCatalog).where(HospitalCatalog.is_custom.is_(False))
        stmt = stmt.order_by(HospitalCatalog.name.asc())
        return list(session.execute(stmt).scalars())

    def get_catalog(self, session: Session, catalog_id: int) -> HospitalCatalog | None:
        stmt = select(HospitalCatalog).where(HospitalCatalog.id == catalog_id)
        return session.execute(stmt).scalar_one_or_none()

    def create_catalog(
        self,
        session: Session,
        *,
        name: str,
        closing_day: int | None,
        is_custom: bool = False,
        created_by: int | None = None,
    ) -> HospitalCatalog:
        hospital = HospitalCatalog(name=name, closing_day=closing_day, is_custom=is_custom, created_by=created_by)
        session.add(hospital)
        session.flush()
        return hospital

    def list_assignments(self, session: Session, user_id: int) -> list[UserHospital]:
        stmt = select(UserHospital).where(UserHospital.user_id == user_id).order_by(UserHospital.id.asc())
        return list(session.execute(stmt).unique().scalars())

    def get_assignment(self, session: Session, user_id: int, hospital_id: int) -> UserHospital | None:
        stmt = select(UserHospital).where(UserHospital.id == hospital_id, UserHospital.user_id == user_id)
        return session.execute(stmt).unique().scalar_one_or_none()

    def add_assignment(self, session: Session, *, user_id: int, catalog_hospital_id: int) -> UserHospital:
        assignment = UserHospital(user_id=user_id, catalog_hospital_id=catalog_hospital_id)
        session.add(assignment)
        session.flush()
        return assignment

    def remove_assignment(self, session: Session, *, user_id: int, hospital_id: int) -> bool:
        # acts, groups, entries and closures go with it through ON DELETE CASCADE
        stmt = delete(UserHospital).where(UserHospital.id == hospital_id, UserHospital.user_id == user_id)
        return session.execute(stmt).rowcount > 0

    def list_cycles(self, session: Session, user_id: int) -> list[HospitalCycle]:
        return [to_cycle(assignment) for assignment in self.list_assignments(session, user_id)]
