from __future__ import annotations

import json
from typing import Any, cast

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from medclose.domain.aggregation import ActRecord, GroupRecord
from medclose.domain.constants import UnitType
from medclose.domain.pricing import ActPricing
from medclose.infrastructure.db.models_sqlalchemy import MedicalAct, ReportGroup


def load_pricing_rules(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    rules = json.loads(raw)
    return rules if isinstance(rules, dict) else None


def to_pricing(act: MedicalAct) -> ActPricing:
    return ActPricing.from_row(
        unit_value=cast(float | None, act.unit_value),
        unit_value_principal=cast(float | None, act.unit_value_principal),
        unit_value_assistant=cast(float | None, act.unit_value_assistant),
        supports_roles=cast(bool, act.supports_roles),
        pricing_rules=load_pricing_rules(cast(str | None, act.pricing_rules_json)),
        act_name=cast(str, act.name),
    )


def to_group_record(group: ReportGroup | None) -> GroupRecord | None:
    if group is None:
        return None
    return GroupRecord(id=cast(int, group.id), name=cast(str, group.name), sort_order=cast(int, group.sort_order))


def to_act_record(act: MedicalAct) -> ActRecord:
    return ActRecord(
        id=cast(int, act.id),
        name=cast(str, act.name),
        unit_type=UnitType(cast(str, act.unit_type)),
        pricing=to_pricing(act),
        requires_patients=bool(act.requires_patients),
        group=to_group_record(cast(ReportGroup | None, act.group)),
    )


class ActRepository:
    def get(self, session: Session, act_id: int, user_id: int | None = None) -> MedicalAct | None:
        stmt = select(MedicalAct).where(MedicalAct.id == act_id)
        if user_id is not None:
            stmt = stmt.where(MedicalAct.user_id == user_id)
        return session.execute(stmt).unique().scalar_one_or_none()

    def list_for_hospital(
        self, session: Session, *, user_id: int, hospital_id: int, active_only: bool = True
    ) -> list[MedicalAct]:
        stmt = select(MedicalAct).where(MedicalAct.user_id == user_id, MedicalAct.user_hospital_id == hospital_id)
        if active_only:
            stmt = stmt.where(MedicalAct.is_active.is_(True))
        stmt = stmt.order_by(MedicalAct.sort_order.asc(), MedicalAct.name.asc())
        return list(session.execute(stmt).unique().scalars())

    def hospital_ids_with_active_acts(self, session: Session, user_id: int) -> set[int]:
        stmt = select(MedicalAct.user_hospital_id).where(
            MedicalAct.user_id == user_id, MedicalAct.is_active.is_(True)
        )
        return {cast(int, row) for row in session.execute(stmt).scalars()}

    def create(self, session: Session, **values: Any) -> MedicalAct:
        act = MedicalAct(**values)
        session.add(act)
        session.flush()
        return act

    def update(self, session: Session, act_id: int, **values: Any) -> None:
        session.execute(update(MedicalAct).where(MedicalAct.id == act_id).values(**values))


class ReportGroupRepository:
    def get(self, session: Session, group_id: int) -> ReportGroup | None:
        stmt = select(ReportGroup).where(ReportGroup.id == group_id)
        return session.execute(stmt).scalar_one_or_none()

    def list_active(self, session: Session, hospital_id: int) -> list[ReportGroup]:
        stmt = (
            select(ReportGroup)
            .where(ReportGroup.user_hospital_id == hospital_id, ReportGroup.is_active.is_(True))
            .order_by(ReportGroup.sort_order.asc(), ReportGroup.id.asc())
        )
        return list(session.execute(stmt).scalars())

    def max_sort_order(self, session: Session, hospital_id: int) -> int | None:
        stmt = select(func.max(ReportGroup.sort_order)).where(
            ReportGroup.user_hospital_id == hospital_id, ReportGroup.is_active.is_(True)
        )
        return session.execute(stmt).scalar_one_or_none()

    def create(self, session: Session, *, user_id: int, hospital_id: int, name: str, sort_order: int) -> ReportGroup:
        group = ReportGroup(user_id=user_id, user_hospital_id=hospital_id, name=name, sort_order=sort_order)
        session.add(group)
        session.flush()
        return group
