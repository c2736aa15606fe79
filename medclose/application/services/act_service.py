from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any, cast

from sqlalchemy.orm import Session

from medclose.application.dto.act_dto import (
    MedicalActCreateRequest,
    MedicalActResponse,
    MedicalActUpdateRequest,
    ReportGroupCreateRequest,
    ReportGroupResponse,
    RoleValuesRequest,
)
from medclose.domain.errors import NotFoundError, ValidationFailureError
from medclose.domain.pricing import ActPricing, validate_act_pricing
from medclose.infrastructure.db.errors import store_errors
from medclose.infrastructure.db.models_sqlalchemy import MedicalAct, ReportGroup
from medclose.infrastructure.db.repositories.act_repo import (
    ActRepository,
    ReportGroupRepository,
    load_pricing_rules,
    to_pricing,
)
from medclose.infrastructure.db.repositories.hospital_repo import HospitalRepository
from medclose.infrastructure.db.session import session_scope

logger = logging.getLogger(__name__)


def _to_act_response(act: MedicalAct) -> MedicalActResponse:
    group = cast(ReportGroup | None, act.group)
    return MedicalActResponse(
        id=cast(int, act.id),
        hospital_id=cast(int, act.user_hospital_id),
        name=cast(str, act.name),
        unit_type=cast(str, act.unit_type),
        unit_value=cast(float | None, act.unit_value),
        supports_roles=bool(act.supports_roles),
        unit_value_principal=cast(float | None, act.unit_value_principal),
        unit_value_assistant=cast(float | None, act.unit_value_assistant),
        requires_patients=bool(act.requires_patients),
        pricing_rules=load_pricing_rules(cast(str | None, act.pricing_rules_json)),
        group=ReportGroupResponse.model_validate(group) if group else None,
        is_active=bool(act.is_active),
    )


class ActService:
    def __init__(
        self,
        act_repo: ActRepository | None = None,
        group_repo: ReportGroupRepository | None = None,
        hospital_repo: HospitalRepository | None = None,
        session_factory: Callable = session_scope,
    ) -> None:
        self.act_repo = act_repo or ActRepository()
        self.group_repo = group_repo or ReportGroupRepository()
        self.hospital_repo = hospital_repo or HospitalRepository()
        self.session_factory = session_factory

    def _require_hospital(self, session: Session, user_id: int, hospital_id: int, operation: str) -> None:
        if self.hospital_repo.get_assignment(session, user_id, hospital_id) is None:
            raise NotFoundError(
                "Hospital no encontrado", operation=operation, key={"user_id": user_id, "hospital_id": hospital_id}
            )

    def _require_act(self, session: Session, user_id: int, act_id: int, operation: str) -> MedicalAct:
        act = self.act_repo.get(session, act_id, user_id)
        if act is None:
            raise NotFoundError("Acto no encontrado", operation=operation, key={"act_id": act_id})
        return act

    def _check_group(self, session: Session, hospital_id: int, group_id: int | None, operation: str) -> None:
        if group_id is None:
            return
        group = self.group_repo.get(session, group_id)
        if group is None or cast(int, group.user_hospital_id) != hospital_id:
            raise NotFoundError("Grupo no encontrado", operation=operation, key={"group_id": group_id})

    def create_act(self, user_id: int, request: MedicalActCreateRequest) -> MedicalActResponse:
        pricing = ActPricing.from_row(
            unit_value=request.unit_value,
            unit_value_principal=request.unit_value_principal,
            unit_value_assistant=request.unit_value_assistant,
            supports_roles=request.supports_roles,
            pricing_rules=request.pricing_rules,
            act_name=request.name,
        )
        validate_act_pricing(pricing)
        key: dict[str, Any] = {"hospital_id": request.hospital_id, "name": request.name}
        with store_errors("create_act", **key), self.session_factory() as session:
            self._require_hospital(session, user_id, request.hospital_id, "create_act")
            self._check_group(session, request.hospital_id, request.group_id, "create_act")
            act = self.act_repo.create(
                session,
                user_id=user_id,
                user_hospital_id=request.hospital_id,
                name=request.name,
                unit_type=request.unit_type,
                unit_value=request.unit_value,
                supports_roles=request.supports_roles,
                unit_value_principal=request.unit_value_principal,
                unit_value_assistant=request.unit_value_assistant,
                requires_patients=request.requires_patients,
                pricing_rules_json=json.dumps(request.pricing_rules) if request.pricing_rules else None,
                user_report_group_id=request.group_id,
            )
            response = _to_act_response(act)
        logger.info("Act %s created for hospital %s", response.id, request.hospital_id)
        return response

    def update_role_values(self, user_id: int, act_id: int, request: RoleValuesRequest) -> MedicalActResponse:
        with store_errors("update_role_values", act_id=act_id), self.session_factory() as session:
            act = self._require_act(session, user_id, act_id, "update_role_values")
            if not act.supports_roles:
                raise ValidationFailureError("El acto no tiene roles")
            self.act_repo.update(
                session,
                act_id,
                unit_value_principal=request.unit_value_principal,
                unit_value_assistant=request.unit_value_assistant,
            )
            session.refresh(act)
            return _to_act_response(act)

    def set_unit_value(self, user_id: int, act_id: int, unit_value: float | None) -> MedicalActResponse:
        with store_errors("set_unit_value", act_id=act_id), self.session_factory() as session:
            act = self._require_act(session, user_id, act_id, "set_unit_value")
            current = to_pricing(act)
            validate_act_pricing(
                ActPricing(
                    unit_value=unit_value,
                    unit_value_principal=current.unit_value_principal,
                    unit_value_assistant=current.unit_value_assistant,
                    supports_roles=current.supports_roles,
                    nocturnal_multiplier=current.nocturnal_multiplier,
                )
            )
            self.act_repo.update(session, act_id, unit_value=unit_value)
            session.refresh(act)
            return _to_act_response(act)

    def update_act(self, user_id: int, act_id: int, request: MedicalActUpdateRequest) -> MedicalActResponse:
        """Replace an act's configuration.

        An act with roles drops its flat value; a flat act drops both role
        values. The act keeps its pricing rules.
        """
        unit_value = None if request.supports_roles else request.unit_value
        principal = request.unit_value_principal if request.supports_roles else None
        assistant = request.unit_value_assistant if request.supports_roles else None
        with store_errors("update_act", act_id=act_id, name=request.name), self.session_factory() as session:
            act = self._require_act(session, user_id, act_id, "update_act")
            validate_act_pricing(
                ActPricing(
                    unit_value=unit_value,
                    unit_value_principal=principal,
                    unit_value_assistant=assistant,
                    supports_roles=request.supports_roles,
                    nocturnal_multiplier=to_pricing(act).nocturnal_multiplier,
                )
            )
            self._check_group(session, cast(int, act.user_hospital_id), request.group_id, "update_act")
            self.act_repo.update(
                session,
                act_id,
                name=request.name,
                unit_type=request.unit_type,
                unit_value=unit_value,
                supports_roles=request.supports_roles,
                unit_value_principal=principal,
                unit_value_assistant=assistant,
                requires_patients=request.requires_patients,
                user_report_group_id=request.group_id,
            )
            session.refresh(act)
            response = _to_act_response(act)
        logger.info("Act %s updated", act_id)
        return response

    def assign_group(self, user_id: int, act_id: int, group_id: int | None) -> MedicalActResponse:
        with store_errors("assign_group", act_id=act_id, group_id=group_id), self.session_factory() as session:
            act = self._require_act(session, user_id, act_id, "assign_group")
            self._check_group(session, cast(int, act.user_hospital_id), group_id, "assign_group")
            self.act_repo.update(session, act_id, user_report_group_id=group_id)
            session.refresh(act)
            return _to_act_response(act)

    def list_acts(self, user_id: int, hospital_id: int) -> list[MedicalActResponse]:
        with store_errors("list_acts", hospital_id=hospital_id), self.session_factory() as session:
            acts = self.act_repo.list_for_hospital(session, user_id=user_id, hospital_id=hospital_id)
            return [_to_act_response(act) for act in acts]

    def create_group(self, user_id: int, request: ReportGroupCreateRequest) -> ReportGroupResponse:
        with store_errors("create_group", hospital_id=request.hospital_id), self.session_factory() as session:
            self._require_hospital(session, user_id, request.hospital_id, "create_group")
            current_max = self.group_repo.max_sort_order(session, request.hospital_id)
            group = self.group_repo.create(
                session,
                user_id=user_id,
                hospital_id=request.hospital_id,
                name=request.name,
                sort_order=(current_max + 1) if current_max is not None else 1,
            )
            return ReportGroupResponse.model_validate(group)

    def list_groups(self, hospital_id: int) -> list[ReportGroupResponse]:
        with store_errors("list_groups", hospital_id=hospital_id), self.session_factory() as session:
            return [ReportGroupResponse.model_validate(g) for g in self.group_repo.list_active(session, hospital_id)]
