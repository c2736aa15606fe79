from __future__ import annotations

import logging
from collections.abc import Callable
from typing import cast

from medclose.application.dto.hospital_dto import (
    CatalogHospitalResponse,
    CustomHospitalRequest,
    HospitalAssignmentResponse,
)
from medclose.domain.errors import ConflictError, NotFoundError
from medclose.infrastructure.db.errors import store_errors
from medclose.infrastructure.db.models_sqlalchemy import HospitalCatalog, UserHospital
from medclose.infrastructure.db.repositories.hospital_repo import HospitalRepository
from medclose.infrastructure.db.session import session_scope

logger = logging.getLogger(__name__)


def _to_assignment_response(assignment: UserHospital) -> HospitalAssignmentResponse:
    catalog = cast(HospitalCatalog | None, assignment.hospital)
    return HospitalAssignmentResponse(
        id=cast(int, assignment.id),
        catalog_hospital_id=cast(int, assignment.catalog_hospital_id),
        hospital=CatalogHospitalResponse.model_validate(catalog) if catalog else None,
    )


class HospitalService:
    def __init__(
        self,
        hospital_repo: HospitalRepository | None = None,
        session_factory: Callable = session_scope,
    ) -> None:
        self.hospital_repo = hospital_repo or HospitalRepository()
        self.session_factory = session_factory

    def list_catalog(self) -> list[CatalogHospitalResponse]:
        with store_errors("list_catalog"), self.session_factory() as session:
            return [CatalogHospitalResponse.model_validate(row) for row in self.hospital_repo.list_catalog(session)]

    def create_catalog_hospital(self, name: str, closing_day: int | None) -> CatalogHospitalResponse:
        request = CustomHospitalRequest(name=name, closing_day=closing_day)
        with store_errors("create_catalog_hospital", name=request.name), self.session_factory() as session:
            hospital = self.hospital_repo.create_catalog(
                session, name=request.name, closing_day=request.closing_day
            )
            return CatalogHospitalResponse.model_validate(hospital)

    def list_assignments(self, user_id: int) -> list[HospitalAssignmentResponse]:
        with store_errors("list_assignments", user_id=user_id), self.session_factory() as session:
            return [_to_assignment_response(row) for row in self.hospital_repo.list_assignments(session, user_id)]

    def add_hospital(self, user_id: int, catalog_id: int) -> HospitalAssignmentResponse:
        key = {"user_id": user_id, "catalog_id": catalog_id}
        try:
            with store_errors("add_hospital", **key), self.session_factory() as session:
                if self.hospital_repo.get_catalog(session, catalog_id) is None:
                    raise NotFoundError("Hospital no encontrado", operation="add_hospital", key=key)
                assignment = self.hospital_repo.add_assignment(
                    session, user_id=user_id, catalog_hospital_id=catalog_id
                )
                response = _to_assignment_response(assignment)
        except ConflictError as exc:
            raise ConflictError("Este hospital ya está agregado", operation=exc.operation, key=exc.key) from exc
        logger.info("Hospital %s assigned to user %s", catalog_id, user_id)
        return response

    def create_custom_hospital(self, user_id: int, request: CustomHospitalRequest) -> HospitalAssignmentResponse:
        with store_errors("create_custom_hospital", user_id=user_id), self.session_factory() as session:
            hospital = self.hospital_repo.create_catalog(
                session,
                name=request.name,
                closing_day=request.closing_day,
                is_custom=True,
                created_by=user_id,
            )
            assignment = self.hospital_repo.add_assignment(
                session, user_id=user_id, catalog_hospital_id=cast(int, hospital.id)
            )
            response = _to_assignment_response(assignment)
        logger.info("Custom hospital %r created for user %s", request.name, user_id)
        return response

    def remove_hospital(self, user_id: int, hospital_id: int) -> None:
        key = {"user_id": user_id, "hospital_id": hospital_id}
        with store_errors("remove_hospital", **key), self.session_factory() as session:
            if not self.hospital_repo.remove_assignment(session, user_id=user_id, hospital_id=hospital_id):
                raise NotFoundError("Hospital no encontrado", operation="remove_hospital", key=key)
        logger.info("Hospital %s removed for user %s", hospital_id, user_id)
