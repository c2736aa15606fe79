"""Closure records and per-group consolidation flags.

A closure is keyed by ``(hospital, calculated start, calculated end)``. It is
created lazily the first time a period is opened and never duplicated: when
two callers race, the loser's insert violates the unique key inside a
SAVEPOINT and the winner's row is read back once.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import cast

from sqlalchemy.orm import Session

from medclose.application.dto.closure_dto import ClosureAdjustRequest, ClosureResponse, GroupStatusResponse
from medclose.domain.closure_state import (
    ClosureRecord,
    GroupStatusRecord,
    is_adjusted,
    missing_group_ids,
    normalize_reason,
    validate_effective_period,
)
from medclose.domain.errors import ConflictError, NotFoundError
from medclose.domain.naive_clock import format_date, parse_date
from medclose.infrastructure.db.errors import store_errors
from medclose.infrastructure.db.models_sqlalchemy import ClosureGroupStatus, HospitalClosure, utc_now
from medclose.infrastructure.db.repositories.audit_repo import AuditLogRepository
from medclose.infrastructure.db.repositories.closure_repo import (
    ClosureRepository,
    to_closure_record,
    to_status_record,
)
from medclose.infrastructure.db.session import session_scope

logger = logging.getLogger(__name__)


def _closure_response(record: ClosureRecord) -> ClosureResponse:
    return ClosureResponse.model_validate(record)


def _status_response(record: GroupStatusRecord) -> GroupStatusResponse:
    return GroupStatusResponse.model_validate(record)


class ClosureService:
    def __init__(
        self,
        closure_repo: ClosureRepository | None = None,
        audit_repo: AuditLogRepository | None = None,
        session_factory: Callable = session_scope,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.closure_repo = closure_repo or ClosureRepository()
        self.audit_repo = audit_repo or AuditLogRepository()
        self.session_factory = session_factory
        self.clock = clock

    # session-level steps, shared with ConsolidationService

    def get_or_create_closure(
        self,
        session: Session,
        *,
        user_id: int,
        hospital_id: int,
        calculated_start: date,
        calculated_end: date,
    ) -> HospitalClosure:
        validate_effective_period(calculated_start, calculated_end)
        key = {
            "hospital_id": hospital_id,
            "period_start_calc": format_date(calculated_start),
            "period_end_calc": format_date(calculated_end),
        }
        closure = self.closure_repo.get_by_key(session, hospital_id, calculated_start, calculated_end)
        if closure is not None:
            return closure
        try:
            with store_errors("ensure_closure", **key):
                closure = self.closure_repo.insert(
                    session,
                    user_id=user_id,
                    hospital_id=hospital_id,
                    period_start_calc=calculated_start,
                    period_end_calc=calculated_end,
                )
        except ConflictError:
            existing = self.closure_repo.get_by_key(session, hospital_id, calculated_start, calculated_end)
            if existing is None:
                raise
            logger.info("Closure %s created concurrently, using existing row", key)
            return existing
        logger.info("Closure %s created for %s", closure.id, key)
        return closure

    def backfill_statuses(
        self, session: Session, closure_id: int, group_ids: Iterable[int | None]
    ) -> dict[int | None, GroupStatusRecord]:
        rows = self.closure_repo.list_statuses(session, closure_id)
        existing = {cast(int | None, row.user_report_group_id) for row in rows}
        conflicted = False
        for group_id in missing_group_ids(list(group_ids), existing):
            try:
                with store_errors("ensure_group_status", closure_id=closure_id, group_id=group_id):
                    rows.append(self.closure_repo.insert_status(session, closure_id, group_id))
            except ConflictError:
                logger.info("Status for closure %s group %s created concurrently", closure_id, group_id)
                conflicted = True
        if conflicted:
            rows = self.closure_repo.list_statuses(session, closure_id)
        return {cast(int | None, row.user_report_group_id): to_status_record(row) for row in rows}

    def _require_closure(self, session: Session, closure_id: int, operation: str) -> HospitalClosure:
        closure = self.closure_repo.get(session, closure_id)
        if closure is None:
            raise NotFoundError("Cierre no encontrado", operation=operation, key={"closure_id": closure_id})
        return closure

    def _require_status(self, session: Session, status_id: int, operation: str) -> ClosureGroupStatus:
        status = self.closure_repo.get_status(session, status_id)
        if status is None:
            raise NotFoundError(
                "Estado de consolidación no encontrado", operation=operation, key={"status_id": status_id}
            )
        return status

    # public operations

    def ensure_closure(
        self, user_id: int, hospital_id: int, calculated_start: date, calculated_end: date
    ) -> ClosureResponse:
        with store_errors("ensure_closure", hospital_id=hospital_id), self.session_factory() as session:
            closure = self.get_or_create_closure(
                session,
                user_id=user_id,
                hospital_id=hospital_id,
                calculated_start=calculated_start,
                calculated_end=calculated_end,
            )
            return _closure_response(to_closure_record(closure))

    def ensure_group_statuses(self, closure_id: int, group_ids: Iterable[int | None]) -> list[GroupStatusResponse]:
        with store_errors("ensure_group_statuses", closure_id=closure_id), self.session_factory() as session:
            self._require_closure(session, closure_id, "ensure_group_statuses")
            statuses = self.backfill_statuses(session, closure_id, group_ids)
            return sorted((_status_response(record) for record in statuses.values()), key=lambda s: s.id)

    def get_closure(self, closure_id: int) -> ClosureResponse:
        with store_errors("get_closure", closure_id=closure_id), self.session_factory() as session:
            closure = self._require_closure(session, closure_id, "get_closure")
            return _closure_response(to_closure_record(closure))

    def set_consolidated(self, status_id: int, value: bool) -> GroupStatusResponse:
        with store_errors("set_consolidated", status_id=status_id), self.session_factory() as session:
            status = self._require_status(session, status_id, "set_consolidated")
            self.closure_repo.set_consolidated(
                session,
                status_id,
                is_consolidated=value,
                consolidated_at=self.clock() if value else None,
            )
            session.refresh(status)
            response = _status_response(to_status_record(status))
        logger.info("Group status %s consolidated=%s", status_id, value)
        return response

    def toggle_consolidated(self, status_id: int) -> GroupStatusResponse:
        # the UPDATE runs first so the write lock is taken before anything is read
        with store_errors("toggle_consolidated", status_id=status_id), self.session_factory() as session:
            if not self.closure_repo.toggle_consolidated(session, status_id, consolidated_at=self.clock()):
                raise NotFoundError(
                    "Estado de consolidación no encontrado",
                    operation="toggle_consolidated",
                    key={"status_id": status_id},
                )
            status = self._require_status(session, status_id, "toggle_consolidated")
            response = _status_response(to_status_record(status))
        logger.info("Group status %s consolidated=%s", status_id, response.is_consolidated)
        return response

    def adjust_period(
        self, closure_id: int, request: ClosureAdjustRequest, user_id: int | None = None
    ) -> ClosureResponse:
        start = parse_date(request.period_start) if request.period_start else None
        end = parse_date(request.period_end) if request.period_end else None
        start, end = validate_effective_period(start, end)
        reason = normalize_reason(request.reason)

        with store_errors("adjust_period", closure_id=closure_id), self.session_factory() as session:
            closure = self._require_closure(session, closure_id, "adjust_period")
            adjusted = is_adjusted(
                cast(date, closure.period_start_calc), cast(date, closure.period_end_calc), start, end
            )
            self.closure_repo.update_period(
                session,
                closure_id,
                period_start=start,
                period_end=end,
                is_adjusted=adjusted,
                adjust_reason=reason,
            )
            self.audit_repo.add_event(
                session,
                user_id=user_id,
                entity_type="hospital_closure",
                entity_id=str(closure_id),
                action="adjust_period",
                payload={
                    "period_start": format_date(start),
                    "period_end": format_date(end),
                    "is_adjusted": adjusted,
                    "reason": reason,
                },
            )
            session.refresh(closure)
            response = _closure_response(to_closure_record(closure))
        logger.info("Closure %s period set to %s..%s (adjusted=%s)", closure_id, start, end, adjusted)
        return response

    def reset_period(self, closure_id: int, user_id: int | None = None) -> ClosureResponse:
        with store_errors("reset_period", closure_id=closure_id), self.session_factory() as session:
            closure = self._require_closure(session, closure_id, "reset_period")
            self.closure_repo.update_period(
                session,
                closure_id,
                period_start=cast(date, closure.period_start_calc),
                period_end=cast(date, closure.period_end_calc),
                is_adjusted=False,
                adjust_reason=None,
            )
            self.audit_repo.add_event(
                session,
                user_id=user_id,
                entity_type="hospital_closure",
                entity_id=str(closure_id),
                action="reset_period",
            )
            session.refresh(closure)
            response = _closure_response(to_closure_record(closure))
        logger.info("Closure %s period reset to calculated bounds", closure_id)
        return response
