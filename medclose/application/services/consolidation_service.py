from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from typing import cast

from medclose.application.dto.closure_dto import ClosureResponse
from medclose.application.dto.consolidation_dto import ConsolidationBreakdownResponse, GroupTotalsResponse
from medclose.application.services.closure_service import ClosureService
from medclose.config import settings
from medclose.domain.aggregation import aggregate_entries, attach_statuses, grand_total
from medclose.domain.constants import MonthEndPolicy
from medclose.domain.errors import NotFoundError, ValidationFailureError
from medclose.domain.periods import period_for
from medclose.infrastructure.db.errors import store_errors
from medclose.infrastructure.db.repositories.act_repo import ReportGroupRepository
from medclose.infrastructure.db.repositories.closure_repo import to_closure_record
from medclose.infrastructure.db.repositories.entry_repo import EntryRepository
from medclose.infrastructure.db.repositories.hospital_repo import HospitalRepository, to_cycle
from medclose.infrastructure.db.session import session_scope

logger = logging.getLogger(__name__)


class ConsolidationService:
    def __init__(
        self,
        closure_service: ClosureService | None = None,
        hospital_repo: HospitalRepository | None = None,
        group_repo: ReportGroupRepository | None = None,
        entry_repo: EntryRepository | None = None,
        session_factory: Callable = session_scope,
        month_end_policy: MonthEndPolicy | str | None = None,
        ungrouped_sort_order: int | None = None,
    ) -> None:
        self.closure_service = closure_service or ClosureService(session_factory=session_factory)
        self.hospital_repo = hospital_repo or HospitalRepository()
        self.group_repo = group_repo or ReportGroupRepository()
        self.entry_repo = entry_repo or EntryRepository()
        self.session_factory = session_factory
        self.policy = MonthEndPolicy(month_end_policy or settings.month_end_policy)
        self.ungrouped_sort_order = (
            settings.ungrouped_sort_order if ungrouped_sort_order is None else ungrouped_sort_order
        )

    def load_breakdown(self, user_id: int, hospital_id: int, closing_date: date) -> ConsolidationBreakdownResponse:
        """Grouped totals for one closing.

        Opens (or reuses) the closure for the calculated period, backfills a
        status row per active group plus the ungrouped bucket, then aggregates
        the entries inside the effective, possibly adjusted, window.
        """
        key = {"user_id": user_id, "hospital_id": hospital_id, "closing_date": closing_date.isoformat()}
        with store_errors("load_breakdown", **key), self.session_factory() as session:
            assignment = self.hospital_repo.get_assignment(session, user_id, hospital_id)
            if assignment is None:
                raise NotFoundError("Hospital no encontrado", operation="load_breakdown", key=key)
            cycle = to_cycle(assignment)
            if not cycle.closing_day:
                raise ValidationFailureError("El hospital no tiene día de cierre configurado")

            period = period_for(closing_date, cycle.closing_day, self.policy)
            closure = self.closure_service.get_or_create_closure(
                session,
                user_id=user_id,
                hospital_id=hospital_id,
                calculated_start=period.start,
                calculated_end=period.end,
            )
            closure_record = to_closure_record(closure)

            entries = self.entry_repo.list_for_period(
                session,
                user_id=user_id,
                hospital_id=hospital_id,
                date_from=closure_record.period_start,
                date_to=closure_record.period_end,
            )

            group_ids: list[int | None] = [
                cast(int, group.id) for group in self.group_repo.list_active(session, hospital_id)
            ]
            # inactive groups still holding entries in the window need a status too
            group_ids += [entry.act.group_id for entry in entries if entry.act.group_id not in group_ids]
            statuses = self.closure_service.backfill_statuses(session, closure_record.id, group_ids)

        groups = attach_statuses(aggregate_entries(entries, self.ungrouped_sort_order), statuses)
        logger.debug(
            "Breakdown for hospital %s closing %s: %s entries in %s groups",
            hospital_id,
            closing_date,
            len(entries),
            len(groups),
        )
        return ConsolidationBreakdownResponse(
            hospital_id=hospital_id,
            hospital_name=cycle.hospital_name,
            closing_date=closing_date,
            closure=ClosureResponse.model_validate(closure_record),
            groups=[GroupTotalsResponse.model_validate(group) for group in groups],
            grand_total=grand_total(groups),
        )
