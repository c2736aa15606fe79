from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, timedelta
from typing import cast

from sqlalchemy.orm import Session

from medclose.application.dto.consolidation_dto import ClosingInfoResponse, ClosingScheduleResponse
from medclose.config import settings
from medclose.domain.constants import MonthEndPolicy
from medclose.domain.periods import (
    ClosingInfo,
    HospitalCycle,
    build_schedule,
    closing_events,
    past_closings,
    period_for,
)
from medclose.infrastructure.db.errors import store_errors
from medclose.infrastructure.db.repositories.act_repo import ActRepository
from medclose.infrastructure.db.repositories.closure_repo import ClosureRepository
from medclose.infrastructure.db.repositories.entry_repo import EntryRepository
from medclose.infrastructure.db.repositories.hospital_repo import HospitalRepository
from medclose.infrastructure.db.session import session_scope

logger = logging.getLogger(__name__)

UPCOMING_WINDOW_DAYS = 7


class ClosingService:
    def __init__(
        self,
        hospital_repo: HospitalRepository | None = None,
        closure_repo: ClosureRepository | None = None,
        entry_repo: EntryRepository | None = None,
        act_repo: ActRepository | None = None,
        session_factory: Callable = session_scope,
        history_cutoff: date | None = None,
        month_end_policy: MonthEndPolicy | str | None = None,
    ) -> None:
        self.hospital_repo = hospital_repo or HospitalRepository()
        self.closure_repo = closure_repo or ClosureRepository()
        self.entry_repo = entry_repo or EntryRepository()
        self.act_repo = act_repo or ActRepository()
        self.session_factory = session_factory
        self.history_cutoff = history_cutoff or settings.history_cutoff
        self.policy = MonthEndPolicy(month_end_policy or settings.month_end_policy)

    def _cycles(self, session: Session, user_id: int) -> list[HospitalCycle]:
        return self.hospital_repo.list_cycles(session, user_id)

    def list_closings(self, user_id: int, today: date) -> ClosingScheduleResponse:
        with store_errors("list_closings", user_id=user_id), self.session_factory() as session:
            cycles = self._cycles(session, user_id)
        schedule = build_schedule(cycles, today, self.history_cutoff, self.policy)
        return ClosingScheduleResponse.model_validate(schedule)

    def closing_events(self, user_id: int, range_start: date, range_end: date, today: date) -> list[ClosingInfoResponse]:
        with store_errors("closing_events", user_id=user_id), self.session_factory() as session:
            cycles = self._cycles(session, user_id)
        events = closing_events(cycles, range_start, range_end, today, self.policy)
        return [ClosingInfoResponse.model_validate(info) for info in events]

    def upcoming_closings(
        self, user_id: int, today: date, days: int = UPCOMING_WINDOW_DAYS
    ) -> list[ClosingInfoResponse]:
        """Closings falling between today and ``days`` ahead, inclusive."""
        return self.closing_events(user_id, today, today + timedelta(days=days), today)

    def hospitals_without_acts(self, user_id: int) -> list[int]:
        with store_errors("hospitals_without_acts", user_id=user_id), self.session_factory() as session:
            with_acts = self.act_repo.hospital_ids_with_active_acts(session, user_id)
            return [cycle.hospital_id for cycle in self._cycles(session, user_id) if cycle.hospital_id not in with_acts]

    def _is_pending(self, session: Session, user_id: int, info: ClosingInfo) -> bool:
        closure = self.closure_repo.get_by_key(session, info.hospital_id, info.period.start, info.period.end)
        start, end = info.period.start, info.period.end
        if closure is not None:
            start, end = cast(date, closure.period_start), cast(date, closure.period_end)
        group_ids = self.entry_repo.group_ids_with_entries(
            session, user_id=user_id, hospital_id=info.hospital_id, date_from=start, date_to=end
        )
        if not group_ids:
            return False
        if closure is None:
            return True
        consolidated = {
            cast(int | None, row.user_report_group_id)
            for row in self.closure_repo.list_statuses(session, cast(int, closure.id))
            if row.is_consolidated
        }
        return not group_ids <= consolidated

    def count_pending_consolidations(self, user_id: int, today: date) -> int:
        """Past closings with at least one report group holding entries that is not consolidated."""
        with store_errors("count_pending_consolidations", user_id=user_id), self.session_factory() as session:
            pending = 0
            for cycle in self._cycles(session, user_id):
                if not cycle.closing_day:
                    continue
                for closing_date in past_closings(today, cycle.closing_day, self.history_cutoff, self.policy):
                    info = ClosingInfo(
                        hospital_id=cycle.hospital_id,
                        hospital_name=cycle.hospital_name,
                        closing_date=closing_date,
                        closing_day=cycle.closing_day,
                        period=period_for(closing_date, cycle.closing_day, self.policy),
                        is_past=True,
                    )
                    if self._is_pending(session, user_id, info):
                        pending += 1
        logger.debug("User %s has %s pending consolidations", user_id, pending)
        return pending
