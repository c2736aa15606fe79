from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from medclose.application.services.act_service import ActService
from medclose.application.services.closing_service import ClosingService
from medclose.application.services.closure_service import ClosureService
from medclose.application.services.consolidation_service import ConsolidationService
from medclose.application.services.entry_service import EntryService
from medclose.application.services.hospital_service import HospitalService
from medclose.config import settings
from medclose.infrastructure.db.repositories.act_repo import ActRepository, ReportGroupRepository
from medclose.infrastructure.db.repositories.audit_repo import AuditLogRepository
from medclose.infrastructure.db.repositories.closure_repo import ClosureRepository
from medclose.infrastructure.db.repositories.entry_repo import EntryRepository
from medclose.infrastructure.db.repositories.hospital_repo import HospitalRepository
from medclose.infrastructure.db.session import session_scope


@dataclass
class Container:
    audit_repo: AuditLogRepository
    hospital_repo: HospitalRepository
    act_repo: ActRepository
    group_repo: ReportGroupRepository
    entry_repo: EntryRepository
    closure_repo: ClosureRepository

    hospital_service: HospitalService
    act_service: ActService
    entry_service: EntryService
    closing_service: ClosingService
    closure_service: ClosureService
    consolidation_service: ConsolidationService


def build_container(session_factory: Callable = session_scope) -> Container:
    audit_repo = AuditLogRepository()
    hospital_repo = HospitalRepository()
    act_repo = ActRepository()
    group_repo = ReportGroupRepository()
    entry_repo = EntryRepository()
    closure_repo = ClosureRepository()

    hospital_service = HospitalService(hospital_repo=hospital_repo, session_factory=session_factory)
    act_service = ActService(
        act_repo=act_repo, group_repo=group_repo, hospital_repo=hospital_repo, session_factory=session_factory
    )
    entry_service = EntryService(
        entry_repo=entry_repo, act_repo=act_repo, hospital_repo=hospital_repo, session_factory=session_factory
    )
    closing_service = ClosingService(
        hospital_repo=hospital_repo,
        closure_repo=closure_repo,
        entry_repo=entry_repo,
        act_repo=act_repo,
        session_factory=session_factory,
        history_cutoff=settings.history_cutoff,
        month_end_policy=settings.month_end_policy,
    )
    closure_service = ClosureService(
        closure_repo=closure_repo, audit_repo=audit_repo, session_factory=session_factory
    )
    consolidation_service = ConsolidationService(
        closure_service=closure_service,
        hospital_repo=hospital_repo,
        group_repo=group_repo,
        entry_repo=entry_repo,
        session_factory=session_factory,
        month_end_policy=settings.month_end_policy,
        ungrouped_sort_order=settings.ungrouped_sort_order,
    )

    return Container(
        audit_repo=audit_repo,
        hospital_repo=hospital_repo,
        act_repo=act_repo,
        group_repo=group_repo,
        entry_repo=entry_repo,
        closure_repo=closure_repo,
        hospital_service=hospital_service,
        act_service=act_service,
        entry_service=entry_service,
        closing_service=closing_service,
        closure_service=closure_service,
        consolidation_service=consolidation_service,
    )
