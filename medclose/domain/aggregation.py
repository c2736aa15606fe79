"""Grouped totals for the entries of one hospital and one period.

Entries are bucketed by report group (``None`` for the ungrouped bucket) and
then by act. Hour totals shown on a breakdown follow two rules:

* ``hours`` acts recompute each entry from its literal start/end wall times,
  reading an earlier end as crossing midnight, and fall back to the stored
  quantity when either bound is missing;
* ``units`` acts always use the stored quantity.

``total_quantity`` is always the raw sum of stored quantities.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date

from medclose.domain.closure_state import GroupStatusRecord
from medclose.domain.constants import UNGROUPED_GROUP_NAME, UNGROUPED_SORT_ORDER, UnitType
from medclose.domain.naive_clock import wall_clock_hours
from medclose.domain.pricing import ActPricing, entry_value


@dataclass(frozen=True, slots=True)
class GroupRecord:
    id: int
    name: str
    sort_order: int


@dataclass(frozen=True, slots=True)
class ActRecord:
    id: int
    name: str
    unit_type: UnitType
    pricing: ActPricing
    requires_patients: bool = False
    group: GroupRecord | None = None

    @property
    def group_id(self) -> int | None:
        return self.group.id if self.group else None


@dataclass(frozen=True, slots=True)
class EntryRecord:
    id: int
    entry_date: date
    quantity: float
    act: ActRecord
    start_at: str | None = None
    end_at: str | None = None
    notes: str | None = None
    patients_count: int | None = None
    role: str | None = None
    total_amount: float | None = None


@dataclass(slots=True)
class EntryDetail:
    id: int
    entry_date: date
    start_at: str | None
    end_at: str | None
    quantity: float
    display_hours: float
    value: float
    notes: str | None = None
    role: str | None = None


@dataclass(slots=True)
class ActTotals:
    act_id: int
    act_name: str
    unit_type: UnitType
    total_quantity: float = 0.0
    display_quantity: float = 0.0
    total_value: float = 0.0
    total_patients: int | None = None
    entries: list[EntryDetail] = field(default_factory=list)


@dataclass(slots=True)
class GroupTotals:
    group_id: int | None
    group_name: str
    sort_order: int
    acts: list[ActTotals] = field(default_factory=list)
    total_value: float = 0.0
    is_consolidated: bool = False
    status_id: int | None = None


def display_hours(entry: EntryRecord) -> float:
    if entry.act.unit_type is UnitType.HOURS and entry.start_at and entry.end_at:
        return wall_clock_hours(entry.start_at, entry.end_at)
    return entry.quantity


def _accumulate(act_totals: ActTotals, entry: EntryRecord, value: float) -> None:
    hours = display_hours(entry)
    act_totals.total_quantity += entry.quantity
    act_totals.display_quantity += hours
    act_totals.total_value += value
    if entry.act.requires_patients and entry.patients_count:
        act_totals.total_patients = (act_totals.total_patients or 0) + entry.patients_count
    act_totals.entries.append(
        EntryDetail(
            id=entry.id,
            entry_date=entry.entry_date,
            start_at=entry.start_at,
            end_at=entry.end_at,
            quantity=entry.quantity,
            display_hours=hours,
            value=value,
            notes=entry.notes,
            role=entry.role,
        )
    )


def aggregate_entries(
    entries: Iterable[EntryRecord],
    ungrouped_sort_order: int = UNGROUPED_SORT_ORDER,
) -> list[GroupTotals]:
    groups: dict[int | None, GroupTotals] = {}
    acts: dict[int | None, dict[int, ActTotals]] = {}

    for entry in entries:
        act = entry.act
        group_key = act.group_id
        if group_key not in groups:
            groups[group_key] = GroupTotals(
                group_id=group_key,
                group_name=act.group.name if act.group else UNGROUPED_GROUP_NAME,
                sort_order=act.group.sort_order if act.group else ungrouped_sort_order,
            )
            acts[group_key] = {}
        group_acts = acts[group_key]
        if act.id not in group_acts:
            group_acts[act.id] = ActTotals(act_id=act.id, act_name=act.name, unit_type=act.unit_type)

        value = entry_value(entry.total_amount, entry.quantity, act.pricing, entry.role)
        _accumulate(group_acts[act.id], entry, value)
        groups[group_key].total_value += value

    for group_key, group in groups.items():
        group.acts = list(acts[group_key].values())

    return sorted(
        groups.values(),
        key=lambda group: (group.sort_order, group.group_id is None, group.group_name),
    )


def attach_statuses(
    groups: Iterable[GroupTotals], statuses: Mapping[int | None, GroupStatusRecord]
) -> list[GroupTotals]:
    attached = list(groups)
    for group in attached:
        status = statuses.get(group.group_id)
        group.is_consolidated = bool(status and status.is_consolidated)
        group.status_id = status.id if status else None
    return attached


def grand_total(groups: Iterable[GroupTotals]) -> float:
    return sum(group.total_value for group in groups)
