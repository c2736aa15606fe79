from __future__ import annotations

from enum import StrEnum

UNGROUPED_SORT_ORDER = 9999
UNGROUPED_GROUP_NAME = "Sin agrupar"


class UnitType(StrEnum):
    HOURS = "hours"
    UNITS = "units"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class EntryRole(StrEnum):
    PRINCIPAL = "principal"
    ASSISTANT = "assistant"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]

    @property
    def label(self) -> str:
        return "principal" if self is EntryRole.PRINCIPAL else "ayudante"


class MonthEndPolicy(StrEnum):
    CLAMP = "clamp"
    ROLLOVER = "rollover"


class MidnightPolicy(StrEnum):
    CROSS = "cross"
    REJECT = "reject"


class ClosureState(StrEnum):
    CALCULATED = "CALCULATED"
    ADJUSTED = "ADJUSTED"
