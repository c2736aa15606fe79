"""Monetary value of a single entry.

Values are computed once, when the entry is written. A stored ``total_amount``
always wins over recomputation on read.

The nocturnal rule is a flat act-level multiplier; the entry's actual hours
are not inspected.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from medclose.domain.constants import EntryRole
from medclose.domain.errors import MissingRoleRateError, ValidationFailureError

NOCTURNAL_RULE_KEY = "nocturnal"
# key used by rows carried over from the legacy store
LEGACY_NOCTURNAL_RULE_KEY = "nocturnidad"


@dataclass(frozen=True, slots=True)
class ActPricing:
    unit_value: float | None = None
    unit_value_principal: float | None = None
    unit_value_assistant: float | None = None
    supports_roles: bool = False
    nocturnal_multiplier: float | None = None
    act_name: str | None = None

    @classmethod
    def from_row(
        cls,
        *,
        unit_value: float | None,
        unit_value_principal: float | None,
        unit_value_assistant: float | None,
        supports_roles: bool,
        pricing_rules: Mapping[str, Any] | None,
        act_name: str | None = None,
    ) -> ActPricing:
        return cls(
            unit_value=unit_value,
            unit_value_principal=unit_value_principal,
            unit_value_assistant=unit_value_assistant,
            supports_roles=bool(supports_roles),
            nocturnal_multiplier=nocturnal_multiplier(pricing_rules),
            act_name=act_name,
        )

    def rate_for(self, role: EntryRole) -> float | None:
        if role is EntryRole.PRINCIPAL:
            return self.unit_value_principal
        return self.unit_value_assistant


@dataclass(frozen=True, slots=True)
class PriceBreakdown:
    role: str
    rate: float
    quantity: float
    total: float

    def as_dict(self) -> dict[str, Any]:
        return {"role": self.role, "rate": self.rate, "quantity": self.quantity, "total": self.total}


@dataclass(frozen=True, slots=True)
class PricingResult:
    amount: float
    breakdown: PriceBreakdown | None = None


def nocturnal_multiplier(pricing_rules: Mapping[str, Any] | None) -> float | None:
    if not pricing_rules:
        return None
    rule = pricing_rules.get(NOCTURNAL_RULE_KEY, pricing_rules.get(LEGACY_NOCTURNAL_RULE_KEY))
    if not isinstance(rule, Mapping):
        return None
    multiplier = rule.get("multiplier")
    if multiplier is None:
        return None
    try:
        return float(multiplier)
    except (TypeError, ValueError) as exc:
        raise ValidationFailureError(f"Multiplicador nocturno inválido: {multiplier!r}") from exc


def coerce_role(role: EntryRole | str | None) -> EntryRole | None:
    if role is None or role == "":
        return None
    if isinstance(role, EntryRole):
        return role
    try:
        return EntryRole(role)
    except ValueError as exc:
        raise ValidationFailureError(f"Rol desconocido: {role!r}") from exc


def price_entry(
    quantity: float,
    pricing: ActPricing,
    role: EntryRole | str | None = None,
) -> PricingResult:
    if quantity < 0:
        raise ValidationFailureError("La cantidad no puede ser negativa")
    entry_role = coerce_role(role)

    if pricing.supports_roles:
        if entry_role is None:
            raise ValidationFailureError("Seleccioná un rol (Principal o Ayudante)")
        rate = pricing.rate_for(entry_role)
        if rate is None:
            raise MissingRoleRateError(entry_role.value, pricing.act_name)
        total = quantity * rate
        breakdown = PriceBreakdown(role=entry_role.value, rate=rate, quantity=quantity, total=total)
        return PricingResult(amount=total, breakdown=breakdown)

    if pricing.unit_value is None:
        return PricingResult(amount=0.0)
    amount = quantity * pricing.unit_value
    if pricing.nocturnal_multiplier is not None:
        amount *= pricing.nocturnal_multiplier
    return PricingResult(amount=amount)


def entry_value(
    total_amount: float | None,
    quantity: float,
    pricing: ActPricing,
    role: EntryRole | str | None = None,
) -> float:
    if total_amount is not None:
        return total_amount
    return price_entry(quantity, pricing, role).amount


def validate_act_pricing(pricing: ActPricing) -> None:
    """Configuration rules for an act before it is stored."""
    if pricing.supports_roles:
        if pricing.unit_value_principal is None or pricing.unit_value_assistant is None:
            raise ValidationFailureError("Si el acto tiene rol, debés definir valor principal y ayudante")
        if pricing.unit_value_principal <= 0:
            raise ValidationFailureError("El valor principal debe ser un número mayor a 0")
        if pricing.unit_value_assistant <= 0:
            raise ValidationFailureError("El valor ayudante debe ser un número mayor a 0")
        if pricing.unit_value is not None:
            raise ValidationFailureError("Un acto con roles no usa valor unitario")
    else:
        if pricing.unit_value is not None and pricing.unit_value <= 0:
            raise ValidationFailureError("El valor debe ser un número mayor a 0")
        if pricing.unit_value_principal is not None or pricing.unit_value_assistant is not None:
            raise ValidationFailureError("Los valores por rol requieren que el acto tenga roles")
    if pricing.nocturnal_multiplier is not None and pricing.nocturnal_multiplier <= 0:
        raise ValidationFailureError("El multiplicador nocturno debe ser mayor a 0")
