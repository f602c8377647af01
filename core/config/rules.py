"""
Bazaar Core Config — Marketplace Rules
=========================================
Every tunable number in the order core lives here: commission
default, escrow holding period, refund window, gateway retry budget.
Engines receive a MarketplaceRules instance at construction and
never hardcode these values.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Any, FrozenSet, Mapping, Optional

from core.errors import InvalidRate, ValidationError


DEFAULT_PLACEHOLDER_SELLER_IDS = frozenset({
    "",
    "unknown",
    "placeholder",
    "none",
    "null",
    "00000000-0000-0000-0000-000000000000",
})


def to_percent(value: Any, field_name: str = "percentage") -> Decimal:
    """Coerce to Decimal and enforce the [0, 100] percentage range."""
    try:
        pct = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidRate(
            f"{field_name} must be a number, got {value!r}.",
            details={"field": field_name},
        )
    if not pct.is_finite() or pct < 0 or pct > 100:
        raise InvalidRate(
            f"{field_name} must be between 0 and 100, got {value}.",
            details={"field": field_name, "value": str(value)},
        )
    return pct


# ══════════════════════════════════════════════════════════════
# MARKETPLACE RULES
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MarketplaceRules:
    """
    Admin-configurable marketplace constants.

    Fields:
        default_commission_percent:  Fallback rate when no rate row matches
        holding_period_days:         Escrow hold before earnings are available
        processing_window_days:      Refund/replacement window after delivery
        gateway_max_attempts:        Total attempts for a transient gateway error
        gateway_backoff_initial:     First retry delay (seconds)
        gateway_backoff_factor:      Multiplier per retry
        gateway_backoff_max:         Upper bound for a single delay
        gateway_timeout_seconds:     Per-call gateway timeout
        max_evidence_urls:           Evidence images per request
        currency:                    ISO currency code for payment intents
        restock_on_refund:           Restore inventory when a refund completes
        low_stock_threshold:         Default threshold for newly registered stock
        placeholder_seller_ids:      Seller ids treated as missing by the splitter
    """

    default_commission_percent: Decimal = Decimal("10")
    holding_period_days: int = 7
    processing_window_days: int = 30
    gateway_max_attempts: int = 3
    gateway_backoff_initial: float = 1.0
    gateway_backoff_factor: float = 2.0
    gateway_backoff_max: float = 8.0
    gateway_timeout_seconds: float = 10.0
    max_evidence_urls: int = 5
    currency: str = "USD"
    restock_on_refund: bool = True
    low_stock_threshold: int = 10
    placeholder_seller_ids: FrozenSet[str] = DEFAULT_PLACEHOLDER_SELLER_IDS

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "default_commission_percent",
            to_percent(self.default_commission_percent, "default_commission_percent"),
        )
        object.__setattr__(
            self,
            "placeholder_seller_ids",
            frozenset(s.lower() for s in self.placeholder_seller_ids),
        )
        for name in (
            "holding_period_days",
            "processing_window_days",
            "max_evidence_urls",
            "low_stock_threshold",
        ):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"{name} must be a non-negative integer.", field=name)
        if self.gateway_max_attempts < 1:
            raise ValidationError(
                "gateway_max_attempts must be at least 1.",
                field="gateway_max_attempts",
            )
        if self.gateway_backoff_initial < 0 or self.gateway_backoff_max < 0:
            raise ValidationError("Backoff delays must be non-negative.", field="gateway_backoff_initial")
        if self.gateway_backoff_factor < 1:
            raise ValidationError("gateway_backoff_factor must be >= 1.", field="gateway_backoff_factor")
        if self.gateway_timeout_seconds <= 0:
            raise ValidationError(
                "gateway_timeout_seconds must be positive.",
                field="gateway_timeout_seconds",
            )
        if not self.currency or len(self.currency) != 3:
            raise ValidationError("currency must be a 3-letter ISO code.", field="currency")

    def is_placeholder_seller(self, seller_id: Optional[str]) -> bool:
        if seller_id is None:
            return True
        return str(seller_id).strip().lower() in self.placeholder_seller_ids

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> MarketplaceRules:
        """Build from a settings dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {k.lower(): v for k, v in data.items() if k.lower() in known}
        if "placeholder_seller_ids" in kwargs:
            kwargs["placeholder_seller_ids"] = frozenset(kwargs["placeholder_seller_ids"])
        return cls(**kwargs)


def load_rules() -> MarketplaceRules:
    """
    Read the BAZAAR dict from Django settings.

    Falls back to defaults when Django settings are not configured
    (pure engine tests, scripts).
    """
    from django.conf import settings

    if not settings.configured:
        return MarketplaceRules()
    return MarketplaceRules.from_mapping(getattr(settings, "BAZAAR", {}) or {})
