"""
Bazaar Core Config — Public API
=================================
Marketplace rules (commission default, windows, gateway budget).
"""

from core.config.rules import (
    DEFAULT_PLACEHOLDER_SELLER_IDS,
    MarketplaceRules,
    load_rules,
    to_percent,
)

__all__ = [
    "MarketplaceRules",
    "DEFAULT_PLACEHOLDER_SELLER_IDS",
    "load_rules",
    "to_percent",
]
