"""
Bazaar Commission Engine — Rate Definitions
==============================================
A CommissionRate is a percentage in [0, 100] scoped to the whole
marketplace, one category, or one seller. Out-of-range values are
rejected here, when the rate is configured, so the calculator never
sees an invalid percentage.

Only one ACTIVE rate exists per scope key at any time; activating a
new one retires the previous one.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Protocol, Tuple

from core.config import to_percent
from core.errors import InvalidRate, NotFound

logger = logging.getLogger("bazaar.commission")


class RateScope(str, Enum):
    GLOBAL = "global"
    CATEGORY = "category"
    SELLER = "seller"


@dataclass(frozen=True)
class CommissionRate:
    scope: RateScope
    percentage: Decimal
    is_active: bool = True
    seller_id: Optional[str] = None
    category_id: Optional[str] = None
    rate_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not isinstance(self.scope, RateScope):
            try:
                object.__setattr__(self, "scope", RateScope(self.scope))
            except ValueError:
                raise InvalidRate(
                    f"Invalid rate scope {self.scope!r}. "
                    f"Must be one of: global, category, seller.",
                    details={"field": "scope"},
                )
        object.__setattr__(self, "percentage", to_percent(self.percentage))
        if self.scope == RateScope.SELLER and not self.seller_id:
            raise InvalidRate(
                "seller_id is required for seller-specific rates.",
                details={"field": "seller_id"},
            )
        if self.scope == RateScope.CATEGORY and not self.category_id:
            raise InvalidRate(
                "category_id is required for category-specific rates.",
                details={"field": "category_id"},
            )

    @property
    def scope_key(self) -> Tuple[RateScope, Optional[str]]:
        if self.scope == RateScope.SELLER:
            return (self.scope, self.seller_id)
        if self.scope == RateScope.CATEGORY:
            return (self.scope, self.category_id)
        return (self.scope, None)


# ══════════════════════════════════════════════════════════════
# STORE
# ══════════════════════════════════════════════════════════════

class CommissionRateStore(Protocol):

    def get(self, rate_id: str) -> Optional[CommissionRate]:
        ...  # pragma: no cover

    def save(self, rate: CommissionRate) -> None:
        ...  # pragma: no cover

    def find_active(
        self, scope: RateScope, scope_id: Optional[str] = None,
    ) -> Optional[CommissionRate]:
        ...  # pragma: no cover

    def list_rates(self) -> List[CommissionRate]:
        ...  # pragma: no cover


class InMemoryCommissionRateStore:

    def __init__(self) -> None:
        self._rates: Dict[str, CommissionRate] = {}
        self._lock = threading.Lock()

    def get(self, rate_id: str) -> Optional[CommissionRate]:
        with self._lock:
            return self._rates.get(rate_id)

    def save(self, rate: CommissionRate) -> None:
        with self._lock:
            self._rates[rate.rate_id] = rate

    def find_active(
        self, scope: RateScope, scope_id: Optional[str] = None,
    ) -> Optional[CommissionRate]:
        with self._lock:
            for rate in self._rates.values():
                if rate.is_active and rate.scope_key == (scope, scope_id):
                    return rate
        return None

    def list_rates(self) -> List[CommissionRate]:
        with self._lock:
            return list(self._rates.values())


# ══════════════════════════════════════════════════════════════
# RATE BOOK (configuration service)
# ══════════════════════════════════════════════════════════════

class CommissionRateBook:
    """Create, update and retire commission rates."""

    def __init__(self, store: CommissionRateStore):
        self._store = store
        self._lock = threading.Lock()

    def create_rate(
        self,
        scope,
        percentage,
        seller_id: Optional[str] = None,
        category_id: Optional[str] = None,
        is_active: bool = True,
    ) -> CommissionRate:
        rate = CommissionRate(
            scope=scope,
            percentage=percentage,
            is_active=is_active,
            seller_id=seller_id,
            category_id=category_id,
        )
        with self._lock:
            if rate.is_active:
                self._retire_active(rate)
            self._store.save(rate)
        logger.info(
            "Commission rate %s created: %s %s%%",
            rate.rate_id, rate.scope_key, rate.percentage,
        )
        return rate

    def update_rate(
        self,
        rate_id: str,
        percentage=None,
        is_active: Optional[bool] = None,
    ) -> CommissionRate:
        with self._lock:
            current = self._store.get(rate_id)
            if current is None:
                raise NotFound("CommissionRate", rate_id)
            changes = {}
            if percentage is not None:
                changes["percentage"] = percentage
            if is_active is not None:
                changes["is_active"] = is_active
            updated = replace(current, **changes)
            if updated.is_active and not current.is_active:
                self._retire_active(updated)
            self._store.save(updated)
        return updated

    def deactivate_rate(self, rate_id: str) -> CommissionRate:
        return self.update_rate(rate_id, is_active=False)

    def list_rates(
        self,
        scope: Optional[RateScope] = None,
        is_active: Optional[bool] = None,
    ) -> List[CommissionRate]:
        rates = self._store.list_rates()
        if scope is not None:
            rates = [r for r in rates if r.scope == scope]
        if is_active is not None:
            rates = [r for r in rates if r.is_active == is_active]
        return rates

    def _retire_active(self, rate: CommissionRate) -> None:
        scope, scope_id = rate.scope_key
        existing = self._store.find_active(scope, scope_id)
        if existing is not None and existing.rate_id != rate.rate_id:
            self._store.save(replace(existing, is_active=False))
            logger.info(
                "Commission rate %s retired in favour of %s",
                existing.rate_id, rate.rate_id,
            )
