"""
Bazaar Orders Engine — Store Protocols and In-Memory Stores
==============================================================
Every mutating write is compare_and_set(expected, updated): it
succeeds only if the stored version still equals expected.version.
delete() exists solely for compensation of rows created by an
operation that did not complete.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Protocol

from engines.orders.models import (
    EarningsStatus,
    Order,
    SellerEarnings,
    SubOrder,
)


# ══════════════════════════════════════════════════════════════
# PROTOCOLS
# ══════════════════════════════════════════════════════════════

class OrderStore(Protocol):

    def create(self, order: Order) -> None:
        ...  # pragma: no cover

    def get(self, order_id: str) -> Optional[Order]:
        ...  # pragma: no cover

    def compare_and_set(self, expected: Order, updated: Order) -> bool:
        ...  # pragma: no cover

    def delete(self, order_id: str) -> bool:
        ...  # pragma: no cover

    def list_for_user(self, user_id: str) -> List[Order]:
        ...  # pragma: no cover


class SubOrderStore(Protocol):

    def add(self, sub_order: SubOrder) -> None:
        ...  # pragma: no cover

    def get(self, sub_order_id: str) -> Optional[SubOrder]:
        ...  # pragma: no cover

    def compare_and_set(self, expected: SubOrder, updated: SubOrder) -> bool:
        ...  # pragma: no cover

    def delete(self, sub_order_id: str) -> bool:
        ...  # pragma: no cover

    def list_for_order(self, order_id: str) -> List[SubOrder]:
        ...  # pragma: no cover

    def list_for_seller(self, seller_id: str) -> List[SubOrder]:
        ...  # pragma: no cover


class EarningsStore(Protocol):

    def add(self, earnings: SellerEarnings) -> None:
        ...  # pragma: no cover

    def get(self, earnings_id: str) -> Optional[SellerEarnings]:
        ...  # pragma: no cover

    def compare_and_set(self, expected: SellerEarnings, updated: SellerEarnings) -> bool:
        ...  # pragma: no cover

    def delete(self, earnings_id: str) -> bool:
        ...  # pragma: no cover

    def list_for_order(self, order_id: str) -> List[SellerEarnings]:
        ...  # pragma: no cover

    def list_for_seller(self, seller_id: str) -> List[SellerEarnings]:
        ...  # pragma: no cover

    def list_by_status(self, status: EarningsStatus) -> List[SellerEarnings]:
        ...  # pragma: no cover


class CartStore(Protocol):
    """The customer's active cart, owned by the cart subsystem."""

    def clear_active_cart(self, user_id: str) -> None:
        ...  # pragma: no cover


# ══════════════════════════════════════════════════════════════
# IN-MEMORY IMPLEMENTATIONS
# ══════════════════════════════════════════════════════════════

class _VersionedRows:
    """Shared CAS table keyed by an id attribute."""

    def __init__(self, id_attr: str) -> None:
        self._id_attr = id_attr
        self._rows: Dict[str, object] = {}
        self._lock = threading.Lock()

    def _id(self, row) -> str:
        return getattr(row, self._id_attr)

    def insert(self, row) -> None:
        with self._lock:
            row_id = self._id(row)
            if row_id in self._rows:
                raise KeyError(f"Row {row_id} already exists.")
            self._rows[row_id] = row

    def get(self, row_id: str):
        with self._lock:
            return self._rows.get(row_id)

    def compare_and_set(self, expected, updated) -> bool:
        with self._lock:
            current = self._rows.get(self._id(expected))
            if current is None or current.version != expected.version:
                return False
            self._rows[self._id(expected)] = updated
            return True

    def delete(self, row_id: str) -> bool:
        with self._lock:
            return self._rows.pop(row_id, None) is not None

    def select(self, predicate) -> list:
        with self._lock:
            return [row for row in self._rows.values() if predicate(row)]


class InMemoryOrderStore:

    def __init__(self) -> None:
        self._rows = _VersionedRows("order_id")

    def create(self, order: Order) -> None:
        self._rows.insert(order)

    def get(self, order_id: str) -> Optional[Order]:
        return self._rows.get(order_id)

    def compare_and_set(self, expected: Order, updated: Order) -> bool:
        return self._rows.compare_and_set(expected, updated)

    def delete(self, order_id: str) -> bool:
        return self._rows.delete(order_id)

    def list_for_user(self, user_id: str) -> List[Order]:
        orders = self._rows.select(lambda o: o.user_id == user_id)
        return sorted(orders, key=lambda o: o.created_at, reverse=True)


class InMemorySubOrderStore:

    def __init__(self) -> None:
        self._rows = _VersionedRows("sub_order_id")

    def add(self, sub_order: SubOrder) -> None:
        self._rows.insert(sub_order)

    def get(self, sub_order_id: str) -> Optional[SubOrder]:
        return self._rows.get(sub_order_id)

    def compare_and_set(self, expected: SubOrder, updated: SubOrder) -> bool:
        return self._rows.compare_and_set(expected, updated)

    def delete(self, sub_order_id: str) -> bool:
        return self._rows.delete(sub_order_id)

    def list_for_order(self, order_id: str) -> List[SubOrder]:
        rows = self._rows.select(lambda s: s.parent_order_id == order_id)
        return sorted(rows, key=lambda s: (s.created_at, s.seller_id))

    def list_for_seller(self, seller_id: str) -> List[SubOrder]:
        rows = self._rows.select(lambda s: s.seller_id == seller_id)
        return sorted(rows, key=lambda s: s.created_at, reverse=True)


class InMemoryEarningsStore:

    def __init__(self) -> None:
        self._rows = _VersionedRows("earnings_id")

    def add(self, earnings: SellerEarnings) -> None:
        self._rows.insert(earnings)

    def get(self, earnings_id: str) -> Optional[SellerEarnings]:
        return self._rows.get(earnings_id)

    def compare_and_set(self, expected: SellerEarnings, updated: SellerEarnings) -> bool:
        return self._rows.compare_and_set(expected, updated)

    def delete(self, earnings_id: str) -> bool:
        return self._rows.delete(earnings_id)

    def list_for_order(self, order_id: str) -> List[SellerEarnings]:
        return _oldest_first(self._rows.select(lambda e: e.order_id == order_id))

    def list_for_seller(self, seller_id: str) -> List[SellerEarnings]:
        return _oldest_first(self._rows.select(lambda e: e.seller_id == seller_id))

    def list_by_status(self, status: EarningsStatus) -> List[SellerEarnings]:
        return _oldest_first(self._rows.select(lambda e: e.status == status))


class InMemoryCartStore:

    def __init__(self) -> None:
        self._carts: Dict[str, list] = {}
        self._lock = threading.Lock()

    def put(self, user_id: str, items: Iterable) -> None:
        with self._lock:
            self._carts[user_id] = list(items)

    def items(self, user_id: str) -> list:
        with self._lock:
            return list(self._carts.get(user_id, []))

    def clear_active_cart(self, user_id: str) -> None:
        with self._lock:
            self._carts.pop(user_id, None)


def _oldest_first(rows: list) -> list:
    return sorted(rows, key=lambda r: (r.created_at, r.earnings_id))
