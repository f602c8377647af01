"""
Bazaar Returns Engine — Request Stores
=========================================
add() is an atomic check-and-insert: if an active request of the
same kind exists for (order_id, product_id) it raises
DuplicateRequest instead of inserting. The relational adapter gets
the same guarantee from a conditional unique constraint.
"""

from __future__ import annotations

import threading
from typing import Dict, Generic, List, Optional, Protocol, TypeVar

from core.errors import DuplicateRequest
from engines.returns.models import RefundRequest, ReplacementRequest

R = TypeVar("R", RefundRequest, ReplacementRequest)


class RequestStore(Protocol[R]):

    def add(self, request: R) -> None:
        ...  # pragma: no cover

    def get(self, request_id: str) -> Optional[R]:
        ...  # pragma: no cover

    def compare_and_set(self, expected: R, updated: R) -> bool:
        ...  # pragma: no cover

    def find_active(self, order_id: str, product_id: str) -> Optional[R]:
        ...  # pragma: no cover

    def list_for_order(self, order_id: str) -> List[R]:
        ...  # pragma: no cover


class InMemoryRequestStore(Generic[R]):

    def __init__(self) -> None:
        self._rows: Dict[str, R] = {}
        self._lock = threading.Lock()

    def add(self, request: R) -> None:
        with self._lock:
            existing = self._active_locked(request.order_id, request.product_id)
            if existing is not None:
                raise DuplicateRequest(
                    request.order_id, request.product_id, existing.request_id,
                )
            self._rows[request.request_id] = request

    def get(self, request_id: str) -> Optional[R]:
        with self._lock:
            return self._rows.get(request_id)

    def compare_and_set(self, expected: R, updated: R) -> bool:
        with self._lock:
            current = self._rows.get(expected.request_id)
            if current is None or current.version != expected.version:
                return False
            self._rows[expected.request_id] = updated
            return True

    def find_active(self, order_id: str, product_id: str) -> Optional[R]:
        with self._lock:
            return self._active_locked(order_id, product_id)

    def list_for_order(self, order_id: str) -> List[R]:
        with self._lock:
            rows = [r for r in self._rows.values() if r.order_id == order_id]
        return sorted(rows, key=lambda r: r.created_at)

    def _active_locked(self, order_id: str, product_id: str) -> Optional[R]:
        for row in self._rows.values():
            if row.order_id == order_id and row.product_id == product_id and row.is_active:
                return row
        return None


class InMemoryRefundStore(InMemoryRequestStore[RefundRequest]):
    pass


class InMemoryReplacementStore(InMemoryRequestStore[ReplacementRequest]):
    pass
