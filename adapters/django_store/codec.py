"""
Bazaar Django Store — Snapshot Codec
=======================================
Orders, sub-orders, earnings and return requests are stored as one
row each: a few indexed columns used for lookups and CAS, plus the
full frozen snapshot as JSON. This module converts snapshots to
JSON-safe dicts and back.
"""

from __future__ import annotations

from dataclasses import fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict

from core.primitives.actor import Actor
from core.primitives.workflow import StateTransition
from engines.orders.models import (
    BasketLine,
    EarningsStatus,
    FulfillmentStatus,
    Order,
    OrderStatus,
    PayoutStatus,
    SellerEarnings,
    SubOrder,
)
from engines.returns.models import (
    RefundReason,
    RefundRequest,
    RefundStatus,
    ReplacementReason,
    ReplacementRequest,
    ReplacementStatus,
)


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (StateTransition, BasketLine)):
        return value.to_dict()
    if isinstance(value, (tuple, list)):
        return [_encode(v) for v in value]
    return value


def to_snapshot(obj) -> Dict[str, Any]:
    return {f.name: _encode(getattr(obj, f.name)) for f in fields(obj)}


def _transition(data: dict) -> StateTransition:
    return StateTransition(
        from_state=data["from_state"],
        to_state=data["to_state"],
        actor=Actor.from_dict(data["actor"]),
        transitioned_at=datetime.fromisoformat(data["transitioned_at"]),
        reason=data.get("reason", ""),
    )


def _history(items) -> tuple:
    return tuple(_transition(i) for i in items)


def _lines(items) -> tuple:
    return tuple(BasketLine.from_dict(i) for i in items)


_dt = datetime.fromisoformat

ORDER_DECODERS: Dict[str, Callable] = {
    "basket": _lines,
    "status": OrderStatus,
    "created_at": _dt,
    "updated_at": _dt,
    "fulfilled_at": _dt,
    "delivered_at": _dt,
    "replacement_request_ids": tuple,
    "history": _history,
}

SUB_ORDER_DECODERS: Dict[str, Callable] = {
    "lines": _lines,
    "commission_rate": Decimal,
    "created_at": _dt,
    "updated_at": _dt,
    "fulfilled_at": _dt,
    "fulfillment_status": FulfillmentStatus,
    "payout_status": PayoutStatus,
    "history": _history,
}

EARNINGS_DECODERS: Dict[str, Callable] = {
    "available_on": _dt,
    "created_at": _dt,
    "status": EarningsStatus,
}

_REQUEST_DECODERS: Dict[str, Callable] = {
    "created_at": _dt,
    "updated_at": _dt,
    "reviewed_at": _dt,
    "evidence_urls": tuple,
    "history": _history,
}

REFUND_DECODERS: Dict[str, Callable] = dict(
    _REQUEST_DECODERS,
    reason=RefundReason,
    status=RefundStatus,
    processed_at=_dt,
)

REPLACEMENT_DECODERS: Dict[str, Callable] = dict(
    _REQUEST_DECODERS,
    reason=ReplacementReason,
    status=ReplacementStatus,
    shipped_at=_dt,
    completed_at=_dt,
)

DECODERS = {
    Order: ORDER_DECODERS,
    SubOrder: SUB_ORDER_DECODERS,
    SellerEarnings: EARNINGS_DECODERS,
    RefundRequest: REFUND_DECODERS,
    ReplacementRequest: REPLACEMENT_DECODERS,
}


def from_snapshot(cls, data: Dict[str, Any]):
    decoders = DECODERS[cls]
    known = {f.name for f in fields(cls)}
    kwargs = {}
    for name, value in data.items():
        if name not in known:
            continue
        decode = decoders.get(name)
        kwargs[name] = decode(value) if decode is not None and value is not None else value
    return cls(**kwargs)
