"""
Bazaar Payment Engine
=======================
Payment intents against an external gateway.
"""

from engines.payment.gateway import (
    FakeGateway,
    GatewayRefund,
    IntentStatus,
    PaymentGateway,
    PaymentIntent,
    gateway_retry_policy,
)
from engines.payment.service import PaymentService

__all__ = [
    "FakeGateway",
    "GatewayRefund",
    "IntentStatus",
    "PaymentGateway",
    "PaymentIntent",
    "gateway_retry_policy",
    "PaymentService",
]
