"""
Bazaar Returns Engine — Request Models
=========================================
Customer input for refund and replacement requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from core.commands.base import require_text
from core.errors import ValidationError
from engines.returns.models import RefundReason, ReplacementReason

MAX_DESCRIPTION_LENGTH = 2000
MAX_URL_LENGTH = 500


def _check_evidence(urls: Tuple[str, ...]) -> None:
    for url in urls:
        require_text(url, "evidence_urls", max_length=MAX_URL_LENGTH)
        if not url.startswith(("https://", "http://")):
            raise ValidationError(
                "Evidence must be http(s) URLs.", field="evidence_urls",
            )


@dataclass(frozen=True)
class CreateRefundRequest:
    order_id: str
    product_id: str
    reason: RefundReason
    description: str
    variant_id: Optional[str] = None
    evidence_urls: Tuple[str, ...] = ()

    def __post_init__(self):
        require_text(self.order_id, "order_id")
        require_text(self.product_id, "product_id")
        try:
            object.__setattr__(self, "reason", RefundReason(self.reason))
        except ValueError:
            raise ValidationError(f"Unknown refund reason: {self.reason}", field="reason")
        require_text(self.description, "description", max_length=MAX_DESCRIPTION_LENGTH)
        object.__setattr__(self, "evidence_urls", tuple(self.evidence_urls))
        _check_evidence(self.evidence_urls)


@dataclass(frozen=True)
class CreateReplacementRequest:
    order_id: str
    product_id: str
    reason: ReplacementReason
    description: str
    variant_id: Optional[str] = None
    evidence_urls: Tuple[str, ...] = ()

    def __post_init__(self):
        require_text(self.order_id, "order_id")
        require_text(self.product_id, "product_id")
        try:
            object.__setattr__(self, "reason", ReplacementReason(self.reason))
        except ValueError:
            raise ValidationError(f"Unknown replacement reason: {self.reason}", field="reason")
        require_text(self.description, "description", max_length=MAX_DESCRIPTION_LENGTH)
        object.__setattr__(self, "evidence_urls", tuple(self.evidence_urls))
        _check_evidence(self.evidence_urls)
