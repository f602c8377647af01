"""
Bazaar Command Layer — Public API
===================================
Request context, field validation helpers and structured rejections.
"""

from core.commands.base import (
    RequestContext,
    require_non_negative_int,
    require_positive_int,
    require_text,
)
from core.commands.rejection import ReasonCode, RejectionReason

__all__ = [
    "RequestContext",
    "require_text",
    "require_positive_int",
    "require_non_negative_int",
    "RejectionReason",
    "ReasonCode",
]
