"""
Bazaar Core Resilience — Public API
=====================================
Compensation stacks for cross-store operations and bounded retry
for transient collaborator failures.
"""

from core.resilience.compensation import CompensationReport, CompensationStack
from core.resilience.retry import RetryPolicy, call_with_retry

__all__ = [
    "CompensationStack",
    "CompensationReport",
    "RetryPolicy",
    "call_with_retry",
]
