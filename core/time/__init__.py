"""
Bazaar Core Time — Public API
===============================
Explicit clock protocol and temporal helpers.
"""

from core.time.clock import Clock, FixedClock, SystemClock
from core.time.temporal import ValidityWindow, days_elapsed, whole_days_elapsed

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "ValidityWindow",
    "days_elapsed",
    "whole_days_elapsed",
]
