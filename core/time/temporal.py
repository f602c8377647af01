"""
Bazaar Core Time — Temporal Helpers
=====================================
Pure functions for validity windows and elapsed-day arithmetic.
All functions take explicit datetime arguments — no hidden clock access.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


# ══════════════════════════════════════════════════════════════
# VALIDITY WINDOW: open-ended on the side whose bound is None
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ValidityWindow:
    """
    Interval during which a promotion or coupon is active.

    A missing bound means "unbounded on that side".
    Invariant: start < end when both are set.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None:
            if self.end <= self.start:
                raise ValueError(
                    f"Window end ({self.end}) must be after start ({self.start})."
                )

    def has_started(self, now: datetime) -> bool:
        return self.start is None or self.start <= now

    def has_ended(self, now: datetime) -> bool:
        return self.end is not None and now > self.end

    def contains(self, now: datetime) -> bool:
        """True when `now` falls within the window (inclusive)."""
        return self.has_started(now) and not self.has_ended(now)


# ══════════════════════════════════════════════════════════════
# PURE TEMPORAL FUNCTIONS
# ══════════════════════════════════════════════════════════════

def days_elapsed(since: datetime, now: datetime) -> float:
    """Fractional days between two instants."""
    return (now - since).total_seconds() / 86400.0


def whole_days_elapsed(since: datetime, now: datetime) -> int:
    """Days between two instants, rounded up (a started day counts)."""
    seconds = (now - since).total_seconds()
    if seconds <= 0:
        return 0
    days, remainder = divmod(seconds, 86400)
    return int(days) + (1 if remainder else 0)
