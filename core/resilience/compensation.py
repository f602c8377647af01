"""
Bazaar Core Resilience — Compensation Stack
==============================================
Multi-step operations (order placement, sub-order split, replacement
approval) touch several stores that share no transaction. Each step
that succeeds pushes its undo action; if a later step fails, the
stack unwinds in reverse order.

Rules:
- Undo actions run in reverse registration order
- A failing undo is logged and counted, the rest still run
- Unwinding happens for BaseException too (cancellation, interrupt)
- The original exception is always re-raised unchanged
- commit() discards the stack once the operation is durable
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Tuple

logger = logging.getLogger("bazaar.compensation")


@dataclass(frozen=True)
class CompensationReport:
    label: str
    run: int
    failed: int


class CompensationStack:
    """
    Usage:
        with CompensationStack("place_order") as comp:
            ledger.reserve(key, qty)
            comp.push(f"release {key}", lambda: ledger.release(key, qty))
            ...
            comp.commit()
    """

    def __init__(self, label: str):
        self._label = label
        self._actions: List[Tuple[str, Callable[[], object]]] = []
        self._committed = False
        self.last_report: CompensationReport | None = None

    def push(self, description: str, undo: Callable[[], object]) -> None:
        if self._committed:
            raise RuntimeError(f"{self._label}: cannot push after commit.")
        self._actions.append((description, undo))

    def __len__(self) -> int:
        return len(self._actions)

    def commit(self) -> None:
        self._committed = True
        self._actions.clear()

    def unwind(self) -> CompensationReport:
        """Run every recorded undo in reverse. Never raises."""
        run = 0
        failed = 0
        actions, self._actions = self._actions, []
        for description, undo in reversed(actions):
            try:
                undo()
                run += 1
            except Exception:
                failed += 1
                logger.exception(
                    "%s: compensation '%s' failed", self._label, description
                )
        report = CompensationReport(label=self._label, run=run, failed=failed)
        self.last_report = report
        if run or failed:
            log = logger.error if failed else logger.warning
            log(
                "%s: compensated %d step(s), %d failed",
                self._label, run, failed,
            )
        return report

    def __enter__(self) -> CompensationStack:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None and not self._committed:
            self.unwind()
        return False
