"""Bounded polling and fixed delays.

``RenderWaiter`` is the only place the harvester suspends. Waits are soft: a
timeout is logged and reported as ``False`` and the caller carries on with
whatever the view currently shows.
"""
from __future__ import annotations

import time
from typing import Callable, Optional

from . import config
from .dom import Document
from .error_codes import ErrorCode
from .logging_utils import _harvest_event

Predicate = Callable[[], bool]
Sleeper = Callable[[float], None]
Clock = Callable[[], float]


class RenderWaiter:
    """Poll predicates at a fixed interval until they hold or time runs out."""

    def __init__(
        self,
        *,
        sleep: Optional[Sleeper] = None,
        clock: Clock = time.monotonic,
        poll_interval: float = config.WAIT_POLL_INTERVAL_SECONDS,
    ) -> None:
        self._sleep: Sleeper = sleep or time.sleep
        self._clock = clock
        self._poll_interval = max(0.01, poll_interval)
        self._active = False

    def wait(self, predicate: Predicate, timeout_ms: int, *, label: str = "condition") -> bool:
        """Return ``True`` once ``predicate`` holds, ``False`` on timeout.

        Exceptions raised by ``predicate`` count as "not yet". Only one wait
        may be active at a time; waits run in sequence.
        """

        if self._active:
            raise RuntimeError("RenderWaiter.wait is not re-entrant while a wait is active")

        self._active = True
        try:
            deadline = self._clock() + max(0, timeout_ms) / 1000.0
            while True:
                try:
                    if predicate():
                        return True
                except Exception:  # noqa: BLE001
                    pass
                if self._clock() >= deadline:
                    break
                self._sleep(self._poll_interval)
        finally:
            self._active = False

        _harvest_event(
            "wait",
            phase="timeout",
            condition=label,
            timeout_ms=timeout_ms,
            error_code=ErrorCode.RENDER_TIMEOUT,
        )
        return False

    def pause(self, seconds: float) -> None:
        """Sleep for a fixed settle delay."""

        if seconds and seconds > 0:
            self._sleep(seconds)


def wait_for_render_complete(
    waiter: RenderWaiter,
    document: Document,
    *,
    loading_selector: str,
    rows_present: Predicate,
    timeout_ms: int = config.RENDER_TIMEOUT_MS,
    stability_seconds: float = config.DOM_STABILITY_SECONDS,
) -> bool:
    """Wait for loading indicators to clear and rows to appear, then settle.

    Returns ``False`` when either wait timed out; callers proceed regardless.
    """

    def _not_loading() -> bool:
        return not any(el.is_visible() for el in document.query_all(loading_selector))

    idle = waiter.wait(_not_loading, timeout_ms, label="loading_indicators_cleared")
    populated = waiter.wait(rows_present, timeout_ms, label="rows_present")
    waiter.pause(stability_seconds)
    return idle and populated


__all__ = ["RenderWaiter", "wait_for_render_complete", "Predicate", "Sleeper", "Clock"]
