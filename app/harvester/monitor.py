"""Debounced single-page rescans driven by structural changes in the grid."""
from __future__ import annotations

import time
from typing import Any, Callable, Optional

from . import config
from .logging_utils import _harvest_event
from .utils import log_line


class ChangeMonitor:
    """Turn bursts of row insertions into one rescan after a quiet period.

    ``notify`` is called for every observed change and only arms a deadline;
    ``poll`` runs the rescan once the deadline has passed. Both are ignored
    while ``is_busy`` reports an active harvest, and a deadline that comes
    due during a harvest is discarded rather than deferred.
    """

    def __init__(
        self,
        rescan: Callable[[], Any],
        *,
        is_busy: Callable[[], bool],
        debounce_seconds: float = config.CHANGE_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rescan = rescan
        self._is_busy = is_busy
        self._debounce_seconds = max(0.0, debounce_seconds)
        self._clock = clock
        self._deadline: Optional[float] = None
        self.rescans = 0

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    def notify(self, added_rows: int = 1) -> bool:
        if added_rows <= 0 or self._is_busy():
            return False
        self._deadline = self._clock() + self._debounce_seconds
        return True

    def cancel(self) -> None:
        self._deadline = None

    def poll(self) -> bool:
        """Run the rescan if one is due; ``True`` when it ran."""

        if self._deadline is None or self._clock() < self._deadline:
            return False

        self._deadline = None
        if self._is_busy():
            return False

        try:
            self._rescan()
        except Exception as exc:  # noqa: BLE001
            _harvest_event("monitor", phase="rescan_error", error=str(exc))
            return False

        self.rescans += 1
        log_line("[MONITOR] Rescanned page after grid change")
        return True


__all__ = ["ChangeMonitor"]
