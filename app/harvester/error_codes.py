"""Error code taxonomy for harvest conditions.

Most of these are soft: they are logged with structured events and the harvest
carries on. The codes are included in log payloads and command responses so a
caller can tell why a session stopped short.
"""
from __future__ import annotations


class ErrorCode:
    EXTRACTION_MISS = "extraction_miss"
    STATE_READ_DEGRADED = "state_read_degraded"
    NAVIGATION_STALL = "navigation_stall"
    RENDER_TIMEOUT = "render_timeout"
    UNEXPECTED_FAULT = "unexpected_fault"
    # Command protocol
    UNKNOWN_ACTION = "unknown_action"
    HARVEST_BUSY = "harvest_busy"
    INVALID_REQUEST = "invalid_request"
    CANCELLED = "cancelled"


class HarvestBusyError(RuntimeError):
    """Raised when a harvest is started while another one is running."""

    code = ErrorCode.HARVEST_BUSY

    def __init__(self, message: str = "Harvest in progress") -> None:
        super().__init__(message)


__all__ = ["ErrorCode", "HarvestBusyError"]
