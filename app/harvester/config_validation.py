from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _harvest_event
from .utils import log_line

Entrypoint = Literal["ui", "cli", "replay", "tests"]

_LIVE_ENTRYPOINTS = {"ui", "cli"}


def _raise_config_error(message: str, *, entrypoint: Entrypoint, error: str) -> None:
    _harvest_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint})")
    raise ValueError(message)


def _clamp(field_name: str, adjusted: float, *, entrypoint: Entrypoint, reason: str) -> None:
    value = getattr(config, field_name)
    _harvest_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field_name,
        value=value,
        adjusted=adjusted,
        entrypoint=entrypoint,
    )
    log_line(f"[CONFIG] {field_name}={value!r} {reason}; clamping to {adjusted!r}.")
    setattr(config, field_name, adjusted)


def validate_runtime_config(entrypoint: Entrypoint) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Recoverable values (poll interval, negative delays, slack, export
    retention) are clamped and logged.
    """

    if entrypoint in _LIVE_ENTRYPOINTS and not str(config.TARGET_URL).startswith(
        ("http://", "https://")
    ):
        _raise_config_error(
            "HARVESTER_TARGET_URL must be an http(s) URL.",
            entrypoint=entrypoint,
            error="invalid_target_url",
        )

    timeout_fields = [
        ("PLAYWRIGHT_NAV_TIMEOUT_SECONDS", config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS),
        ("PLAYWRIGHT_CLICK_TIMEOUT_MS", config.PLAYWRIGHT_CLICK_TIMEOUT_MS),
        ("RENDER_TIMEOUT_MS", config.RENDER_TIMEOUT_MS),
    ]
    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
            )

    for field_name in ("EMPTY_PAGE_THRESHOLD", "MAX_PAGE_ADVANCES"):
        if getattr(config, field_name) < 1:
            _raise_config_error(
                f"{field_name} must be at least 1.",
                entrypoint=entrypoint,
                error="invalid_threshold",
            )

    if config.VAT_RATE < 0:
        _raise_config_error(
            "HARVESTER_VAT_RATE must be non-negative.",
            entrypoint=entrypoint,
            error="invalid_vat_rate",
        )

    if config.WAIT_POLL_INTERVAL_SECONDS <= 0:
        _clamp("WAIT_POLL_INTERVAL_SECONDS", 0.3, entrypoint=entrypoint, reason="is not positive")

    for field_name in (
        "DOM_STABILITY_SECONDS",
        "CONTROL_SETTLE_SECONDS",
        "DIRECT_PAGE_CLICK_SECONDS",
        "SEQUENTIAL_STEP_SECONDS",
        "INTER_PAGE_DELAY_SECONDS",
        "CHANGE_DEBOUNCE_SECONDS",
    ):
        if getattr(config, field_name) < 0:
            _clamp(field_name, 0.0, entrypoint=entrypoint, reason="is negative")

    if config.NAVIGATION_SLACK < 0:
        _clamp("NAVIGATION_SLACK", 0, entrypoint=entrypoint, reason="is negative")

    if config.MAX_EXPORTS < 1:
        _clamp("MAX_EXPORTS", 1, entrypoint=entrypoint, reason="is below 1")


__all__ = ["validate_runtime_config", "Entrypoint"]
