from __future__ import annotations

from typing import Any

from .utils import log_line

# Rendered ahead of the remaining fields, in this order.
_LEADING_FIELDS = ("error_code", "phase")


def _format_fields(fields: dict[str, Any]) -> str:
    leading = [name for name in _LEADING_FIELDS if name in fields]
    rest = sorted(name for name in fields if name not in _LEADING_FIELDS)
    return ", ".join(f"{name}={fields[name]!r}" for name in leading + rest)


def _harvest_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Emit a structured harvester log line: ``[HARVEST][LABEL] k=v, ...``.

    ``phase`` doubles as the label when no label is given. An ``error_code``
    is always rendered first so soft failures can be grepped by code.
    """

    try:
        tag = (label or phase or "event").upper()
        if phase and label:
            fields["phase"] = phase
        log_line(f"[HARVEST][{tag}] {_format_fields(fields)}")
    except Exception:  # noqa: BLE001
        # Logging never interrupts a harvest.
        return


__all__ = ["_harvest_event"]
