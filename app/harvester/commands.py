"""Request/response protocol in front of the harvest engine.

Requests are dicts with an ``action`` key. Responses always carry
``success``; failures add ``error`` (and ``code`` for protocol errors).
"""
from __future__ import annotations

import time
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from .dom import Document
from .error_codes import ErrorCode, HarvestBusyError
from .extractor import InvoiceRecord, InvoiceRowExtractor
from .grid_selectors import DETAILS_LIST_SELECTORS, GridSelectors
from .harvest import HarvestOrchestrator
from .logging_utils import _harvest_event
from .session import CancelToken, HarvestLimits, HarvestResult, ProgressEvent
from .utils import log_line
from .waiter import RenderWaiter

Response = Dict[str, Any]
MessageSink = Callable[[Dict[str, Any]], None]

ACTION_ALIASES = {
    "getInvoiceData": "getCurrentPageData",
    "getInvoiceDetails": "getRecordDetails",
    "getAllPagesData": "harvestAll",
    "rescanPage": "rescanCurrentPage",
}

# Answerable from cached state without touching the page.
INLINE_ACTIONS = frozenset({"ping", "getCurrentPageData", "cancelHarvest"})

BUSY_MESSAGE = "Harvest in progress"


def resolve_action(action: Any) -> Optional[str]:
    if not isinstance(action, str):
        return None
    return ACTION_ALIASES.get(action, action)


def _wants_progress(request: Dict[str, Any]) -> bool:
    if request.get("progress"):
        return True
    options = request.get("options")
    return isinstance(options, dict) and bool(options.get("progressCallback"))


class CommandInterface:
    def __init__(
        self,
        orchestrator: HarvestOrchestrator,
        extractor: InvoiceRowExtractor,
        document: Document,
        *,
        progress_sink: Optional[MessageSink] = None,
        on_harvest_complete: Optional[Callable[[HarvestResult], None]] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._extractor = extractor
        self._document = document
        self._progress_sink = progress_sink
        self._on_harvest_complete = on_harvest_complete
        self._cancel: Optional[CancelToken] = None
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Response]] = {
            "ping": self._ping,
            "getCurrentPageData": self._current_page_data,
            "getRecordDetails": self._record_details,
            "harvestAll": self._harvest_all,
            "rescanCurrentPage": self._rescan,
            "cancelHarvest": self._cancel_harvest,
        }

    @property
    def orchestrator(self) -> HarvestOrchestrator:
        return self._orchestrator

    @property
    def busy(self) -> bool:
        return self._orchestrator.is_running

    def knows(self, action: Any) -> bool:
        return resolve_action(action) in self._handlers

    def dispatch(self, request: Any) -> Response:
        if not isinstance(request, dict):
            return {
                "success": False,
                "error": "Request must be an object with an action",
                "code": ErrorCode.INVALID_REQUEST,
            }

        action = resolve_action(request.get("action"))
        handler = self._handlers.get(action) if action else None
        if handler is None:
            log_line(f"[COMMAND] Unknown action: {request.get('action')!r}")
            return {"success": False, "error": "Unknown action", "code": ErrorCode.UNKNOWN_ACTION}

        try:
            return handler(request)
        except HarvestBusyError as exc:
            return {"success": False, "error": str(exc), "code": exc.code}
        except Exception as exc:  # noqa: BLE001
            _harvest_event(
                "command",
                phase="error",
                action=action,
                error=str(exc),
                error_code=ErrorCode.UNEXPECTED_FAULT,
            )
            return {"success": False, "error": str(exc)}

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _ping(self, request: Dict[str, Any]) -> Response:
        return {"success": True, "message": "Harvester is ready", "busy": self.busy}

    def _current_page_data(self, request: Dict[str, Any]) -> Response:
        scan = self._orchestrator.last_scan
        if scan is None:
            return {
                "success": True,
                "records": [],
                "totalRecordCount": 0,
                "currentPage": 1,
                "totalPages": 1,
            }
        return {"success": True, **scan.to_payload()}

    def _known_records(self) -> List[InvoiceRecord]:
        known: List[InvoiceRecord] = []
        result = self._orchestrator.last_result
        if result is not None:
            known.extend(result.records)
        scan = self._orchestrator.last_scan
        if scan is not None:
            known.extend(scan.records)
        return known

    def _record_details(self, request: Dict[str, Any]) -> Response:
        record_id = request.get("recordId") or request.get("invoiceId")
        if not record_id:
            return {
                "success": False,
                "error": "recordId is required",
                "code": ErrorCode.INVALID_REQUEST,
            }
        items = self._extractor.extract_line_items(
            self._document, str(record_id), self._known_records()
        )
        return {"success": True, "recordId": record_id, "items": [asdict(item) for item in items]}

    def _harvest_all(self, request: Dict[str, Any]) -> Response:
        if self.busy:
            return self._busy_response()

        sink = self._forward_progress if _wants_progress(request) else None
        self._cancel = CancelToken()
        try:
            result = self._orchestrator.harvest(progress=sink, cancel=self._cancel)
        finally:
            self._cancel = None

        if self._on_harvest_complete is not None:
            try:
                self._on_harvest_complete(result)
            except Exception as exc:  # noqa: BLE001
                log_line(f"[COMMAND] Harvest completion hook failed: {exc}")
        return result.to_payload()

    def _rescan(self, request: Dict[str, Any]) -> Response:
        if self.busy:
            return self._busy_response()
        scan = self._orchestrator.scan_page()
        return {"success": True, **scan.to_payload()}

    def _cancel_harvest(self, request: Dict[str, Any]) -> Response:
        token = self._cancel
        if token is None or not self.busy:
            return {"success": False, "error": "No harvest is running"}
        token.cancel()
        log_line("[COMMAND] Cancellation requested")
        return {"success": True, "message": "Cancellation requested"}

    @staticmethod
    def _busy_response() -> Response:
        return {"success": False, "error": BUSY_MESSAGE, "code": ErrorCode.HARVEST_BUSY}

    def _forward_progress(self, event: ProgressEvent) -> None:
        if self._progress_sink is None:
            return
        try:
            self._progress_sink({"action": "progressUpdate", "progress": event.to_payload()})
        except Exception as exc:  # noqa: BLE001
            log_line(f"[COMMAND] Progress sink failed: {exc}")


def build_command_interface(
    document: Document,
    *,
    sleep: Optional[Callable[[float], None]] = None,
    clock: Callable[[], float] = time.monotonic,
    progress_sink: Optional[MessageSink] = None,
    on_harvest_complete: Optional[Callable[[HarvestResult], None]] = None,
    limits: Optional[HarvestLimits] = None,
    selectors: GridSelectors = DETAILS_LIST_SELECTORS,
) -> CommandInterface:
    """Wire waiter, extractor and orchestrator over ``document``."""

    waiter = RenderWaiter(sleep=sleep, clock=clock)
    extractor = InvoiceRowExtractor(selectors)
    orchestrator = HarvestOrchestrator(
        document,
        extractor=extractor,
        waiter=waiter,
        selectors=selectors,
        limits=limits,
    )
    return CommandInterface(
        orchestrator,
        extractor,
        document,
        progress_sink=progress_sink,
        on_harvest_complete=on_harvest_complete,
    )


__all__ = [
    "ACTION_ALIASES",
    "INLINE_ACTIONS",
    "BUSY_MESSAGE",
    "CommandInterface",
    "build_command_interface",
    "resolve_action",
]
