"""Harvest state machine: prime on page 1, then scan, decide and advance.

The orchestrator owns one ``HarvestSession`` per run and hands the caller a
``HarvestResult``. Every soft failure ends in a value (empty page, clamped
state, ``Completed``); only an exception escaping the loop itself is reported
as ``success=False``.
"""
from __future__ import annotations

import time
from typing import List, Optional, Protocol, Tuple

from . import config
from .dom import Document, Element
from .error_codes import ErrorCode, HarvestBusyError
from .grid_selectors import DETAILS_LIST_SELECTORS, GridSelectors
from .logging_utils import _harvest_event
from .navigation import NavigationController
from .pagination import PaginationReader
from .rows import RowLocator
from .session import (
    CancelToken,
    HarvestLimits,
    HarvestPhase,
    HarvestResult,
    HarvestSession,
    HarvestStatus,
    ProgressEvent,
    ProgressSink,
    Record,
    ScanResult,
)
from .utils import log_line
from .waiter import RenderWaiter, wait_for_render_complete

_TERMINAL_PHASES = (HarvestPhase.COMPLETED, HarvestPhase.ABORTED)


class FieldExtractor(Protocol):
    def extract(self, row: Element, sequence: int) -> Optional[Record]: ...


class HarvestOrchestrator:
    def __init__(
        self,
        document: Document,
        *,
        extractor: FieldExtractor,
        waiter: Optional[RenderWaiter] = None,
        reader: Optional[PaginationReader] = None,
        rows: Optional[RowLocator] = None,
        navigator: Optional[NavigationController] = None,
        selectors: GridSelectors = DETAILS_LIST_SELECTORS,
        limits: Optional[HarvestLimits] = None,
    ) -> None:
        self._document = document
        self._extractor = extractor
        self._selectors = selectors
        self._limits = limits or HarvestLimits()
        self._waiter = waiter or RenderWaiter()
        self._reader = reader or PaginationReader(document, selectors)
        self._rows = rows or RowLocator(document, selectors)
        self._navigator = navigator or NavigationController(
            document,
            reader=self._reader,
            rows=self._rows,
            waiter=self._waiter,
            selectors=selectors,
            render_timeout_ms=self._limits.render_timeout_ms,
            stability_seconds=self._limits.stability_seconds,
        )
        self._running = False
        self._last_scan: Optional[ScanResult] = None
        self._last_result: Optional[HarvestResult] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_scan(self) -> Optional[ScanResult]:
        return self._last_scan

    @property
    def last_result(self) -> Optional[HarvestResult]:
        return self._last_result

    @property
    def navigator(self) -> NavigationController:
        return self._navigator

    # ------------------------------------------------------------------
    # Single page
    # ------------------------------------------------------------------

    def scan_page(self) -> ScanResult:
        """Scan the currently visible page; refused while a harvest runs."""

        if self._running:
            raise HarvestBusyError()
        return self._scan()

    def _wait_for_render(self) -> bool:
        return wait_for_render_complete(
            self._waiter,
            self._document,
            loading_selector=self._selectors.loading_indicators,
            rows_present=self._rows.has_rows,
            timeout_ms=self._limits.render_timeout_ms,
            stability_seconds=self._limits.stability_seconds,
        )

    def _collect_records(self) -> Tuple[List[Record], int]:
        located = self._rows.locate()
        records: List[Record] = []
        for sequence, row in enumerate(located, start=1):
            record = self._extractor.extract(row, sequence)
            if record is not None and record.is_harvestable():
                records.append(record)
        return records, len(located)

    def _scan(self) -> ScanResult:
        self._wait_for_render()
        records, located = self._collect_records()
        state = self._reader.read(len(records))
        scan = ScanResult(records=records, state=state, rows_located=located)
        self._last_scan = scan
        log_line(
            f"[HARVEST] Scanned page {state.current_page}/{state.total_pages}: "
            f"{len(records)} records from {located} rows"
        )
        return scan

    # ------------------------------------------------------------------
    # Full sweep
    # ------------------------------------------------------------------

    def harvest(
        self,
        progress: Optional[ProgressSink] = None,
        cancel: Optional[CancelToken] = None,
    ) -> HarvestResult:
        if self._running:
            raise HarvestBusyError()

        self._running = True
        session = HarvestSession(status=HarvestStatus.RUNNING)
        started = time.monotonic()
        _harvest_event("session", phase="start")
        try:
            self._prime(session)
            while session.phase not in _TERMINAL_PHASES:
                if session.phase is HarvestPhase.SCANNING:
                    self._scan_step(session, progress)
                elif session.phase is HarvestPhase.DECIDING:
                    self._decide(session, cancel)
                elif session.phase is HarvestPhase.ADVANCING:
                    self._advance(session)
            result = self._result(session, success=True)
        except Exception as exc:  # noqa: BLE001
            session.status = HarvestStatus.ABORTED
            session.phase = HarvestPhase.ABORTED
            session.stop_reason = "unexpected_fault"
            _harvest_event(
                "session",
                phase="fault",
                error=str(exc),
                processed_count=session.processed_count,
                error_code=ErrorCode.UNEXPECTED_FAULT,
            )
            result = self._result(session, success=False, error=str(exc))
        finally:
            self._running = False

        _harvest_event(
            "session",
            phase="end",
            status=result.status.value,
            stop_reason=result.stop_reason,
            processed_count=result.processed_count,
            total_record_count=result.total_record_count,
            pages_scanned=result.pages_scanned,
            duration_seconds=round(time.monotonic() - started, 2),
        )
        self._last_result = result
        return result

    def _prime(self, session: HarvestSession) -> None:
        session.phase = HarvestPhase.PRIMING
        state = self._reader.read()
        if state.current_page != 1 and not self._navigator.go_to(1):
            _harvest_event(
                "session",
                phase="prime_failed",
                current_page=state.current_page,
                error_code=ErrorCode.NAVIGATION_STALL,
            )

        self._wait_for_render()
        session.state = self._reader.read()
        session.page_number = session.state.current_page
        log_line(
            f"[HARVEST] Starting at page {session.page_number} of "
            f"{session.state.total_pages} ({session.state.total_record_count} records advertised)"
        )
        session.phase = HarvestPhase.SCANNING

    def _scan_step(self, session: HarvestSession, progress: Optional[ProgressSink]) -> None:
        try:
            scan = self._scan()
        except Exception as exc:  # noqa: BLE001
            _harvest_event(
                "scan",
                phase="fault",
                page=session.page_number,
                error=str(exc),
                error_code=ErrorCode.UNEXPECTED_FAULT,
            )
            scan = ScanResult(records=[], state=session.state)

        session.pages_scanned += 1
        session.last_scan = scan
        session.state = scan.state
        session.append_page(scan.records, session.page_number)

        self._emit(
            progress,
            ProgressEvent(
                current_page=session.page_number,
                total_pages=max(scan.state.total_pages, session.page_number),
                processed_count=session.processed_count,
                total_record_count=scan.state.total_record_count,
                message=f"Processing page {session.page_number}: {len(scan.records)} records",
            ),
        )
        session.phase = HarvestPhase.DECIDING

    def _decide(self, session: HarvestSession, cancel: Optional[CancelToken]) -> None:
        if session.last_scan is not None and session.last_scan.records:
            session.consecutive_empty_pages = 0
        else:
            session.consecutive_empty_pages += 1
            _harvest_event(
                "session",
                phase="empty_page",
                page=session.page_number,
                consecutive=session.consecutive_empty_pages,
            )

        state = session.state
        if cancel is not None and cancel.cancelled:
            self._finish(session, HarvestStatus.ABORTED, ErrorCode.CANCELLED)
        elif (
            state.count_observed
            and state.total_record_count > 0
            and session.processed_count >= state.total_record_count
        ):
            self._finish(session, HarvestStatus.COMPLETED, "target_reached")
        elif session.consecutive_empty_pages >= self._limits.empty_page_threshold:
            self._finish(session, HarvestStatus.COMPLETED, "empty_page_limit")
        elif session.page_advances >= self._limits.max_page_advances:
            log_line(
                f"[HARVEST][WARN] Page-advance cap of {self._limits.max_page_advances} reached; "
                f"returning {session.processed_count} records"
            )
            self._finish(session, HarvestStatus.COMPLETED, "page_cap")
        else:
            try:
                has_next = self._navigator.can_advance()
            except Exception as exc:  # noqa: BLE001
                # A detached control is retried by clicking; a dead pager stalls there.
                self._navigation_fault(session, "can_advance", exc)
                has_next = True
            if not has_next:
                self._finish(session, HarvestStatus.COMPLETED, "no_next_control")
            elif session.consecutive_empty_pages >= self._limits.empty_page_threshold:
                self._finish(session, HarvestStatus.COMPLETED, "empty_page_limit")
            else:
                session.phase = HarvestPhase.ADVANCING

    def _advance(self, session: HarvestSession) -> None:
        try:
            moved = self._navigator.advance()
        except Exception as exc:  # noqa: BLE001
            self._navigation_fault(session, "advance", exc)
            try:
                moved = self._navigator.advance()
            except Exception as retry_exc:  # noqa: BLE001
                log_line(f"[HARVEST] Retried advance failed: {retry_exc}")
                moved = False

        if not moved:
            self._finish(session, HarvestStatus.COMPLETED, ErrorCode.NAVIGATION_STALL)
            return

        session.page_advances += 1
        session.page_number += 1
        self._waiter.pause(self._limits.inter_page_delay_seconds)
        session.phase = HarvestPhase.SCANNING

    @staticmethod
    def _navigation_fault(session: HarvestSession, step: str, exc: Exception) -> None:
        """Count a failed page transition like an empty page."""

        session.consecutive_empty_pages += 1
        _harvest_event(
            "nav",
            phase="fault",
            step=step,
            page=session.page_number,
            consecutive=session.consecutive_empty_pages,
            error=str(exc),
            error_code=ErrorCode.UNEXPECTED_FAULT,
        )

    @staticmethod
    def _finish(session: HarvestSession, status: HarvestStatus, reason: str) -> None:
        session.status = status
        session.phase = (
            HarvestPhase.COMPLETED if status is HarvestStatus.COMPLETED else HarvestPhase.ABORTED
        )
        session.stop_reason = reason

    @staticmethod
    def _emit(progress: Optional[ProgressSink], event: ProgressEvent) -> None:
        if progress is None:
            return
        try:
            progress(event)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[HARVEST] Progress listener failed: {exc}")

    @staticmethod
    def _result(
        session: HarvestSession, *, success: bool, error: Optional[str] = None
    ) -> HarvestResult:
        total = session.state.total_record_count
        return HarvestResult(
            success=success,
            status=session.status,
            records=list(session.accumulated_records),
            processed_count=session.processed_count,
            total_record_count=total if total > 0 else None,
            pages_scanned=session.pages_scanned,
            stop_reason=session.stop_reason,
            error=error,
            last_scan=session.last_scan,
        )


__all__ = ["FieldExtractor", "HarvestOrchestrator"]
