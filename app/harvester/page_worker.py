from __future__ import annotations

import queue
import threading
from concurrent.futures import Future
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import config
from .commands import (
    BUSY_MESSAGE,
    INLINE_ACTIONS,
    CommandInterface,
    build_command_interface,
    resolve_action,
)
from .error_codes import ErrorCode
from .export_excel import export_records_to_excel
from .logging_utils import _harvest_event
from .monitor import ChangeMonitor
from .playwright_driver import BrowserSession, playwright_session
from .session import HarvestResult
from .utils import log_line

SessionFactory = Callable[[], AbstractContextManager[BrowserSession]]
_Request = Tuple[Dict[str, Any], Future]

_PAGE_ACTIONS = frozenset({"harvestAll", "rescanCurrentPage"})


class PageWorker:
    """
    Owns the browser tab on one dedicated thread.

    - Commands that touch the page are queued and run on that thread, in order.
    - ``ping``/``getCurrentPageData``/``cancelHarvest`` are answered from the
      calling thread using cached state.
    - While a harvest is running or queued, further harvests and rescans are
      dropped with a busy response instead of being queued.
    - Between commands the thread pumps browser events and polls the change
      monitor.
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        *,
        url: Optional[str] = None,
        headless: bool = config.HEADLESS,
        storage_state: Optional[str] = config.STORAGE_STATE_FILE,
        login_wait_seconds: float = 0.0,
        idle_pump_seconds: float = config.WORKER_IDLE_PUMP_SECONDS,
        export_on_complete: bool = True,
    ) -> None:
        self._session_factory: SessionFactory = session_factory or (
            lambda: playwright_session(
                url,
                headless=headless,
                storage_state=storage_state,
                login_wait_seconds=login_wait_seconds,
            )
        )
        self._idle_pump_seconds = max(0.01, idle_pump_seconds)
        self._export_on_complete = export_on_complete
        self._requests: "queue.Queue[_Request]" = queue.Queue()
        self._subscribers: List["queue.Queue[Dict[str, Any]]"] = []
        self._lock = threading.Lock()
        self._harvest_pending = False
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._stop = threading.Event()
        self._interface: Optional[CommandInterface] = None
        self.monitor: Optional[ChangeMonitor] = None
        self.startup_error: Optional[str] = None
        self.last_result: Optional[HarvestResult] = None
        self.last_export_path: Optional[Path] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, wait_seconds: Optional[float] = None) -> bool:
        if self._thread is not None and self._thread.is_alive():
            return self.ready
        self._stop.clear()
        self._ready.clear()
        self._thread = threading.Thread(target=self._run, name="harvester-page-worker", daemon=True)
        self._thread.start()
        if wait_seconds is not None:
            self._ready.wait(wait_seconds)
        return self.ready

    def stop(self, timeout: float = 10.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def ready(self) -> bool:
        return self._interface is not None and self.alive

    def status(self) -> Dict[str, Any]:
        interface = self._interface
        return {
            "ok": self.ready,
            "alive": self.alive,
            "busy": bool(interface and interface.busy),
            "startup_error": self.startup_error,
        }

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def knows(self, action: Any) -> bool:
        interface = self._interface
        if interface is not None:
            return interface.knows(action)
        return resolve_action(action) in INLINE_ACTIONS | _PAGE_ACTIONS | {"getRecordDetails"}

    def submit(self, request: Dict[str, Any]) -> Future:
        future: Future = Future()
        self._requests.put((request, future))
        return future

    def handle(self, request: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        interface = self._interface
        if interface is None:
            return {"success": False, "error": self.startup_error or "Browser session is not ready"}

        action = resolve_action(request.get("action")) if isinstance(request, dict) else None
        if action in INLINE_ACTIONS or not interface.knows(action):
            return interface.dispatch(request)

        if action in _PAGE_ACTIONS:
            with self._lock:
                if interface.busy or self._harvest_pending:
                    return {"success": False, "error": BUSY_MESSAGE, "code": ErrorCode.HARVEST_BUSY}
                if action == "harvestAll":
                    self._harvest_pending = True

        return self.submit(request).result(timeout)

    # ------------------------------------------------------------------
    # Progress fan-out
    # ------------------------------------------------------------------

    def subscribe(self) -> "queue.Queue[Dict[str, Any]]":
        channel: "queue.Queue[Dict[str, Any]]" = queue.Queue(maxsize=1000)
        with self._lock:
            self._subscribers.append(channel)
        return channel

    def unsubscribe(self, channel: "queue.Queue[Dict[str, Any]]") -> None:
        with self._lock:
            if channel in self._subscribers:
                self._subscribers.remove(channel)

    def _publish(self, message: Dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for channel in subscribers:
            try:
                channel.put_nowait(message)
            except queue.Full:
                continue

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def _on_harvest_complete(self, result: HarvestResult) -> None:
        self.last_result = result
        self._publish(
            {
                "action": "harvestComplete",
                "result": {
                    "success": result.success,
                    "processedCount": result.processed_count,
                    "status": result.status.value,
                    "stopReason": result.stop_reason,
                },
            }
        )
        if self._export_on_complete and result.records:
            self.last_export_path = export_records_to_excel(result.records)

    def _run(self) -> None:
        try:
            with self._session_factory() as session:
                interface = build_command_interface(
                    session.document,
                    sleep=session.sleep,
                    clock=session.clock,
                    progress_sink=self._publish,
                    on_harvest_complete=self._on_harvest_complete,
                )
                monitor = ChangeMonitor(
                    interface.orchestrator.scan_page, is_busy=lambda: interface.busy
                )
                session.watch(monitor.notify)
                self.monitor = monitor

                try:
                    interface.orchestrator.scan_page()
                except Exception as exc:  # noqa: BLE001
                    log_line(f"[WORKER] Initial scan failed: {exc}")

                idle = session.idle or session.sleep
                self._interface = interface
                self._ready.set()
                log_line("[WORKER] Browser session ready")

                while not self._stop.is_set():
                    try:
                        request, future = self._requests.get_nowait()
                    except queue.Empty:
                        idle(self._idle_pump_seconds)
                        monitor.poll()
                        continue
                    self._execute(interface, request, future)
        except Exception as exc:  # noqa: BLE001
            self.startup_error = str(exc)
            _harvest_event("worker", phase="crashed", error=str(exc))
        finally:
            self._interface = None
            self._ready.set()
            self._fail_pending("Browser session closed")

    def _execute(self, interface: CommandInterface, request: Dict[str, Any], future: Future) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(interface.dispatch(request))
        except Exception as exc:  # noqa: BLE001
            future.set_exception(exc)
        finally:
            if resolve_action(request.get("action")) == "harvestAll":
                with self._lock:
                    self._harvest_pending = False

    def _fail_pending(self, message: str) -> None:
        while True:
            try:
                _, future = self._requests.get_nowait()
            except queue.Empty:
                break
            if future.set_running_or_notify_cancel():
                future.set_result({"success": False, "error": message})
        with self._lock:
            self._harvest_pending = False


__all__ = ["PageWorker", "SessionFactory"]
