"""Command-line harvest against a live browser session."""
from __future__ import annotations

import argparse
import time
from contextlib import AbstractContextManager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from . import config
from .commands import build_command_interface
from .config_validation import validate_runtime_config
from .export_excel import export_records_to_excel
from .logging_utils import _harvest_event
from .playwright_driver import BrowserSession, playwright_session
from .session import HarvestLimits
from .utils import ensure_dirs, log_line, save_json_file, setup_run_logger


def _log_progress(message: Dict[str, Any]) -> None:
    progress = message.get("progress") or {}
    log_line(
        f"[PROGRESS] page {progress.get('currentPage')}/{progress.get('totalPages')} "
        f"processed={progress.get('processedCount')}/{progress.get('totalRecordCount')} "
        f"{progress.get('message', '')}"
    )


def run_harvest(
    url: Optional[str] = None,
    *,
    headless: bool = config.HEADLESS,
    storage_state: Optional[str] = config.STORAGE_STATE_FILE,
    login_wait_seconds: float = 0.0,
    export_path: Optional[str | Path] = None,
    export: bool = True,
    empty_page_threshold: Optional[int] = None,
    session_factory: Optional[Callable[[], AbstractContextManager[BrowserSession]]] = None,
) -> Dict[str, Any]:
    """Open the list view, harvest every page and write the run summary."""

    ensure_dirs()
    log_path = setup_run_logger()
    started_at = datetime.utcnow()
    started = time.monotonic()
    target = url or config.TARGET_URL

    limits = HarvestLimits(
        empty_page_threshold=empty_page_threshold or config.EMPTY_PAGE_THRESHOLD,
        max_page_advances=config.MAX_PAGE_ADVANCES,
    )
    factory = session_factory or (
        lambda: playwright_session(
            target,
            headless=headless,
            storage_state=storage_state,
            login_wait_seconds=login_wait_seconds,
        )
    )

    _harvest_event("run", phase="start", url=target, headless=headless)
    with factory() as session:
        interface = build_command_interface(
            session.document,
            sleep=session.sleep,
            clock=session.clock,
            progress_sink=_log_progress,
            limits=limits,
        )
        response = interface.dispatch({"action": "harvestAll", "progress": True})
        result = interface.orchestrator.last_result

    summary: Dict[str, Any] = {
        "url": target,
        "started_at": started_at.isoformat() + "Z",
        "duration_seconds": round(time.monotonic() - started, 2),
        "log_file": str(log_path),
        "success": bool(response.get("success")),
        "status": response.get("status"),
        "stop_reason": response.get("stopReason"),
        "processed_count": response.get("processedCount", 0),
        "total_record_count": response.get("totalRecordCount"),
        "pages_scanned": response.get("pagesScanned", 0),
        "error": response.get("error"),
        "export_path": None,
    }

    if export and result is not None and result.records:
        summary["export_path"] = str(export_records_to_excel(result.records, export_path))

    save_json_file(config.SUMMARY_FILE, summary)
    _harvest_event("run", phase="end", **summary)
    return summary


def _cli_entrypoint(argv: Optional[List[str]] = None) -> int:  # pragma: no cover
    parser = argparse.ArgumentParser(description="Harvest every page of the invoice list view")
    parser.add_argument("--url", default=None)
    parser.add_argument("--headed", action="store_true", default=False)
    parser.add_argument("--storage-state", default=config.STORAGE_STATE_FILE)
    parser.add_argument(
        "--login-wait",
        type=float,
        default=0.0,
        help="Seconds to wait for a manual sign-in (headed mode only)",
    )
    parser.add_argument("--export", default=None, help="Excel output path")
    parser.add_argument("--no-export", action="store_true", default=False)
    parser.add_argument("--empty-page-threshold", type=int, default=None)
    args = parser.parse_args(argv)

    ensure_dirs()
    validate_runtime_config("cli")

    summary = run_harvest(
        url=args.url,
        headless=not args.headed,
        storage_state=args.storage_state,
        login_wait_seconds=args.login_wait,
        export_path=args.export,
        export=not args.no_export,
        empty_page_threshold=args.empty_page_threshold,
    )
    return 0 if summary["success"] else 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(_cli_entrypoint())

__all__ = ["run_harvest", "_cli_entrypoint"]
