from __future__ import annotations

import queue
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List

import pytest

from app.harvester.page_worker import PageWorker
from app.harvester.snapshot_replay import SnapshotView, snapshot_session
from tests.grid_pages import paged_listing


def _worker(**kwargs: Any) -> PageWorker:
    view = SnapshotView(paged_listing([50, 50, 20], total=120))
    kwargs.setdefault("export_on_complete", False)
    return PageWorker(lambda: snapshot_session(view), idle_pump_seconds=0.01, **kwargs)


@pytest.fixture
def worker() -> Iterator[PageWorker]:
    page_worker = _worker()
    assert page_worker.start(wait_seconds=10) is True
    yield page_worker
    page_worker.stop()


def _drain(channel: "queue.Queue[Dict[str, Any]]") -> List[Dict[str, Any]]:
    messages = []
    while True:
        try:
            messages.append(channel.get_nowait())
        except queue.Empty:
            return messages


def test_initial_scan_is_cached(worker: PageWorker) -> None:
    response = worker.handle({"action": "getCurrentPageData"})

    assert response["success"] is True
    assert len(response["records"]) == 50
    assert worker.status() == {"ok": True, "alive": True, "busy": False, "startup_error": None}


def test_harvest_runs_on_worker_thread_and_publishes(worker: PageWorker) -> None:
    channel = worker.subscribe()

    response = worker.handle({"action": "harvestAll", "progress": True}, timeout=30)

    assert response["success"] is True
    assert response["processedCount"] == 120
    messages = _drain(channel)
    assert [message["action"] for message in messages] == ["progressUpdate"] * 3 + [
        "harvestComplete"
    ]
    assert messages[-1]["result"]["stopReason"] == "target_reached"
    assert worker.last_result is not None
    assert worker.last_export_path is None


def test_page_actions_dropped_while_harvest_pending(worker: PageWorker) -> None:
    worker._harvest_pending = True

    response = worker.handle({"action": "rescanPage"})

    assert response == {"success": False, "error": "Harvest in progress", "code": "harvest_busy"}
    assert worker.handle({"action": "ping"})["success"] is True


def test_unknown_action_answered_inline(worker: PageWorker) -> None:
    assert worker.knows("fly") is False
    assert worker.handle({"action": "fly"})["code"] == "unknown_action"


def test_completed_harvest_is_exported() -> None:
    page_worker = _worker(export_on_complete=True)
    assert page_worker.start(wait_seconds=10)
    try:
        page_worker.handle({"action": "getAllPagesData"}, timeout=30)
    finally:
        page_worker.stop()

    assert page_worker.last_export_path is not None
    assert page_worker.last_export_path.is_file()


def test_session_failure_is_reported() -> None:
    @contextmanager
    def _broken_session():
        raise RuntimeError("browser failed to launch")
        yield  # pragma: no cover

    page_worker = PageWorker(_broken_session, idle_pump_seconds=0.01)
    page_worker.start(wait_seconds=10)
    page_worker.stop()

    assert page_worker.ready is False
    assert page_worker.startup_error == "browser failed to launch"
    assert page_worker.handle({"action": "ping"}) == {
        "success": False,
        "error": "browser failed to launch",
    }
