from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from app.harvester.commands import (
    BUSY_MESSAGE,
    CommandInterface,
    build_command_interface,
    resolve_action,
)
from app.harvester.session import HarvestResult
from app.harvester.snapshot_replay import SnapshotView, VirtualClock
from tests.grid_pages import electronic_number, grid_page, invoice_row, paged_listing


def _interface(
    view: SnapshotView,
    *,
    sink=None,
    on_complete=None,
) -> CommandInterface:
    clock = VirtualClock()
    return build_command_interface(
        view,
        sleep=clock.sleep,
        clock=clock,
        progress_sink=sink,
        on_harvest_complete=on_complete,
    )


@pytest.fixture
def listing() -> SnapshotView:
    return SnapshotView(paged_listing([50, 50, 20], total=120))


def test_ping(listing: SnapshotView) -> None:
    response = _interface(listing).dispatch({"action": "ping"})

    assert response == {"success": True, "message": "Harvester is ready", "busy": False}


@pytest.mark.parametrize("request_body", [{"action": "fly"}, {"action": None}, {}])
def test_unknown_actions(listing: SnapshotView, request_body: Dict[str, Any]) -> None:
    response = _interface(listing).dispatch(request_body)

    assert response == {"success": False, "error": "Unknown action", "code": "unknown_action"}


def test_non_object_request_is_rejected(listing: SnapshotView) -> None:
    response = _interface(listing).dispatch(["ping"])

    assert response["success"] is False
    assert response["code"] == "invalid_request"


@pytest.mark.parametrize(
    "alias, canonical",
    [
        ("getInvoiceData", "getCurrentPageData"),
        ("getInvoiceDetails", "getRecordDetails"),
        ("getAllPagesData", "harvestAll"),
        ("rescanPage", "rescanCurrentPage"),
        ("ping", "ping"),
    ],
)
def test_legacy_action_names_resolve(alias: str, canonical: str) -> None:
    assert resolve_action(alias) == canonical


def test_current_page_data_before_any_scan(listing: SnapshotView) -> None:
    response = _interface(listing).dispatch({"action": "getCurrentPageData"})

    assert response == {
        "success": True,
        "records": [],
        "totalRecordCount": 0,
        "currentPage": 1,
        "totalPages": 1,
    }


def test_rescan_updates_cached_page_data(listing: SnapshotView) -> None:
    interface = _interface(listing)

    rescan = interface.dispatch({"action": "rescanPage"})
    cached = interface.dispatch({"action": "getInvoiceData"})

    assert rescan["success"] is True
    assert len(rescan["records"]) == 50
    assert rescan["totalRecordCount"] == 120
    assert rescan["totalPages"] == 3
    assert cached == rescan


def test_harvest_all_returns_every_record(listing: SnapshotView) -> None:
    completed: List[HarvestResult] = []
    interface = _interface(listing, on_complete=completed.append)

    response = interface.dispatch({"action": "getAllPagesData"})

    assert response["success"] is True
    assert response["processedCount"] == 120
    assert response["totalRecordCount"] == 120
    assert response["status"] == "completed"
    assert response["stopReason"] == "target_reached"
    assert len(response["records"]) == 120
    assert response["records"][-1]["global_index"] == 120
    assert len(completed) == 1 and completed[0].processed_count == 120


def test_progress_messages_are_forwarded_when_requested(listing: SnapshotView) -> None:
    messages: List[Dict[str, Any]] = []
    interface = _interface(listing, sink=messages.append)

    interface.dispatch({"action": "harvestAll", "options": {"progressCallback": True}})

    assert [message["action"] for message in messages] == ["progressUpdate"] * 3
    first = messages[0]["progress"]
    assert first["currentPage"] == 1
    assert first["totalPages"] == 3
    assert first["processedCount"] == 50
    assert first["percentage"] == 33.3
    assert first["message"] == "Processing page 1: 50 records"


def test_progress_is_silent_unless_requested(listing: SnapshotView) -> None:
    messages: List[Dict[str, Any]] = []
    interface = _interface(listing, sink=messages.append)

    interface.dispatch({"action": "harvestAll"})

    assert messages == []


def test_page_actions_are_refused_during_a_harvest(listing: SnapshotView) -> None:
    observed: List[Dict[str, Any]] = []
    interface: Optional[CommandInterface] = None

    def _probe(message: Dict[str, Any]) -> None:
        assert interface is not None
        observed.append(interface.dispatch({"action": "rescanCurrentPage"}))
        observed.append(interface.dispatch({"action": "harvestAll"}))
        observed.append(interface.dispatch({"action": "ping"}))

    interface = _interface(listing, sink=_probe)
    response = interface.dispatch({"action": "harvestAll", "progress": True})

    assert response["processedCount"] == 120
    busy = {"success": False, "error": BUSY_MESSAGE, "code": "harvest_busy"}
    assert observed[0] == busy
    assert observed[1] == busy
    assert observed[2]["busy"] is True


def test_cancel_harvest_stops_after_current_page(listing: SnapshotView) -> None:
    acknowledgements: List[Dict[str, Any]] = []
    interface: Optional[CommandInterface] = None

    def _cancel(message: Dict[str, Any]) -> None:
        assert interface is not None
        acknowledgements.append(interface.dispatch({"action": "cancelHarvest"}))

    interface = _interface(listing, sink=_cancel)
    response = interface.dispatch({"action": "harvestAll", "progress": True})

    assert acknowledgements[0] == {"success": True, "message": "Cancellation requested"}
    assert response["success"] is True
    assert response["status"] == "aborted"
    assert response["stopReason"] == "cancelled"
    assert response["processedCount"] == 50


def test_cancel_without_running_harvest(listing: SnapshotView) -> None:
    response = _interface(listing).dispatch({"action": "cancelHarvest"})

    assert response["success"] is False


def test_record_details_requires_an_id(listing: SnapshotView) -> None:
    response = _interface(listing).dispatch({"action": "getInvoiceDetails"})

    assert response["success"] is False
    assert response["code"] == "invalid_request"


def test_record_details_fall_back_to_known_record() -> None:
    view = SnapshotView([grid_page([invoice_row(7)], has_next=False)])
    interface = _interface(view)
    interface.dispatch({"action": "rescanCurrentPage"})
    view.replace_page(1, "<html><body><p>Document closed</p></body></html>")

    response = interface.dispatch(
        {"action": "getRecordDetails", "recordId": electronic_number(7)}
    )

    assert response["success"] is True
    assert response["recordId"] == electronic_number(7)
    assert [item["item_code"] for item in response["items"]] == [electronic_number(7)]


def test_handler_failures_become_error_responses(
    listing: SnapshotView, monkeypatch: pytest.MonkeyPatch
) -> None:
    interface = _interface(listing)

    def _broken(*args, **kwargs):
        raise RuntimeError("grid detached")

    monkeypatch.setattr(interface.orchestrator, "scan_page", _broken)

    response = interface.dispatch({"action": "rescanCurrentPage"})

    assert response == {"success": False, "error": "grid detached"}
