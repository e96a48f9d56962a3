from __future__ import annotations

from typing import List

import pytest

from app.harvester import navigation
from app.harvester.dom import SoupDocument
from app.harvester.error_codes import ErrorCode
from app.harvester.navigation import NavigationController
from app.harvester.pagination import PaginationReader
from app.harvester.rows import RowLocator
from app.harvester.snapshot_replay import SnapshotView, VirtualClock
from app.harvester.waiter import RenderWaiter
from tests.grid_pages import grid_page, invoice_row, paged_listing


def _controller(document, clock: VirtualClock, **kwargs) -> NavigationController:
    waiter = RenderWaiter(sleep=clock.sleep, clock=clock)
    reader = PaginationReader(document)
    return NavigationController(
        document,
        reader=reader,
        rows=RowLocator(document),
        waiter=waiter,
        render_timeout_ms=1_000,
        **kwargs,
    )


def _windowed_listing(page_count: int, *, window: int = 1) -> List[str]:
    """Pages whose pager only shows buttons next to the current page."""

    pages = []
    for number in range(1, page_count + 1):
        low = max(1, number - window)
        high = min(page_count, number + window)
        pages.append(
            grid_page(
                [invoice_row(number * 100 + offset) for offset in range(3)],
                current=number,
                page_buttons=range(low, high + 1),
                has_next=number < page_count,
            )
        )
    return pages


def test_advance_clicks_next_and_settles() -> None:
    clock = VirtualClock()
    view = SnapshotView(paged_listing([10, 10, 5]))
    controller = _controller(view, clock, settle_seconds=0.8)

    assert controller.advance() is True

    assert view.current_page == 2
    assert view.clicks == ["next"]
    assert clock.slept == [0.8]


def test_retreat_clicks_previous() -> None:
    view = SnapshotView(paged_listing([10, 10, 5]), start_page=3)

    assert _controller(view, VirtualClock()).retreat() is True
    assert view.current_page == 2


def test_advance_on_last_page_reports_stall(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[tuple[str, dict]] = []
    monkeypatch.setattr(
        navigation, "_harvest_event", lambda event, **fields: events.append((event, fields))
    )
    view = SnapshotView(paged_listing([10, 5]), start_page=2)
    controller = _controller(view, VirtualClock())

    assert controller.can_advance() is False
    assert controller.advance() is False
    assert view.clicks == []
    assert events[-1][1]["error_code"] == ErrorCode.NAVIGATION_STALL


def test_can_advance_does_not_click() -> None:
    view = SnapshotView(paged_listing([10, 10]))
    controller = _controller(view, VirtualClock())

    assert controller.can_advance() is True
    assert view.clicks == []
    assert view.current_page == 1


def test_go_to_uses_numbered_control() -> None:
    clock = VirtualClock()
    view = SnapshotView(paged_listing([10, 10, 10, 10]))
    controller = _controller(view, clock, direct_click_seconds=1.5)

    assert controller.go_to(3) is True

    assert view.current_page == 3
    assert view.clicks == ["page:3"]
    assert 1.5 in clock.slept


def test_go_to_steps_when_target_button_not_rendered() -> None:
    view = SnapshotView(_windowed_listing(6))
    controller = _controller(view, VirtualClock())

    assert controller.go_to(5) is True

    assert view.current_page == 5
    assert view.clicks == ["next"] * 4


def test_go_to_current_page_is_a_no_op() -> None:
    view = SnapshotView(paged_listing([10, 10]), start_page=2)

    assert _controller(view, VirtualClock()).go_to(2) is True
    assert view.clicks == []


def test_go_to_rejects_non_positive_pages() -> None:
    view = SnapshotView(paged_listing([10, 10]))

    assert _controller(view, VirtualClock()).go_to(0) is False


def test_go_to_without_any_controls_returns_false() -> None:
    document = SoupDocument("<html><body>" + invoice_row(1) + "</body></html>")

    assert _controller(document, VirtualClock()).go_to(2) is False


def test_stepping_is_bounded_when_view_never_moves() -> None:
    clicks = {"n": 0}

    def _ignore_click(element) -> None:
        clicks["n"] += 1

    html = grid_page([invoice_row(1)], current=1, page_buttons=[1])
    document = SoupDocument(html, on_click=_ignore_click)
    controller = _controller(document, VirtualClock(), slack=2)

    assert controller.go_to(3) is False
    assert clicks["n"] == (3 - 1) + 2


def test_go_to_swallows_click_failures() -> None:
    def _explode(element) -> None:
        raise RuntimeError("element detached")

    html = grid_page([invoice_row(1)], current=1, page_buttons=[1, 2])
    document = SoupDocument(html, on_click=_explode)

    assert _controller(document, VirtualClock()).go_to(2) is False
