"""Move the list view between pages and verify where it landed."""
from __future__ import annotations

from typing import Iterator, Optional, Sequence

from . import config
from .dom import Document, Element
from .error_codes import ErrorCode
from .grid_selectors import DETAILS_LIST_SELECTORS, GridSelectors, Strategy
from .logging_utils import _harvest_event
from .pagination import PaginationReader, PaginationState, parse_page_label
from .rows import RowLocator
from .utils import log_line
from .waiter import RenderWaiter, wait_for_render_complete


class NavigationController:
    """Direct page selection with a sequential next/previous fallback.

    ``advance``/``retreat`` only report whether a control was activated;
    ``go_to`` verifies the outcome by re-reading the pagination state.
    """

    def __init__(
        self,
        document: Document,
        *,
        reader: PaginationReader,
        rows: RowLocator,
        waiter: RenderWaiter,
        selectors: GridSelectors = DETAILS_LIST_SELECTORS,
        settle_seconds: float = config.CONTROL_SETTLE_SECONDS,
        direct_click_seconds: float = config.DIRECT_PAGE_CLICK_SECONDS,
        step_seconds: float = config.SEQUENTIAL_STEP_SECONDS,
        slack: int = config.NAVIGATION_SLACK,
        render_timeout_ms: int = config.RENDER_TIMEOUT_MS,
        stability_seconds: float = config.DOM_STABILITY_SECONDS,
    ) -> None:
        self._document = document
        self._reader = reader
        self._rows = rows
        self._waiter = waiter
        self._selectors = selectors
        self._settle_seconds = settle_seconds
        self._direct_click_seconds = direct_click_seconds
        self._step_seconds = step_seconds
        self._slack = max(0, slack)
        self._render_timeout_ms = render_timeout_ms
        self._stability_seconds = stability_seconds

    # ------------------------------------------------------------------
    # Stepwise controls
    # ------------------------------------------------------------------

    def advance(self) -> bool:
        return self._activate(self._selectors.next_strategies, direction="next")

    def retreat(self) -> bool:
        return self._activate(self._selectors.previous_strategies, direction="previous")

    def can_advance(self) -> bool:
        return next(self._eligible_controls(self._selectors.next_strategies), None) is not None

    def _control_for(self, element: Element) -> Element:
        return element.closest(self._selectors.control_container) or element

    def _eligible_controls(self, strategies: Sequence[Strategy]) -> Iterator[Element]:
        for strategy in strategies:
            for element in strategy.find(self._document):
                control = self._control_for(element)
                if control.is_enabled() and control.is_visible():
                    yield control

    def _activate(self, strategies: Sequence[Strategy], *, direction: str) -> bool:
        for control in self._eligible_controls(strategies):
            try:
                control.click()
            except Exception as exc:  # noqa: BLE001
                log_line(f"[NAV] Click on {direction} control failed: {exc}")
                continue
            self._waiter.pause(self._settle_seconds)
            return True

        _harvest_event(
            "nav",
            phase="no_control",
            direction=direction,
            error_code=ErrorCode.NAVIGATION_STALL,
        )
        return False

    # ------------------------------------------------------------------
    # Targeted navigation
    # ------------------------------------------------------------------

    def go_to(self, page_number: int) -> bool:
        """Bring the view to ``page_number``; ``True`` only when verified."""

        if page_number < 1:
            return False

        try:
            state = self._reader.read()
            if state.current_page == page_number:
                return True

            direct = self._direct_page_control(page_number)
            if direct is not None:
                log_line(f"[NAV] Clicking page button {page_number}")
                direct.click()
                self._waiter.pause(self._direct_click_seconds)
                state = self._settle_and_read()
                if state.current_page == page_number:
                    return True

            return self._step_towards(page_number, state)
        except Exception as exc:  # noqa: BLE001
            _harvest_event(
                "nav",
                phase="goto_error",
                target=page_number,
                error=str(exc),
                error_code=ErrorCode.NAVIGATION_STALL,
            )
            return False

    def _direct_page_control(self, page_number: int) -> Optional[Element]:
        for control in self._document.query_all(self._selectors.page_number_controls):
            label = control.query(self._selectors.page_label) or control
            if parse_page_label(label.text()) != page_number:
                continue
            if control.is_enabled() and control.is_visible():
                return control
        return None

    def _settle_and_read(self) -> PaginationState:
        wait_for_render_complete(
            self._waiter,
            self._document,
            loading_selector=self._selectors.loading_indicators,
            rows_present=self._rows.has_rows,
            timeout_ms=self._render_timeout_ms,
            stability_seconds=self._stability_seconds,
        )
        return self._reader.read()

    def _step_towards(self, page_number: int, state: PaginationState) -> bool:
        max_attempts = abs(page_number - state.current_page) + self._slack
        attempts = 0
        while state.current_page != page_number and attempts < max_attempts:
            attempts += 1
            if state.current_page < page_number:
                stepped = self.advance()
            else:
                stepped = self.retreat()
            if not stepped:
                break

            self._waiter.pause(self._step_seconds)
            state = self._settle_and_read()
            _harvest_event(
                "nav",
                phase="step",
                attempt=attempts,
                current_page=state.current_page,
                target=page_number,
            )

        if state.current_page != page_number:
            _harvest_event(
                "nav",
                phase="goto_failed",
                target=page_number,
                current_page=state.current_page,
                attempts=attempts,
                error_code=ErrorCode.NAVIGATION_STALL,
            )
            return False
        return True


__all__ = ["NavigationController"]
