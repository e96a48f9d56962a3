"""Live browser backend: Playwright element handles behind the ``Document`` protocol."""
from __future__ import annotations

import json
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence

from playwright.sync_api import (
    ElementHandle,
    Error as PWError,
    Page,
    TimeoutError as PWTimeout,
    sync_playwright,
)

from . import config
from .dom import Document
from .grid_selectors import DETAILS_LIST_SELECTORS
from .logging_utils import _harvest_event
from .utils import collapse_whitespace, log_line

_KEY_SCRIPT = """
el => {
  if (!el.dataset.harvesterKey) {
    window.__harvesterSeq = (window.__harvesterSeq || 0) + 1;
    el.dataset.harvesterKey = String(window.__harvesterSeq);
  }
  return el.dataset.harvesterKey;
}
"""

_VISIBLE_SCRIPT = """
el => {
  const rect = el.getBoundingClientRect();
  if (rect.width === 0 || rect.height === 0) return false;
  const style = window.getComputedStyle(el);
  return style.display !== 'none'
    && style.visibility !== 'hidden'
    && style.visibility !== 'collapse'
    && style.opacity !== '0';
}
"""

_ENABLED_SCRIPT = """
el => !el.disabled
  && el.getAttribute('aria-disabled') !== 'true'
  && !el.classList.contains('is-disabled')
"""

_OBSERVER_BINDING = "__harvesterRowsAdded"

_OBSERVER_SCRIPT = """
(() => {
  if (window.__harvesterObserver) return;
  const markers = __MARKERS__;
  const selector = __SELECTOR__;
  const isRow = (node) => markers.some((name) => node.classList.contains(name))
    || (typeof node.querySelector === 'function' && node.querySelector(selector) !== null);
  const observer = new MutationObserver((mutations) => {
    let added = 0;
    for (const mutation of mutations) {
      if (mutation.type !== 'childList') continue;
      for (const node of mutation.addedNodes) {
        if (node.nodeType === 1 && isRow(node)) {
          added += 1;
        }
      }
    }
    if (added > 0 && typeof window.__BINDING__ === 'function') {
      window.__BINDING__(added);
    }
  });
  const start = () => observer.observe(document.body, { childList: true, subtree: true });
  if (document.body) start(); else document.addEventListener('DOMContentLoaded', start);
  window.__harvesterObserver = observer;
})();
"""


@dataclass
class BrowserSession:
    """What the page worker needs from an open browser tab."""

    document: Document
    sleep: Callable[[float], None]
    watch: Callable[[Callable[[int], object]], None]
    clock: Callable[[], float] = time.monotonic
    # Wait used between commands; falls back to ``sleep``.
    idle: Optional[Callable[[float], None]] = None


class PlaywrightElement:
    def __init__(self, handle: ElementHandle) -> None:
        self._handle = handle
        self._key: Optional[str] = None

    @property
    def handle(self) -> ElementHandle:
        return self._handle

    @property
    def key(self) -> str:
        if self._key is None:
            self._key = str(self._handle.evaluate(_KEY_SCRIPT))
        return self._key

    def text(self) -> str:
        return collapse_whitespace(
            self._handle.evaluate("el => el.innerText || el.textContent || ''")
        )

    def attribute(self, name: str) -> Optional[str]:
        return self._handle.get_attribute(name)

    def query(self, selector: str) -> Optional["PlaywrightElement"]:
        found = self._handle.query_selector(selector)
        return PlaywrightElement(found) if found is not None else None

    def query_all(self, selector: str) -> List["PlaywrightElement"]:
        return [PlaywrightElement(found) for found in self._handle.query_selector_all(selector)]

    def _related(self, script: str, *args: object) -> Optional["PlaywrightElement"]:
        related = self._handle.evaluate_handle(script, *args).as_element()
        return PlaywrightElement(related) if related is not None else None

    def closest(self, selector: str) -> Optional["PlaywrightElement"]:
        return self._related("(el, selector) => el.closest(selector)", selector)

    def parent(self) -> Optional["PlaywrightElement"]:
        return self._related("el => el.parentElement")

    def is_visible(self) -> bool:
        try:
            return bool(self._handle.evaluate(_VISIBLE_SCRIPT))
        except PWError:
            return False

    def is_enabled(self) -> bool:
        try:
            return bool(self._handle.evaluate(_ENABLED_SCRIPT))
        except PWError:
            return False

    def click(self) -> None:
        try:
            self._handle.click(timeout=config.PLAYWRIGHT_CLICK_TIMEOUT_MS)
        except PWTimeout:
            # Overlays can intercept pointer events; a DOM click still reaches the handler.
            self._handle.evaluate("el => el.click()")

    def __repr__(self) -> str:
        return f"PlaywrightElement(key={self._key!r})"


class PlaywrightDocument:
    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def page(self) -> Page:
        return self._page

    def query(self, selector: str) -> Optional[PlaywrightElement]:
        found = self._page.query_selector(selector)
        return PlaywrightElement(found) if found is not None else None

    def query_all(self, selector: str) -> List[PlaywrightElement]:
        return [PlaywrightElement(found) for found in self._page.query_selector_all(selector)]


def page_sleeper(page: Page) -> Callable[[float], None]:
    """Return a sleep function that keeps Playwright's event loop turning."""

    def _sleep(seconds: float) -> None:
        if seconds is None or seconds <= 0:
            return
        if not page.is_closed():
            page.wait_for_timeout(int(seconds * 1000))

    return _sleep


def _safe_goto(page: Page, url: str) -> bool:
    try:
        _harvest_event("nav", phase="goto", url=url)
        page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=config.PLAYWRIGHT_NAV_TIMEOUT_SECONDS * 1000,
        )
        return True
    except PWTimeout as exc:
        log_line(f"[HARVEST][ERROR][NAV] goto({url!r}) timed out: {exc}")
        return False
    except PWError as exc:
        log_line(f"[HARVEST][ERROR][NAV] goto({url!r}) failed: {exc}")
        return False


@contextmanager
def open_grid_page(
    url: Optional[str] = None,
    *,
    headless: bool = config.HEADLESS,
    storage_state: Optional[str] = config.STORAGE_STATE_FILE,
    login_wait_seconds: float = 0.0,
) -> Iterator[Page]:
    """Launch Chromium, open ``url`` and yield the page.

    With ``login_wait_seconds`` in headed mode the user gets that long to sign
    in; the resulting session is written back to ``storage_state`` when given.
    """

    target = url or config.TARGET_URL
    state_path = Path(storage_state) if storage_state else None

    with sync_playwright() as pw:
        browser = pw.chromium.launch(
            headless=headless,
            args=[
                "--disable-blink-features=AutomationControlled",
                "--no-sandbox",
                "--disable-dev-shm-usage",
            ],
        )
        try:
            context = browser.new_context(
                user_agent=config.COMMON_HEADERS["User-Agent"],
                extra_http_headers={
                    "Accept-Language": config.COMMON_HEADERS["Accept-Language"]
                },
                locale="ar-EG",
                viewport={"width": 1368, "height": 900},
                storage_state=str(state_path) if state_path and state_path.exists() else None,
            )
            page = context.new_page()
            if page is None:
                raise RuntimeError("Failed to create Playwright page")

            if not _safe_goto(page, target):
                raise RuntimeError(f"Could not open {target}")

            if login_wait_seconds > 0 and not headless:
                log_line(f"[BROWSER] Waiting {login_wait_seconds:.0f}s for manual sign-in")
                page.wait_for_timeout(int(login_wait_seconds * 1000))
                if state_path is not None:
                    state_path.parent.mkdir(parents=True, exist_ok=True)
                    context.storage_state(path=str(state_path))
                    log_line(f"[BROWSER] Saved session state to {state_path}")

            yield page
        finally:
            browser.close()


def marker_selector(markers: Sequence[str]) -> str:
    """CSS selector matching any element that carries one of the marker classes."""

    return ", ".join(f".{name}" for name in markers)


def observer_script(markers: Sequence[str]) -> str:
    # Fluent lists insert whole page wrappers, so descendants are matched too.
    return (
        _OBSERVER_SCRIPT.replace("__MARKERS__", json.dumps(list(markers)))
        .replace("__SELECTOR__", json.dumps(marker_selector(markers)))
        .replace("__BINDING__", _OBSERVER_BINDING)
    )


def install_change_observer(
    page: Page,
    callback: Callable[[int], object],
    *,
    markers: tuple[str, ...] = DETAILS_LIST_SELECTORS.change_markers,
) -> None:
    """Report grid rows added to the page as ``callback(added_count)``."""

    page.expose_function(_OBSERVER_BINDING, callback)
    script = observer_script(markers)
    page.add_init_script(script)
    page.evaluate(script)
    _harvest_event("monitor", phase="observer_installed", markers=list(markers))


@contextmanager
def playwright_session(
    url: Optional[str] = None,
    *,
    headless: bool = config.HEADLESS,
    storage_state: Optional[str] = config.STORAGE_STATE_FILE,
    login_wait_seconds: float = 0.0,
) -> Iterator[BrowserSession]:
    with open_grid_page(
        url,
        headless=headless,
        storage_state=storage_state,
        login_wait_seconds=login_wait_seconds,
    ) as page:
        yield BrowserSession(
            document=PlaywrightDocument(page),
            sleep=page_sleeper(page),
            watch=lambda callback: install_change_observer(page, callback),
        )


__all__ = [
    "BrowserSession",
    "PlaywrightDocument",
    "PlaywrightElement",
    "install_change_observer",
    "marker_selector",
    "observer_script",
    "open_grid_page",
    "page_sleeper",
    "playwright_session",
]
