from __future__ import annotations

from typing import Any, List

from bs4 import BeautifulSoup
from playwright.sync_api import TimeoutError as PWTimeout

from app.harvester import playwright_driver
from app.harvester.playwright_driver import (
    PlaywrightElement,
    install_change_observer,
    marker_selector,
    observer_script,
    page_sleeper,
)


class _FakePage:
    def __init__(self, closed: bool = False) -> None:
        self.closed = closed
        self.waits: List[int] = []
        self.exposed: List[Any] = []
        self.scripts: List[str] = []

    def is_closed(self) -> bool:
        return self.closed

    def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)

    def expose_function(self, name: str, callback) -> None:
        self.exposed.append((name, callback))

    def add_init_script(self, script: str) -> None:
        self.scripts.append(script)

    def evaluate(self, script: str) -> None:
        self.scripts.append(script)


class _StubbornHandle:
    def __init__(self) -> None:
        self.evaluated: List[str] = []

    def click(self, timeout: int) -> None:
        raise PWTimeout("element is covered by an overlay")

    def evaluate(self, script: str, *args: Any) -> Any:
        self.evaluated.append(script)
        return "7"


def test_page_sleeper_pumps_through_the_page() -> None:
    page = _FakePage()
    sleep = page_sleeper(page)

    sleep(0.25)
    sleep(0)
    sleep(-1)

    assert page.waits == [250]


def test_page_sleeper_skips_closed_page() -> None:
    page = _FakePage(closed=True)

    page_sleeper(page)(1.0)

    assert page.waits == []


def test_click_falls_back_to_dom_click() -> None:
    handle = _StubbornHandle()
    element = PlaywrightElement(handle)

    element.click()

    assert handle.evaluated == ["el => el.click()"]
    assert element.key == "7"


def test_change_observer_installed_with_markers(monkeypatch) -> None:
    monkeypatch.setattr(playwright_driver, "_harvest_event", lambda *args, **kwargs: None)
    page = _FakePage()
    calls: List[int] = []

    install_change_observer(page, calls.append, markers=("ms-DetailsRow",))

    assert page.exposed[0][0] == "__harvesterRowsAdded"
    assert page.exposed[0][1] == calls.append
    assert len(page.scripts) == 2
    assert '["ms-DetailsRow"]' in page.scripts[0]
    assert "__BINDING__" not in page.scripts[0]


def test_observer_matches_rows_inside_inserted_wrappers() -> None:
    markers = ("ms-DetailsRow", "ms-List-cell")
    wrapper = BeautifulSoup(
        '<div class="ms-List-page"><div class="ms-List-cell"><div>INV1</div></div></div>',
        "html5lib",
    ).select_one(".ms-List-page")

    selector = marker_selector(markers)

    assert selector == ".ms-DetailsRow, .ms-List-cell"
    assert not set(wrapper["class"]) & set(markers)
    assert wrapper.select_one(selector) is not None

    script = observer_script(markers)
    assert 'const selector = ".ms-DetailsRow, .ms-List-cell";' in script
    assert "node.querySelector(selector) !== null" in script
    assert "__SELECTOR__" not in script and "__MARKERS__" not in script
