"""Offline harvest over saved HTML snapshots of the list view.

Each ``page_<n>.html`` file is one rendered page. ``SnapshotView`` swaps the
rendered page when its next/previous or numbered page controls are clicked,
so the full harvest loop runs without a browser.
"""
from __future__ import annotations

import re
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from . import config
from .commands import build_command_interface
from .config_validation import validate_runtime_config
from .dom import SoupDocument, SoupElement
from .export_excel import export_records_to_excel
from .grid_selectors import DETAILS_LIST_SELECTORS, GridSelectors, Strategy
from .logging_utils import _harvest_event
from .pagination import parse_page_label
from .playwright_driver import BrowserSession
from .session import HarvestLimits
from .utils import log_line

_PAGE_FILE = re.compile(r"page_(\d+)\.html?$", re.IGNORECASE)


class VirtualClock:
    """Clock whose ``sleep`` advances time instantly."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.slept: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.now += seconds


class SnapshotView(SoupDocument):
    def __init__(
        self,
        pages: Sequence[str],
        *,
        start_page: int = 1,
        selectors: GridSelectors = DETAILS_LIST_SELECTORS,
    ) -> None:
        if not pages:
            raise ValueError("SnapshotView needs at least one page")
        self._pages = list(pages)
        self._selectors = selectors
        self.page_index = min(max(1, start_page), len(self._pages)) - 1
        self.clicks: List[str] = []
        super().__init__(self._pages[self.page_index], on_click=self._handle_click)

    @property
    def current_page(self) -> int:
        return self.page_index + 1

    @property
    def page_count(self) -> int:
        return len(self._pages)

    def show(self, page_number: int) -> bool:
        if not 1 <= page_number <= len(self._pages):
            return False
        self.page_index = page_number - 1
        self.load(self._pages[self.page_index])
        return True

    def replace_page(self, page_number: int, html: str) -> None:
        self._pages[page_number - 1] = html
        if page_number == self.current_page:
            self.load(html)

    def _control_keys(self, strategies: Sequence[Strategy]) -> set:
        keys = set()
        for strategy in strategies:
            for element in strategy.find(self):
                control = element.closest(self._selectors.control_container) or element
                keys.add(control.key)
        return keys

    def _handle_click(self, element: SoupElement) -> None:
        if element.key in self._control_keys(self._selectors.next_strategies):
            self.clicks.append("next")
            self.show(self.current_page + 1)
            return
        if element.key in self._control_keys(self._selectors.previous_strategies):
            self.clicks.append("previous")
            self.show(self.current_page - 1)
            return

        label = element.query(self._selectors.page_label) or element
        target = parse_page_label(label.text())
        if target is not None:
            self.clicks.append(f"page:{target}")
            self.show(target)


@contextmanager
def snapshot_session(
    view: SnapshotView, clock: Optional[VirtualClock] = None
) -> Iterator[BrowserSession]:
    """Present ``view`` as an open browser tab driven by a virtual clock."""

    clock = clock or VirtualClock()
    yield BrowserSession(
        document=view,
        sleep=clock.sleep,
        watch=lambda callback: None,
        clock=clock,
        idle=time.sleep,
    )


def _page_sort_key(path: Path) -> int:
    match = _PAGE_FILE.search(path.name)
    return int(match.group(1)) if match else 0


def load_snapshot_pages(directory: Path) -> List[str]:
    paths = sorted(
        (path for path in Path(directory).iterdir() if _PAGE_FILE.search(path.name)),
        key=_page_sort_key,
    )
    return [path.read_text(encoding="utf-8") for path in paths]


@dataclass
class ReplayConfig:
    snapshots_dir: Path
    export: bool = False
    export_path: Optional[Path] = None
    empty_page_threshold: Optional[int] = None


def run_snapshot_harvest(config_obj: ReplayConfig) -> Dict[str, Any]:
    validate_runtime_config("replay")
    pages = load_snapshot_pages(config_obj.snapshots_dir)
    if not pages:
        raise FileNotFoundError(f"No page_*.html snapshots in {config_obj.snapshots_dir}")

    _harvest_event("replay", phase="start", snapshots=str(config_obj.snapshots_dir), pages=len(pages))

    clock = VirtualClock()
    view = SnapshotView(pages)
    limits = HarvestLimits(
        empty_page_threshold=config_obj.empty_page_threshold or config.EMPTY_PAGE_THRESHOLD,
        max_page_advances=config.MAX_PAGE_ADVANCES,
    )
    interface = build_command_interface(view, sleep=clock.sleep, clock=clock, limits=limits)
    result = interface.orchestrator.harvest()

    summary: Dict[str, Any] = {
        "snapshots": len(pages),
        "status": result.status.value,
        "stop_reason": result.stop_reason,
        "processed_count": result.processed_count,
        "total_record_count": result.total_record_count,
        "pages_scanned": result.pages_scanned,
        "success": result.success,
    }
    if config_obj.export:
        summary["export_path"] = str(
            export_records_to_excel(result.records, config_obj.export_path)
        )

    _harvest_event("replay", phase="end", **summary)
    return summary


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Harvest saved list-view snapshots offline.")
    parser.add_argument(
        "snapshots",
        nargs="?",
        default=str(config.SNAPSHOTS_DIR),
        help="Directory holding page_<n>.html files",
    )
    parser.add_argument("--export", action="store_true", default=False)
    parser.add_argument("--empty-page-threshold", type=int, default=None)
    args = parser.parse_args()

    cfg = ReplayConfig(
        snapshots_dir=Path(args.snapshots),
        export=args.export,
        empty_page_threshold=args.empty_page_threshold,
    )
    outcome = run_snapshot_harvest(cfg)
    log_line(f"[REPLAY] {outcome}")
