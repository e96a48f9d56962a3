"""Pagination state inference.

The portal does not expose its paging model, so the current page, the page
count and the record total are inferred from whatever text the view shows.
Text recognition is a list of ``RecognizerRule`` objects per field; new
locales or formats are added by extending those tuples.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from .dom import Document
from .error_codes import ErrorCode
from .grid_selectors import DETAILS_LIST_SELECTORS, GridSelectors
from .logging_utils import _harvest_event

TOTAL_RECORDS = "total_record_count"
TOTAL_PAGES = "total_pages"
PAGE_LABEL = "page_label"

CONVENTIONAL_PAGE_SIZES: Tuple[int, ...] = (10, 20, 25, 50, 100)
DEFAULT_PAGE_SIZE = 50

_NUMBER = r"(\d[\d,٬]*)"
_LEADING_INT = re.compile(r"\s*(\d+)")


def _to_int(raw: str) -> Optional[int]:
    digits = re.sub(r"[,٬\s]", "", raw or "")
    if not digits:
        return None
    try:
        return int(digits)
    except ValueError:
        return None


@dataclass(frozen=True)
class PaginationState:
    current_page: int = 1
    total_pages: int = 1
    total_record_count: int = 0
    # True when the record total came from page text rather than a clamp.
    count_observed: bool = False
    degraded: bool = False


@dataclass(frozen=True)
class RecognizerRule:
    """Map a text pattern to one pagination field."""

    name: str
    pattern: "re.Pattern[str]"
    field: str
    group: Optional[int] = None

    def match(self, text: str) -> Optional[int]:
        found = self.pattern.search(text or "")
        if not found:
            return None
        if self.group is not None:
            return _to_int(found.group(self.group) or "")
        for value in found.groups():
            if value:
                return _to_int(value)
        return None


def _rule(name: str, regex: str, field: str, *, group: Optional[int] = None) -> RecognizerRule:
    return RecognizerRule(name, re.compile(regex, re.IGNORECASE), field, group)


TOTAL_COUNT_RULES: Tuple[RecognizerRule, ...] = (
    _rule("ar_results_label", rf"النتائج\s*:\s*{_NUMBER}", TOTAL_RECORDS),
    _rule("ar_results_suffix", rf"{_NUMBER}\s*نتيجة", TOTAL_RECORDS),
    _rule("results_label", rf"Results\s*:\s*{_NUMBER}", TOTAL_RECORDS),
    _rule("total_label", rf"Total\s*:\s*{_NUMBER}", TOTAL_RECORDS),
    _rule("items_suffix", rf"{_NUMBER}\s*items?\b", TOTAL_RECORDS),
    _rule("results_suffix", rf"{_NUMBER}\s*results?\b", TOTAL_RECORDS),
    _rule("ar_of", rf"من\s*{_NUMBER}", TOTAL_RECORDS),
    _rule("of", rf"\bof\s*{_NUMBER}", TOTAL_RECORDS),
)

PAGER_RANGE_RULES: Tuple[RecognizerRule, ...] = (
    _rule("range_of", rf"(\d+)\s*[-–—]\s*(\d+)\s*(?:of|من)\s*{_NUMBER}", TOTAL_RECORDS, group=3),
)

PAGE_OF_RULES: Tuple[RecognizerRule, ...] = (
    _rule("ar_page_of", r"صفحة\s*\d+\s*من\s*(\d+)", TOTAL_PAGES),
    _rule("page_of", r"page\s*\d+\s*of\s*(\d+)", TOTAL_PAGES),
)

PAGE_LABEL_RULES: Tuple[RecognizerRule, ...] = (
    _rule("aria_page", r"page\s*(\d+)", PAGE_LABEL),
    _rule("ar_aria_page", r"صفحة\s*(\d+)", PAGE_LABEL),
)


def parse_page_label(text: str) -> Optional[int]:
    """Parse a leading positive integer the way a page button label reads."""

    found = _LEADING_INT.match(text or "")
    if not found:
        return None
    value = int(found.group(1))
    return value if value > 0 else None


def snap_page_size(
    record_count: int,
    sizes: Sequence[int] = CONVENTIONAL_PAGE_SIZES,
    default: int = DEFAULT_PAGE_SIZE,
) -> int:
    """Snap an observed row count to the nearest conventional page size.

    Ties go to the larger size since a page never shows more rows than its
    size.
    """

    if record_count <= 0 or not sizes:
        return default
    return min(sizes, key=lambda size: (abs(size - record_count), -size))


def _first_match(rules: Iterable[RecognizerRule], text: str) -> Optional[int]:
    for rule in rules:
        value = rule.match(text)
        if value is not None and value > 0:
            return value
    return None


class PaginationReader:
    """Derive a fresh ``PaginationState`` from the document on every call."""

    def __init__(
        self,
        document: Document,
        selectors: GridSelectors = DETAILS_LIST_SELECTORS,
        *,
        total_count_rules: Sequence[RecognizerRule] = TOTAL_COUNT_RULES,
        pager_range_rules: Sequence[RecognizerRule] = PAGER_RANGE_RULES,
        page_of_rules: Sequence[RecognizerRule] = PAGE_OF_RULES,
        page_label_rules: Sequence[RecognizerRule] = PAGE_LABEL_RULES,
        page_sizes: Sequence[int] = CONVENTIONAL_PAGE_SIZES,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._document = document
        self._selectors = selectors
        self._total_count_rules = tuple(total_count_rules)
        self._pager_range_rules = tuple(pager_range_rules)
        self._page_of_rules = tuple(page_of_rules)
        self._page_label_rules = tuple(page_label_rules)
        self._page_sizes = tuple(page_sizes)
        self._default_page_size = default_page_size

    def read(self, prior_record_count: int = 0) -> PaginationState:
        prior = max(0, int(prior_record_count or 0))
        try:
            total_count, observed = self._read_total_count()
            current_page = self._read_current_page()
            total_pages = self._read_total_pages(total_count, prior)
        except Exception as exc:  # noqa: BLE001
            fallback_pages = max(1, self._safe_max_page_label())
            _harvest_event(
                "pagination",
                phase="degraded",
                error=str(exc),
                error_code=ErrorCode.STATE_READ_DEGRADED,
                total_pages=fallback_pages,
                total_record_count=prior,
            )
            return PaginationState(
                current_page=1,
                total_pages=fallback_pages,
                total_record_count=prior,
                count_observed=False,
                degraded=True,
            )

        current_page = max(1, current_page)
        return PaginationState(
            current_page=current_page,
            total_pages=max(total_pages, current_page),
            total_record_count=max(total_count, prior),
            count_observed=observed and total_count >= prior,
        )

    def max_page_label(self) -> int:
        """Return the highest page number shown on any pagination control."""

        highest = 1
        for control in self._document.query_all(self._selectors.page_label_controls):
            label = control.query(self._selectors.page_label) or control
            value = parse_page_label(label.text())
            if value is not None:
                highest = max(highest, value)
            aria_value = _first_match(self._page_label_rules, control.attribute("aria-label") or "")
            if aria_value is not None:
                highest = max(highest, aria_value)
        return highest

    def _safe_max_page_label(self) -> int:
        try:
            return self.max_page_label()
        except Exception:  # noqa: BLE001
            return 1

    def _read_total_count(self) -> Tuple[int, bool]:
        for selector in self._selectors.total_count_regions:
            for element in self._document.query_all(selector):
                value = _first_match(self._total_count_rules, element.text())
                if value is not None:
                    return value, True

        for element in self._document.query_all(self._selectors.pager_regions):
            value = _first_match(self._pager_range_rules, element.text())
            if value is not None:
                return value, True

        return 0, False

    def _read_current_page(self) -> int:
        for selector in self._selectors.current_page_markers:
            for marker in self._document.query_all(selector):
                label = marker.query(self._selectors.page_label) or marker
                value = parse_page_label(label.text())
                if value is not None:
                    return value
        return 1

    def _read_total_pages(self, total_count: int, prior_record_count: int) -> int:
        for element in self._document.query_all(self._selectors.pager_regions):
            value = _first_match(self._page_of_rules, element.text())
            if value is not None:
                return value

        if total_count > 0:
            page_size = snap_page_size(
                prior_record_count, self._page_sizes, self._default_page_size
            )
            return max(1, math.ceil(total_count / page_size))

        return self.max_page_label()


__all__ = [
    "PaginationState",
    "PaginationReader",
    "RecognizerRule",
    "TOTAL_COUNT_RULES",
    "PAGER_RANGE_RULES",
    "PAGE_OF_RULES",
    "PAGE_LABEL_RULES",
    "CONVENTIONAL_PAGE_SIZES",
    "DEFAULT_PAGE_SIZE",
    "parse_page_label",
    "snap_page_size",
]
