"""Selector strategies and hints for the Fluent UI DetailsList grid.

The invoicing portal renders its document list with Fluent UI (``ms-*``
classes) and localises labels in Arabic or English. Each lookup is expressed as
an ordered tuple of strategies, most specific first; callers take the first
strategy that yields a usable element.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from .dom import Document, Element


@dataclass(frozen=True)
class SelectorStrategy:
    """Match elements with a single CSS selector."""

    name: str
    selector: str

    def find(self, document: Document) -> List[Element]:
        return document.query_all(self.selector)


@dataclass(frozen=True)
class TextStrategy:
    """Match candidate controls whose visible text equals one of ``labels``.

    Comparison is case-insensitive on whitespace-collapsed text.
    """

    name: str
    selector: str
    labels: Tuple[str, ...]

    def find(self, document: Document) -> List[Element]:
        wanted = {label.casefold() for label in self.labels}
        return [
            element
            for element in document.query_all(self.selector)
            if element.text().strip().casefold() in wanted
        ]


Strategy = SelectorStrategy | TextStrategy


NEXT_CONTROL_STRATEGIES: Tuple[Strategy, ...] = (
    SelectorStrategy("aria_label_next", '[aria-label*="Next" i]'),
    SelectorStrategy("aria_label_next_ar", '[aria-label*="التالي"]'),
    SelectorStrategy("title_next", '[title*="Next" i], [title*="التالي"]'),
    SelectorStrategy("icon_chevron_right", '[data-icon-name="ChevronRight"]'),
    SelectorStrategy("icon_next", '[data-icon-name="Next"]'),
    TextStrategy(
        "text_next",
        'button, [role="button"], a',
        ("next", "التالي", "›", "»", ">"),
    ),
)

PREVIOUS_CONTROL_STRATEGIES: Tuple[Strategy, ...] = (
    SelectorStrategy("aria_label_previous", '[aria-label*="Previous" i]'),
    SelectorStrategy("aria_label_previous_ar", '[aria-label*="السابق"]'),
    SelectorStrategy("title_previous", '[title*="Previous" i], [title*="السابق"]'),
    SelectorStrategy("icon_chevron_left", '[data-icon-name="ChevronLeft"]'),
    SelectorStrategy("icon_previous", '[data-icon-name="Previous"]'),
    TextStrategy(
        "text_previous",
        'button, [role="button"], a',
        ("previous", "prev", "السابق", "‹", "«", "<"),
    ),
)

ROW_STRATEGIES: Tuple[SelectorStrategy, ...] = (
    SelectorStrategy("details_row_role", '.ms-DetailsRow[role="row"]'),
    SelectorStrategy("list_cell_gridcell", '.ms-List-cell[role="gridcell"]'),
    SelectorStrategy("data_list_index", "[data-list-index]"),
    SelectorStrategy("details_row", ".ms-DetailsRow"),
    SelectorStrategy("role_row", '[role="row"]'),
)

# Looser cell-level markers; matches are walked up to their enclosing row.
FALLBACK_ROW_STRATEGIES: Tuple[SelectorStrategy, ...] = (
    SelectorStrategy("table_row_role", 'tr[role="row"]'),
    SelectorStrategy("list_cell", ".ms-List-cell"),
    SelectorStrategy("automation_key", "[data-automation-key]"),
    SelectorStrategy("details_row_cell", ".ms-DetailsRow-cell"),
    SelectorStrategy("div_gridcell", 'div[role="gridcell"]'),
)


@dataclass(frozen=True)
class GridSelectors:
    """Selector hints for one list view."""

    row_strategies: Tuple[SelectorStrategy, ...] = ROW_STRATEGIES
    fallback_row_strategies: Tuple[SelectorStrategy, ...] = FALLBACK_ROW_STRATEGIES
    row_ancestor: str = '[role="row"]'

    # A row only counts when one of these carries text.
    identifier_field: str = (
        '.internalId-link a, [data-automation-key="uuid"] a, .griCellTitle'
    )
    sub_label_field: str = ".griCellSubTitle"
    total_field: str = '[data-automation-key="total"], .griCellTitleGray'

    loading_indicators: str = (
        '.LoadingIndicator, .ms-Spinner, [class*="loading"], [class*="spinner"], .ms-Shimmer'
    )

    total_count_regions: Tuple[str, ...] = (
        ".eta-pagination-totalrecordCount-label",
        '[class*="pagination"] [class*="total"]',
        '[class*="record"] [class*="count"]',
        ".ms-CommandBar-primaryCommand",
        ".ms-Label",
        '[class*="total"]',
        '[class*="count"]',
    )
    pager_regions: str = '[class*="pagination"], [class*="pager"], .ms-CommandBar'

    current_page_markers: Tuple[str, ...] = (
        ".eta-pageNumber.is-checked",
        '[class*="page"][class*="current"]',
        '[class*="active"][class*="page"]',
        '.ms-Button--primary[aria-pressed="true"]',
        '[aria-pressed="true"]',
        '[aria-current="page"]',
        ".is-selected",
        ".selected",
    )
    page_label: str = '.ms-Button-label, [class*="label"], [class*="text"]'
    # Controls that can be clicked to jump straight to a page.
    page_number_controls: str = (
        '.eta-pageNumber, [class*="pageNumber"], .ms-Button[aria-label*="Page" i]'
    )
    # Broader set scanned for the highest visible page label.
    page_label_controls: str = (
        '.eta-pageNumber, [class*="pageNumber"], .ms-Button[aria-label*="Page" i], '
        '[class*="page-"], .ms-Button'
    )
    control_container: str = 'button, [role="button"]'

    next_strategies: Tuple[Strategy, ...] = NEXT_CONTROL_STRATEGIES
    previous_strategies: Tuple[Strategy, ...] = PREVIOUS_CONTROL_STRATEGIES

    detail_tables: str = '.ms-DetailsList, [data-automationid="DetailsList"], table'
    detail_rows: str = '.ms-DetailsRow[role="row"], tr'
    detail_cells: str = ".ms-DetailsRow-cell, td"
    detail_cell_text: str = ".griCellTitle, .griCellTitleGray, .ms-DetailsRow-cellContent"

    change_markers: Tuple[str, ...] = field(default=("ms-DetailsRow", "ms-List-cell"))


DETAILS_LIST_SELECTORS = GridSelectors()

__all__ = [
    "SelectorStrategy",
    "TextStrategy",
    "Strategy",
    "GridSelectors",
    "DETAILS_LIST_SELECTORS",
    "NEXT_CONTROL_STRATEGIES",
    "PREVIOUS_CONTROL_STRATEGIES",
    "ROW_STRATEGIES",
    "FALLBACK_ROW_STRATEGIES",
]
