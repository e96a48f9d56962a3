"""Locate the currently visible record rows."""
from __future__ import annotations

from typing import Dict, Hashable, List, Optional, Sequence

from .dom import Document, Element
from .grid_selectors import DETAILS_LIST_SELECTORS, GridSelectors, SelectorStrategy
from .logging_utils import _harvest_event


class RowLocator:
    """Find visible record rows through ordered strategy fallbacks.

    The view is not assumed stable, so every ``locate()`` call re-queries the
    document. No strategy is retried with a delay here; callers wait and call
    again.
    """

    def __init__(
        self,
        document: Document,
        selectors: GridSelectors = DETAILS_LIST_SELECTORS,
        *,
        strategies: Optional[Sequence[SelectorStrategy]] = None,
        fallback_strategies: Optional[Sequence[SelectorStrategy]] = None,
    ) -> None:
        self._document = document
        self._selectors = selectors
        self._strategies = tuple(strategies or selectors.row_strategies)
        self._fallback_strategies = tuple(fallback_strategies or selectors.fallback_row_strategies)
        self.last_strategy: Optional[str] = None

    def locate(self) -> List[Element]:
        for strategy in self._strategies:
            rows = [row for row in strategy.find(self._document) if self._is_record_row(row)]
            if rows:
                self.last_strategy = strategy.name
                return rows

        rows = self._locate_with_fallbacks()
        self.last_strategy = "fallback" if rows else None
        if rows:
            _harvest_event("rows", phase="fallback", rows_found=len(rows))
        return rows

    def has_rows(self) -> bool:
        return bool(self.locate())

    def has_identifying_fields(self, row: Element) -> bool:
        for selector in (
            self._selectors.identifier_field,
            self._selectors.sub_label_field,
            self._selectors.total_field,
        ):
            field = row.query(selector)
            if field is not None and field.text().strip():
                return True
        return False

    def _is_record_row(self, row: Element) -> bool:
        return self.has_identifying_fields(row) and row.is_visible()

    def _locate_with_fallbacks(self) -> List[Element]:
        found: Dict[Hashable, Element] = {}
        for strategy in self._fallback_strategies:
            for element in strategy.find(self._document):
                row = element.closest(self._selectors.row_ancestor) or element.parent()
                if row is None or row.key in found:
                    continue
                if self.has_identifying_fields(row):
                    found[row.key] = row
        return [row for row in found.values() if row.is_visible()]


__all__ = ["RowLocator"]
