"""Field extraction for ETA invoice rows.

Maps one located row to an ``InvoiceRecord``. Extraction runs three passes,
each filling only what the previous passes left empty: keyed cells
(``data-automation-key``), cell positions, then patterns over the row text.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence

from . import config
from .dom import Document, Element
from .error_codes import ErrorCode
from .grid_selectors import DETAILS_LIST_SELECTORS, GridSelectors
from .logging_utils import _harvest_event

UNSPECIFIED_ADDRESS = "غير محدد"
DEFAULT_DOCUMENT_TYPE = "فاتورة"
DETAIL_HEADER_LABELS = {"اسم الصنف", "description"}

_TITLE = ".griCellTitleGray, .griCellTitle"
_SUBTITLE = ".griCellSubTitle"
_ELECTRONIC_NUMBER = re.compile(r"[A-Z0-9]{20,30}")
_DATE = re.compile(r"\d{1,2}/\d{1,2}/\d{4}")
_PLAIN_AMOUNT = re.compile(r"^\d+[\d,]*\.?\d*$")


@dataclass
class InvoiceRecord:
    sequence_within_page: int
    page_number: int = 0
    global_index: int = 0
    electronic_number: str = ""
    internal_number: str = ""
    document_type: str = DEFAULT_DOCUMENT_TYPE
    document_version: str = "1.0"
    status: str = ""
    issue_date: str = ""
    issue_time: str = ""
    submission_date: str = ""
    currency: str = config.DEFAULT_CURRENCY
    total_amount: str = ""
    invoice_value: str = ""
    vat_amount: str = ""
    tax_discount: str = "0"
    seller_name: str = ""
    seller_tax_number: str = ""
    seller_address: str = ""
    buyer_name: str = ""
    buyer_tax_number: str = ""
    buyer_address: str = ""
    submission_id: str = ""
    purchase_order_ref: str = ""
    external_link: str = ""

    def is_harvestable(self) -> bool:
        return bool(self.electronic_number or self.internal_number or self.total_amount)

    def tagged(self, *, page_number: int, global_index: int) -> "InvoiceRecord":
        return replace(self, page_number=page_number, global_index=global_index)


@dataclass(frozen=True)
class LineItem:
    item_code: str
    description: str
    unit_code: str = "EA"
    unit_name: str = "قطعة"
    quantity: str = "1"
    unit_price: str = "0"
    total_value: str = "0"
    tax_amount: str = "0"
    vat_amount: str = "0"


def parse_amount(text: Optional[str]) -> float:
    """Parse a displayed amount such as ``"1,140.00 EGP"``; ``0.0`` when unparsable."""

    if not text:
        return 0.0
    cleaned = re.sub(r"[^\d.]", "", text)
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def format_amount(amount: float) -> str:
    if not amount:
        return "0"
    return f"{amount:,.2f}"


def split_vat(total: float, rate: float) -> tuple[float, float]:
    """Return ``(net_value, vat)`` for a VAT-inclusive ``total``."""

    vat = total * rate / (1 + rate)
    return total - vat, vat


def _text_of(element: Optional[Element]) -> str:
    return element.text().strip() if element is not None else ""


class InvoiceRowExtractor:
    def __init__(
        self,
        selectors: GridSelectors = DETAILS_LIST_SELECTORS,
        *,
        vat_rate: float = config.VAT_RATE,
        currency: str = config.DEFAULT_CURRENCY,
        link_template: str = config.RECORD_LINK_TEMPLATE,
    ) -> None:
        self._selectors = selectors
        self._vat_rate = vat_rate
        self._currency = currency
        self._link_template = link_template
        self._amount_in_text = re.compile(rf"\d+[,٬]?\d*\.?\d*\s*{re.escape(currency)}")

    def extract(self, row: Element, sequence: int) -> Optional[InvoiceRecord]:
        record = InvoiceRecord(sequence_within_page=sequence, currency=self._currency)
        try:
            self._from_keyed_cells(row, record)
            self._from_cell_positions(row, record)
            self._from_row_text(row, record)
        except Exception as exc:  # noqa: BLE001
            _harvest_event(
                "extract",
                phase="row_error",
                sequence=sequence,
                error=str(exc),
                error_code=ErrorCode.EXTRACTION_MISS,
            )
            return None

        if record.total_amount and not record.vat_amount:
            self._derive_amounts(record)
        if record.electronic_number:
            record.external_link = self.build_external_link(record)
        return record

    def build_external_link(self, record: InvoiceRecord) -> str:
        if not record.electronic_number:
            return ""
        if record.submission_id and len(record.submission_id) > 10:
            share_id = record.submission_id
        else:
            share_id = re.sub(r"[^A-Z0-9]", "", record.electronic_number)[:26]
        return self._link_template.format(
            electronic_number=record.electronic_number, share_id=share_id
        )

    def _derive_amounts(self, record: InvoiceRecord) -> None:
        total = parse_amount(record.total_amount)
        if total > 0:
            net, vat = split_vat(total, self._vat_rate)
            record.vat_amount = format_amount(vat)
            record.invoice_value = format_amount(net)

    def _from_keyed_cells(self, row: Element, record: InvoiceRecord) -> None:
        for cell in row.query_all(".ms-DetailsRow-cell, [data-automation-key]"):
            key = cell.attribute("data-automation-key")
            if key == "uuid":
                record.electronic_number = _text_of(cell.query(".internalId-link a.griCellTitle, a"))
                record.internal_number = _text_of(cell.query(_SUBTITLE))
            elif key == "dateTimeReceived":
                date_text = _text_of(cell.query(_TITLE))
                if date_text:
                    record.issue_date = date_text
                    record.submission_date = date_text
                record.issue_time = _text_of(cell.query(_SUBTITLE)) or record.issue_time
            elif key == "typeName":
                record.document_type = _text_of(cell.query(_TITLE)) or DEFAULT_DOCUMENT_TYPE
                record.document_version = _text_of(cell.query(_SUBTITLE)) or "1.0"
            elif key == "total":
                total_text = _text_of(cell.query(_TITLE))
                if total_text:
                    record.total_amount = total_text
                    self._derive_amounts(record)
            elif key == "issuerName":
                record.seller_name = _text_of(cell.query(_TITLE))
                record.seller_tax_number = _text_of(cell.query(_SUBTITLE))
                if record.seller_name and not record.seller_address:
                    record.seller_address = UNSPECIFIED_ADDRESS
            elif key == "receiverName":
                record.buyer_name = _text_of(cell.query(_TITLE))
                record.buyer_tax_number = _text_of(cell.query(_SUBTITLE))
                if record.buyer_name and not record.buyer_address:
                    record.buyer_address = UNSPECIFIED_ADDRESS
            elif key == "submission":
                submission = _text_of(cell.query("a.submissionId-link, a"))
                if submission:
                    record.submission_id = submission
                    record.purchase_order_ref = submission
            elif key == "status":
                record.status = self._status_text(cell)

    def _status_text(self, cell: Element) -> str:
        transition = cell.query(".horizontal.valid-rejected")
        if transition is not None:
            valid = transition.query(".status-Valid")
            rejected = transition.query(".status-Rejected")
            if valid is not None and rejected is not None:
                return f"{_text_of(valid)} → {_text_of(rejected)}"
            return ""
        return _text_of(cell.query(".textStatus, .griCellTitle, .griCellTitleGray"))

    def _from_cell_positions(self, row: Element, record: InvoiceRecord) -> None:
        cells = row.query_all('.ms-DetailsRow-cell, td, [role="gridcell"]')
        if len(cells) < 8:
            return

        if not record.electronic_number:
            record.electronic_number = _text_of(cells[0].query("a"))

        if not record.total_amount:
            for cell in cells[2:6]:
                text = cell.text().strip()
                if self._currency in text or _PLAIN_AMOUNT.match(re.sub(r"[,٬]", "", text)):
                    record.total_amount = text
                    break

        if not record.issue_date:
            for cell in cells[1:4]:
                text = cell.text().strip()
                if "/" in text and len(text) >= 8:
                    record.issue_date = text
                    record.submission_date = text
                    break

    def _from_row_text(self, row: Element, record: InvoiceRecord) -> None:
        text = row.text()

        if not record.electronic_number:
            found = _ELECTRONIC_NUMBER.search(text)
            if found:
                record.electronic_number = found.group(0)

        if not record.issue_date:
            found = _DATE.search(text)
            if found:
                record.issue_date = found.group(0)
                record.submission_date = found.group(0)

        if not record.total_amount:
            found = self._amount_in_text.search(text)
            if found:
                record.total_amount = found.group(0)

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def _cell_text(self, cells: Sequence[Element], index: int) -> str:
        if index >= len(cells):
            return ""
        cell = cells[index]
        return _text_of(cell.query(self._selectors.detail_cell_text) or cell)

    def extract_line_items(
        self,
        document: Document,
        record_id: str,
        known_records: Iterable[InvoiceRecord] = (),
    ) -> List[LineItem]:
        """Read the open detail grid, or summarise the matching known record."""

        items: List[LineItem] = []
        table = document.query(self._selectors.detail_tables)
        if table is not None:
            for index, row in enumerate(table.query_all(self._selectors.detail_rows)):
                cells = row.query_all(self._selectors.detail_cells)
                if len(cells) < 6:
                    continue
                item = LineItem(
                    item_code=self._cell_text(cells, 0) or f"ITEM-{index + 1}",
                    description=self._cell_text(cells, 1) or "صنف",
                    unit_code=self._cell_text(cells, 2) or "EA",
                    unit_name=self._cell_text(cells, 3) or "قطعة",
                    quantity=self._cell_text(cells, 4) or "1",
                    unit_price=self._cell_text(cells, 5) or "0",
                    total_value=self._cell_text(cells, 6) or "0",
                    tax_amount=self._cell_text(cells, 7) or "0",
                    vat_amount=self._cell_text(cells, 8) or "0",
                )
                if item.description.strip().casefold() in DETAIL_HEADER_LABELS:
                    continue
                items.append(item)

        if items:
            return items

        for record in known_records:
            if record.electronic_number == record_id:
                return [
                    LineItem(
                        item_code=record.electronic_number or "INVOICE",
                        description="إجمالي الفاتورة",
                        unit_code="EA",
                        unit_name="فاتورة",
                        quantity="1",
                        unit_price=record.total_amount or "0",
                        total_value=record.invoice_value or record.total_amount or "0",
                        tax_amount="0",
                        vat_amount=record.vat_amount or "0",
                    )
                ]
        return []


__all__ = [
    "InvoiceRecord",
    "LineItem",
    "InvoiceRowExtractor",
    "parse_amount",
    "format_amount",
    "split_vat",
]
