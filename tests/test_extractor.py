from __future__ import annotations

import pytest

from app.harvester.dom import SoupDocument
from app.harvester.extractor import (
    UNSPECIFIED_ADDRESS,
    InvoiceRecord,
    InvoiceRowExtractor,
    format_amount,
    parse_amount,
    split_vat,
)
from tests.grid_pages import electronic_number, grid_page, invoice_row


def _first_row(html: str):
    document = SoupDocument(html)
    return document.query('[role="row"], tr')


def test_keyed_cells_fill_the_record() -> None:
    row = _first_row(grid_page([invoice_row(4)]))

    record = InvoiceRowExtractor().extract(row, 1)

    assert record is not None
    assert record.sequence_within_page == 1
    assert record.electronic_number == electronic_number(4)
    assert record.internal_number == "INT-4"
    assert record.issue_date == "15/3/2024"
    assert record.submission_date == "15/3/2024"
    assert record.issue_time == "10:30 AM"
    assert record.document_type == "Invoice"
    assert record.document_version == "1.0"
    assert record.total_amount == "1,140.00 EGP"
    assert record.vat_amount == "140.00"
    assert record.invoice_value == "1,000.00"
    assert record.seller_name == "Nile Trading"
    assert record.seller_tax_number == "100-200-300"
    assert record.seller_address == UNSPECIFIED_ADDRESS
    assert record.buyer_name == "Delta Foods"
    assert record.buyer_address == UNSPECIFIED_ADDRESS
    assert record.submission_id == "SUB000000000004"
    assert record.purchase_order_ref == "SUB000000000004"
    assert record.status == "Valid"
    assert record.is_harvestable()


def test_share_link_prefers_long_submission_id() -> None:
    row = _first_row(grid_page([invoice_row(4)]))

    record = InvoiceRowExtractor().extract(row, 1)

    assert record.external_link == (
        f"https://invoicing.eta.gov.eg/documents/{electronic_number(4)}/share/SUB000000000004"
    )


def test_share_link_falls_back_to_electronic_number() -> None:
    extractor = InvoiceRowExtractor()
    record = InvoiceRecord(
        sequence_within_page=1,
        electronic_number="ab-CDEFGHIJKLMNOPQRSTUVWXYZ0123456",
        submission_id="short",
    )

    link = extractor.build_external_link(record)

    assert link.endswith("/share/CDEFGHIJKLMNOPQRSTUVWXYZ01")


def test_status_transition_is_joined() -> None:
    html = """<html><body><div role="row">
      <div data-automation-key="uuid"><a class="griCellTitle">ABC</a></div>
      <div data-automation-key="status">
        <div class="horizontal valid-rejected">
          <span class="status-Valid">Valid</span><span class="status-Rejected">Rejected</span>
        </div>
      </div>
    </div></body></html>"""

    record = InvoiceRowExtractor().extract(_first_row(html), 1)

    assert record.status == "Valid → Rejected"


def test_positional_cells_fill_missing_fields() -> None:
    html = """<html><body><table>
      <tr role="row">
        <td><a>POS123</a></td>
        <td>01/02/2024</td>
        <td>Invoice</td>
        <td>2,280.00</td>
        <td>Seller</td>
        <td>Buyer</td>
        <td>-</td>
        <td>Valid</td>
      </tr>
    </table></body></html>"""

    record = InvoiceRowExtractor().extract(_first_row(html), 3)

    assert record.electronic_number == "POS123"
    assert record.issue_date == "01/02/2024"
    assert record.total_amount == "2,280.00"
    assert record.vat_amount == "280.00"


def test_row_text_patterns_are_the_last_resort() -> None:
    html = (
        '<html><body><div role="row">Invoice ABCDEFGHIJKLMNOPQRSTUV12 issued 5/1/2024 '
        "for 570.00 EGP</div></body></html>"
    )

    record = InvoiceRowExtractor().extract(_first_row(html), 1)

    assert record.electronic_number == "ABCDEFGHIJKLMNOPQRSTUV12"
    assert record.issue_date == "5/1/2024"
    assert record.total_amount == "570.00 EGP"
    assert record.invoice_value == "500.00"


def test_row_without_fields_is_not_harvestable() -> None:
    record = InvoiceRowExtractor().extract(
        _first_row('<html><body><div role="row">nothing here</div></body></html>'), 1
    )

    assert record is not None
    assert record.is_harvestable() is False


class _ExplodingRow:
    def query_all(self, selector: str):
        raise RuntimeError("stale handle")


def test_extraction_error_is_a_miss() -> None:
    assert InvoiceRowExtractor().extract(_ExplodingRow(), 1) is None


def test_tagged_returns_a_copy() -> None:
    record = InvoiceRecord(sequence_within_page=2, electronic_number="X")

    tagged = record.tagged(page_number=3, global_index=42)

    assert (tagged.page_number, tagged.global_index) == (3, 42)
    assert (record.page_number, record.global_index) == (0, 0)


@pytest.mark.parametrize(
    "text, expected",
    [("1,140.00 EGP", 1140.0), ("٬", 0.0), ("", 0.0), (None, 0.0), ("EGP 12.5", 12.5)],
)
def test_parse_amount(text, expected) -> None:
    assert parse_amount(text) == expected


def test_format_and_split_vat() -> None:
    net, vat = split_vat(114.0, 0.14)

    assert format_amount(net) == "100.00"
    assert format_amount(vat) == "14.00"
    assert format_amount(0) == "0"
    assert format_amount(1234567.891) == "1,234,567.89"


DETAIL_TABLE = """<html><body><table>
  <tr><td>Code</td><td>اسم الصنف</td><td>Unit</td><td>Unit name</td><td>Qty</td><td>Price</td></tr>
  <tr><td>EG-1</td><td>Rice 5kg</td><td>BAG</td><td>شنطة</td><td>2</td><td>150.00</td>
      <td>300.00</td><td>42.00</td><td>42.00</td></tr>
  <tr><td></td><td>Oil 1L</td><td></td><td></td><td>3</td><td>60.00</td></tr>
  <tr><td>short</td><td>row</td></tr>
</table></body></html>"""


def test_line_items_from_detail_table() -> None:
    items = InvoiceRowExtractor().extract_line_items(SoupDocument(DETAIL_TABLE), "ANY")

    assert [item.description for item in items] == ["Rice 5kg", "Oil 1L"]
    rice, oil = items
    assert (rice.item_code, rice.unit_code, rice.quantity, rice.total_value) == (
        "EG-1",
        "BAG",
        "2",
        "300.00",
    )
    assert oil.item_code == "ITEM-3"
    assert oil.unit_code == "EA"
    assert oil.vat_amount == "0"


def test_line_items_fall_back_to_known_record() -> None:
    known = [
        InvoiceRecord(
            sequence_within_page=1,
            electronic_number="E1",
            total_amount="1,140.00 EGP",
            invoice_value="1,000.00",
            vat_amount="140.00",
        )
    ]
    document = SoupDocument("<html><body><p>details unavailable</p></body></html>")
    extractor = InvoiceRowExtractor()

    items = extractor.extract_line_items(document, "E1", known)

    assert len(items) == 1
    assert items[0].item_code == "E1"
    assert items[0].total_value == "1,000.00"
    assert items[0].vat_amount == "140.00"
    assert extractor.extract_line_items(document, "missing", known) == []
