"""
Tests for the export pipeline.

Formatters and column resolution are tested directly; each format is then
rendered into a buffer and read back with the matching reader.
"""

import csv
import io
import json
from datetime import date, datetime, timezone

import pytest
from openpyxl import load_workbook

from adminlog.exports import (
    ADMIN_LOG_EXPORT_CONFIG,
    ExportColumn,
    ExportConfig,
    ExportFormat,
    ExportGenerationError,
    UnsupportedExportFormatError,
    build_export_filename,
    parse_export_format,
    render_export,
)
from adminlog.exports.columns import format_details
from adminlog.exports.excel_export import column_width, sheet_title, write_excel
from adminlog.exports.formatters import (
    EMPTY,
    MISSING,
    display_value,
    format_bool,
    format_currency,
    format_date,
    format_datetime,
    get_nested_value,
    truncate_text,
)
from adminlog.exports.pdf_export import fit_text, render_pdf

ORDER_CONFIG = ExportConfig(
    title="Orders",
    columns=(
        ExportColumn(key="number", header="Order"),
        ExportColumn(key="customer.name", header="Customer"),
        ExportColumn(key="items.length", header="Items", align="right"),
        ExportColumn(key="total", header="Total", align="right", formatter=format_currency),
    ),
)


def _order(number, name, items, total):
    return {"number": number, "customer": {"name": name}, "items": items, "total": total}


class TestFormatters:

    def test_nested_paths(self):
        row = {"customer": {"name": "Ada", "tags": ["vip", "new"]}}
        assert get_nested_value(row, "customer.name") == "Ada"
        assert get_nested_value(row, "customer.tags.length") == 2
        assert get_nested_value(row, "customer.tags.1") == "new"

    def test_missing_paths_return_sentinel(self):
        row = {"customer": None}
        assert get_nested_value(row, "customer.name") is MISSING
        assert get_nested_value(row, "nope") is MISSING
        assert get_nested_value({"tags": []}, "tags.3") is MISSING
        assert not MISSING

    def test_attribute_access(self):
        class Row:
            status = "shipped"
        assert get_nested_value(Row(), "status") == "shipped"

    def test_blank_values_render_as_dash(self):
        for value in (None, MISSING, ""):
            assert display_value(value) == EMPTY
            assert format_currency(value) == EMPTY
            assert format_date(value) == EMPTY
            assert format_datetime(value) == EMPTY
            assert truncate_text(value) == EMPTY

    def test_currency(self):
        assert format_currency(1234.5) == "1234.50"
        assert format_currency("19.999") == "20.00"
        assert format_currency("abc") == EMPTY

    def test_dates(self):
        assert format_date(date(2026, 10, 17)) == "17 Oct 2026"
        assert format_date("2026-10-17T23:30:00-02:00") == "18 Oct 2026"
        moment = datetime(2026, 10, 17, 14, 5, 9, tzinfo=timezone.utc)
        assert format_datetime(moment) == "17 Oct 2026 14:05:09"
        assert format_datetime("garbage") == EMPTY

    def test_bool_and_truncate(self):
        assert format_bool(True) == "Yes"
        assert format_bool(0) == "No"
        assert display_value(False) == "No"
        assert truncate_text("abcdef", 3) == "abc..."
        assert truncate_text("abc", 3) == "abc"


class TestColumns:

    def test_invalid_alignment_rejected(self):
        with pytest.raises(ValueError):
            ExportColumn(key="a", header="A", align="justify")

    def test_row_cells(self):
        cells = ORDER_CONFIG.row_cells(_order("A-1", "Ada", [1, 2, 3], 9.5))
        assert cells == ["A-1", "Ada", "3", "9.50"]

    def test_missing_field_renders_dash(self):
        cells = ORDER_CONFIG.row_cells({"number": "A-2"})
        assert cells == ["A-2", EMPTY, EMPTY, EMPTY]

    def test_with_metadata_does_not_mutate(self):
        updated = ORDER_CONFIG.with_metadata(Range="All to All")
        assert updated.metadata == {"Range": "All to All"}
        assert ORDER_CONFIG.metadata == {}


class TestFormatDetails:

    def test_http_details_summary(self):
        text = format_details({
            "kind": "http",
            "method": "PUT",
            "path": "/api/products/1",
            "query": {},
            "body": {"name": "X", "password": "***"},
            "status_code": 200,
        })
        assert text.startswith("PUT /api/products/1 -> 200")
        assert '"name": "X"' in text
        assert "password" not in text

    @pytest.mark.security
    def test_legacy_payload_hides_password(self):
        text = format_details({"password": "plaintext", "reason": "reset"})
        assert "plaintext" not in text
        assert text == "reason: reset"

    def test_note_and_blank(self):
        assert format_details({"kind": "note", "text": "Approved"}) == "Approved"
        assert format_details(None) == EMPTY

    def test_admin_log_row(self):
        row = {
            "timestamp": "2024-01-05T12:00:00+00:00",
            "actorName": None,
            "action": "DELETE",
            "entity": "Orders",
            "severity": "WARNING",
            "details": {"kind": "auth", "outcome": "failure", "reason": "bad password"},
            "ipAddress": "10.0.0.1",
        }
        assert ADMIN_LOG_EXPORT_CONFIG.row_cells(row) == [
            "05 Jan 2024 12:00:00",
            "System",
            "DELETE",
            "Orders",
            "WARNING",
            "outcome: failure, reason: bad password",
            "10.0.0.1",
        ]


class TestCsv:

    def test_quoting_round_trips(self):
        rows = [
            _order("A-1", 'Smith, "Ace" Ltd', [1], 10),
            _order("A-2", "Line\nbreak", [], 0),
        ]
        rendered = render_export(rows, ORDER_CONFIG, ExportFormat.CSV)
        text = b"".join(rendered.iter_chunks()).decode("utf-8")

        parsed = list(csv.reader(io.StringIO(text, newline="")))
        assert parsed[0] == ["Order", "Customer", "Items", "Total"]
        assert parsed[1] == ["A-1", 'Smith, "Ace" Ltd', "1", "10.00"]
        assert parsed[2] == ["A-2", "Line\nbreak", "0", "0.00"]
        assert rendered.rows == 2
        assert rendered.media_type == "text/csv"

    def test_empty_export_has_header_only(self):
        rendered = render_export([], ORDER_CONFIG, ExportFormat.CSV)
        assert b"".join(rendered.iter_chunks()) == b"Order,Customer,Items,Total\r\n"


class TestPdf:

    def test_single_page(self):
        sink = io.BytesIO()
        stats = render_pdf([_order("A-1", "Ada", [], 1)], ORDER_CONFIG, sink)
        assert sink.getvalue().startswith(b"%PDF-")
        assert stats.pages == 1
        assert stats.rows == 1
        assert stats.header_draws == 1

    @pytest.mark.slow
    def test_header_repeated_on_every_page(self):
        rows = [_order(f"A-{i}", "Ada", [i], i) for i in range(200)]
        stats = render_pdf(rows, ORDER_CONFIG, io.BytesIO())

        assert stats.pages > 1
        assert stats.header_draws == stats.pages
        assert stats.rows == 200
        assert stats.separators == 200 // 5

    def test_fit_text_clips_with_ellipsis(self):
        clipped = fit_text("x" * 500, 60, "Helvetica", 9)
        assert clipped.endswith("...")
        assert len(clipped) < 500
        assert fit_text("short", 60, "Helvetica", 9) == "short"


class TestExcel:

    def test_header_styling_and_widths(self):
        sink = io.BytesIO()
        count = write_excel([_order("A-1", "Ada", [1, 2], 3)], ORDER_CONFIG, sink)
        sink.seek(0)
        sheet = load_workbook(sink).active

        assert count == 1
        assert [cell.value for cell in sheet[1]] == ["Order", "Customer", "Items", "Total"]
        assert sheet["A1"].font.bold is True
        assert sheet["A1"].fill.start_color.rgb == "FFE0E0E0"
        assert sheet["C1"].alignment.horizontal == "right"
        assert sheet.column_dimensions["A"].width == column_width(100)
        assert sheet.freeze_panes == "A2"
        assert [cell.value for cell in sheet[2]] == ["A-1", "Ada", "2", "3.00"]

    def test_control_characters_stripped(self):
        sink = io.BytesIO()
        rows = [_order("A-1", "bell\x07char", [], 1), _order("A-2", "Bo", [], 2)]
        count = write_excel(rows, ORDER_CONFIG, sink)
        sink.seek(0)
        sheet = load_workbook(sink).active

        assert count == 2
        assert sheet["B2"].value == "bellchar"
        assert sheet["B3"].value == "Bo"

    def test_leading_equals_stored_as_text(self):
        sink = io.BytesIO()
        write_excel([_order("=1+1", "=HYPERLINK(\"http://x\")", [], 1)], ORDER_CONFIG, sink)
        sink.seek(0)
        sheet = load_workbook(sink).active

        assert sheet["A2"].value == "=1+1"
        assert sheet["A2"].data_type == "s"
        assert sheet["B2"].data_type == "s"

    def test_sheet_title_sanitised(self):
        assert sheet_title("Logs: 2024/01") == "Logs_ 2024_01"
        assert len(sheet_title("x" * 40)) == 31

    def test_column_width_minimum(self):
        assert column_width(16) == 8
        assert column_width(200) == 25


class TestJsonAndDispatch:

    def test_json_keyed_by_header(self):
        rendered = render_export([_order("A-1", "Ada", [], 2)], ORDER_CONFIG, ExportFormat.JSON)
        payload = json.loads(b"".join(rendered.iter_chunks()))
        assert payload == [{"Order": "A-1", "Customer": "Ada", "Items": "0", "Total": "2.00"}]

    def test_json_empty_array(self):
        rendered = render_export([], ORDER_CONFIG, ExportFormat.JSON)
        assert json.loads(b"".join(rendered.iter_chunks())) == []

    @pytest.mark.parametrize("raw,expected", [
        (None, ExportFormat.CSV),
        ("PDF", ExportFormat.PDF),
        ("xlsx", ExportFormat.EXCEL),
        ("excel", ExportFormat.EXCEL),
        (" json ", ExportFormat.JSON),
    ])
    def test_parse_export_format(self, raw, expected):
        assert parse_export_format(raw) is expected

    def test_unsupported_format(self):
        with pytest.raises(UnsupportedExportFormatError) as exc_info:
            parse_export_format("docx")
        assert exc_info.value.value == "docx"

    def test_filename_and_disposition(self):
        assert build_export_filename("orders", "csv", now=1700000000.5) == "orders-1700000000500.csv"
        rendered = render_export([], ORDER_CONFIG, ExportFormat.EXCEL, filename="admin_logs.xlsx")
        assert rendered.content_disposition == "attachment; filename=admin_logs.xlsx"
        assert rendered.media_type.endswith("spreadsheetml.sheet")

    def test_failure_wrapped(self):
        def exploding_rows():
            yield _order("A-1", "Ada", [], 1)
            raise RuntimeError("cursor lost")

        with pytest.raises(ExportGenerationError):
            render_export(exploding_rows(), ORDER_CONFIG, ExportFormat.CSV)
