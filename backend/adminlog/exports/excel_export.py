"""Spreadsheet export: one openpyxl worksheet with a styled header row."""

import logging
from typing import Any, BinaryIO, Iterable

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from adminlog.exports.columns import ExportConfig

logger = logging.getLogger(__name__)

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(fill_type="solid", start_color="FFE0E0E0", end_color="FFE0E0E0")
MIN_COLUMN_WIDTH = 8

# Excel limits sheet titles to 31 characters and forbids a few symbols
_SHEET_TITLE_MAX = 31
_SHEET_TITLE_FORBIDDEN = "[]:*?/\\"


def sheet_title(name: str) -> str:
    cleaned = "".join("_" if char in _SHEET_TITLE_FORBIDDEN else char for char in name)
    return (cleaned.strip() or "Sheet1")[:_SHEET_TITLE_MAX]


def worksheet_text(value: str) -> str:
    """Drop control characters openpyxl refuses to store."""
    return ILLEGAL_CHARACTERS_RE.sub("", value)


def column_width(points: int) -> int:
    """Spreadsheet character width for a column configured in PDF points."""
    return max(points // 8, MIN_COLUMN_WIDTH)


def write_excel(rows: Iterable[Any], config: ExportConfig, sink: BinaryIO) -> int:
    """Write rows to an .xlsx workbook. Returns the number of data rows."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title(config.sheet_name)

    sheet.append(config.headers)
    for index, column in enumerate(config.columns, start=1):
        cell = sheet.cell(row=1, column=index)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal=column.align)
        sheet.column_dimensions[get_column_letter(index)].width = column_width(column.width)
    sheet.freeze_panes = "A2"

    count = 0
    for row in rows:
        sheet.append([worksheet_text(text) for text in config.row_cells(row)])
        # Cell values are data; a leading "=" must not become a formula
        for cell in sheet[sheet.max_row]:
            if cell.data_type == "f":
                cell.data_type = "s"
        count += 1

    workbook.save(sink)
    logger.debug("Excel export written", extra={"rows": count, "title": config.title})
    return count
