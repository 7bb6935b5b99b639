"""
PDF export rendered with the ReportLab canvas.

Layout:
- fixed 50pt margins, A4 in the configured orientation
- title and metadata block on the first page only
- table header repeated at the top of every page
- a new page starts when the next row would cross the bottom threshold
- light rule after every 5th data row
- cell text clipped with an ellipsis to its column width
- footer "Page N | Generated on <timestamp>" on every page
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, BinaryIO, Iterable, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from adminlog.exports.columns import ExportColumn, ExportConfig
from adminlog.exports.formatters import ELLIPSIS

logger = logging.getLogger(__name__)

MARGIN = 50
FOOTER_OFFSET = 25
BOTTOM_THRESHOLD = MARGIN + 20

TITLE_FONT = ("Helvetica-Bold", 18)
META_FONT = ("Helvetica", 10)
HEADER_FONT = ("Helvetica-Bold", 10)
ROW_FONT = ("Helvetica", 9)
FOOTER_FONT = ("Helvetica", 8)

ROW_HEIGHT = 14
HEADER_HEIGHT = 18
CELL_PADDING = 3
SEPARATOR_EVERY = 5

TITLE_COLOR = colors.HexColor("#2563eb")
META_COLOR = colors.HexColor("#666666")
RULE_COLOR = colors.HexColor("#cccccc")
SEPARATOR_COLOR = colors.HexColor("#eeeeee")
FOOTER_COLOR = colors.HexColor("#999999")


@dataclass
class PdfRenderStats:
    pages: int = 0
    rows: int = 0
    header_draws: int = 0
    separators: int = 0


def fit_text(text: str, width: float, font_name: str, font_size: float) -> str:
    """Clip text to `width` points, ending with an ellipsis when clipped."""
    text = " ".join(str(text).split())
    if stringWidth(text, font_name, font_size) <= width:
        return text
    ellipsis_width = stringWidth(ELLIPSIS, font_name, font_size)
    if ellipsis_width > width:
        return ""

    low, high = 0, len(text)
    while low < high:
        mid = (low + high + 1) // 2
        if stringWidth(text[:mid], font_name, font_size) + ellipsis_width <= width:
            low = mid
        else:
            high = mid - 1
    return text[:low].rstrip() + ELLIPSIS


class _PdfTableWriter:
    """Cursor-based table layout over a single canvas."""

    def __init__(self, sink: BinaryIO, config: ExportConfig, generated_at: datetime):
        pagesize = landscape(A4) if config.orientation == "landscape" else A4
        self.canvas = canvas.Canvas(sink, pagesize=pagesize)
        self.canvas.setTitle(config.title)
        self.width, self.height = pagesize
        self.config = config
        self.footer_text = f"Generated on {generated_at.strftime('%d %b %Y %H:%M:%S')} UTC"
        self.stats = PdfRenderStats(pages=1)
        self.y = self.height - MARGIN

    @property
    def table_right(self) -> float:
        return min(
            self.width - MARGIN,
            MARGIN + sum(column.width for column in self.config.columns),
        )

    def _rule(self, color, line_width: float) -> None:
        self.canvas.setStrokeColor(color)
        self.canvas.setLineWidth(line_width)
        self.canvas.line(MARGIN, self.y, self.table_right, self.y)

    def _draw_cell(self, text: str, column: ExportColumn, x: float, font: tuple[str, int]) -> None:
        font_name, font_size = font
        clipped = fit_text(text, column.width - 2 * CELL_PADDING, font_name, font_size)
        if column.align == "right":
            self.canvas.drawRightString(x + column.width - CELL_PADDING, self.y, clipped)
        elif column.align == "center":
            self.canvas.drawCentredString(x + column.width / 2, self.y, clipped)
        else:
            self.canvas.drawString(x + CELL_PADDING, self.y, clipped)

    def draw_title(self) -> None:
        self.canvas.setFont(*TITLE_FONT)
        self.canvas.setFillColor(TITLE_COLOR)
        self.y -= TITLE_FONT[1]
        self.canvas.drawCentredString(self.width / 2, self.y, self.config.title)
        self.y -= 12

        if self.config.metadata:
            self.canvas.setFont(*META_FONT)
            self.canvas.setFillColor(META_COLOR)
            for key, value in self.config.metadata.items():
                self.y -= META_FONT[1] + 3
                self.canvas.drawString(MARGIN, self.y, f"{key}: {value}")
            self.y -= 10

        self._rule(RULE_COLOR, 1)
        self.y -= 8

    def draw_header(self) -> None:
        self.y -= HEADER_FONT[1]
        self.canvas.setFont(*HEADER_FONT)
        self.canvas.setFillColor(colors.black)
        x = MARGIN
        for column in self.config.columns:
            self._draw_cell(column.header, column, x, HEADER_FONT)
            x += column.width
        self.y -= HEADER_HEIGHT - HEADER_FONT[1]
        self._rule(RULE_COLOR, 1)
        self.y -= 4
        self.stats.header_draws += 1

    def draw_footer(self) -> None:
        self.canvas.setFont(*FOOTER_FONT)
        self.canvas.setFillColor(FOOTER_COLOR)
        self.canvas.drawCentredString(
            self.width / 2,
            FOOTER_OFFSET,
            f"Page {self.stats.pages} | {self.footer_text}",
        )

    def new_page(self) -> None:
        self.draw_footer()
        self.canvas.showPage()
        self.stats.pages += 1
        self.y = self.height - MARGIN
        self.draw_header()

    def draw_row(self, cells: list[str]) -> None:
        if self.y - ROW_HEIGHT < BOTTOM_THRESHOLD:
            self.new_page()

        self.y -= ROW_HEIGHT
        self.canvas.setFont(*ROW_FONT)
        self.canvas.setFillColor(colors.black)
        x = MARGIN
        for column, text in zip(self.config.columns, cells):
            self._draw_cell(text, column, x, ROW_FONT)
            x += column.width
        self.stats.rows += 1

        if self.stats.rows % SEPARATOR_EVERY == 0:
            self.y -= 4
            self._rule(SEPARATOR_COLOR, 0.5)
            self.stats.separators += 1

    def finish(self) -> PdfRenderStats:
        self.draw_footer()
        self.canvas.showPage()
        self.canvas.save()
        return self.stats


def render_pdf(
    rows: Iterable[Any],
    config: ExportConfig,
    sink: BinaryIO,
    generated_at: Optional[datetime] = None,
) -> PdfRenderStats:
    """Render rows as a paginated table into a binary sink."""
    writer = _PdfTableWriter(sink, config, generated_at or datetime.now(timezone.utc))
    writer.draw_title()
    writer.draw_header()
    for row in rows:
        writer.draw_row(config.row_cells(row))
    stats = writer.finish()

    logger.debug(
        "PDF export written",
        extra={"rows": stats.rows, "pages": stats.pages, "title": config.title},
    )
    return stats
