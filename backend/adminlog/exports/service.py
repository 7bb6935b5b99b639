"""
Export rendering front door.

render_export() writes rows in the requested format into a spooled
temporary file (kept in memory up to a threshold, then rolled to disk)
and hands back the rewound stream for chunked streaming.

Usage:
    fmt = parse_export_format(request.query_params.get("format"))
    rendered = render_export(rows, ADMIN_LOG_EXPORT_CONFIG, fmt)
    return StreamingResponse(rendered.iter_chunks(), media_type=rendered.media_type)
"""

import codecs
import json
import logging
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO, Iterable, Iterator, Optional

from adminlog.exports.columns import ExportConfig
from adminlog.exports.csv_export import write_csv
from adminlog.exports.excel_export import write_excel
from adminlog.exports.pdf_export import render_pdf

logger = logging.getLogger(__name__)

DEFAULT_SPOOL_MAX_BYTES = 5 * 1024 * 1024
CHUNK_SIZE = 64 * 1024


class ExportError(Exception):
    """Base exception for export errors."""
    pass


class UnsupportedExportFormatError(ExportError):
    """The requested format selector is not one of ExportFormat."""

    def __init__(self, value: Any):
        super().__init__(f"Unsupported export format: {value}")
        self.value = value


class ExportGenerationError(ExportError):
    """Rendering failed part-way through."""
    pass


class ExportFormat(str, Enum):
    CSV = "csv"
    PDF = "pdf"
    EXCEL = "excel"
    JSON = "json"

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]


_MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.PDF: "application/pdf",
    ExportFormat.EXCEL: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ExportFormat.JSON: "application/json",
}

_EXTENSIONS = {
    ExportFormat.CSV: "csv",
    ExportFormat.PDF: "pdf",
    ExportFormat.EXCEL: "xlsx",
    ExportFormat.JSON: "json",
}

_FORMAT_ALIASES = {
    "xlsx": ExportFormat.EXCEL,
}


def parse_export_format(value: Optional[str], default: ExportFormat = ExportFormat.CSV) -> ExportFormat:
    """
    Resolve a format selector (case-insensitive).

    Raises:
        UnsupportedExportFormatError: for anything not csv/pdf/excel/json
    """
    if value is None or not str(value).strip():
        return default
    normalized = str(value).strip().lower()
    if normalized in _FORMAT_ALIASES:
        return _FORMAT_ALIASES[normalized]
    try:
        return ExportFormat(normalized)
    except ValueError:
        raise UnsupportedExportFormatError(value)


def build_export_filename(resource: str, extension: str, now: Optional[float] = None) -> str:
    """`<resource>-<epoch millis>.<ext>`"""
    millis = int((now if now is not None else time.time()) * 1000)
    return f"{resource}-{millis}.{extension}"


@dataclass
class RenderedExport:
    stream: BinaryIO
    media_type: str
    filename: str
    rows: int

    @property
    def content_disposition(self) -> str:
        return f"attachment; filename={self.filename}"

    def iter_chunks(self, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the rendered file and close it, including on early exit."""
        try:
            while True:
                chunk = self.stream.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.stream.close()


def write_json(rows: Iterable[Any], config: ExportConfig, sink: BinaryIO) -> int:
    """JSON array of objects keyed by column header."""
    writer = codecs.getwriter("utf-8")(sink)
    writer.write("[")
    count = 0
    for row in rows:
        record = dict(zip(config.headers, config.row_cells(row)))
        writer.write(("," if count else "") + "\n  " + json.dumps(record, ensure_ascii=False))
        count += 1
    writer.write("\n]\n" if count else "]\n")
    return count


def _write(rows: Iterable[Any], config: ExportConfig, fmt: ExportFormat, sink: BinaryIO) -> int:
    if fmt is ExportFormat.CSV:
        return write_csv(rows, config, codecs.getwriter("utf-8")(sink))
    if fmt is ExportFormat.PDF:
        return render_pdf(rows, config, sink).rows
    if fmt is ExportFormat.EXCEL:
        return write_excel(rows, config, sink)
    if fmt is ExportFormat.JSON:
        return write_json(rows, config, sink)
    raise UnsupportedExportFormatError(fmt)


def render_export(
    rows: Iterable[Any],
    config: ExportConfig,
    fmt: ExportFormat,
    filename: Optional[str] = None,
    spool_max_bytes: int = DEFAULT_SPOOL_MAX_BYTES,
) -> RenderedExport:
    """
    Render rows into a rewound spooled file.

    Raises:
        ExportGenerationError: if any exporter fails; the spool is discarded
    """
    spool = tempfile.SpooledTemporaryFile(max_size=spool_max_bytes, mode="w+b")
    try:
        count = _write(rows, config, fmt, spool)
        spool.seek(0)
    except Exception as e:
        spool.close()
        logger.error(
            "Export generation failed",
            extra={"format": fmt.value, "title": config.title, "error": str(e)},
            exc_info=True,
        )
        raise ExportGenerationError(str(e)) from e

    logger.info(
        "Export rendered",
        extra={"format": fmt.value, "title": config.title, "rows": count},
    )
    return RenderedExport(
        stream=spool,
        media_type=fmt.media_type,
        filename=filename or build_export_filename("export", fmt.extension),
        rows=count,
    )
