"""
Tabular exports (CSV, PDF, Excel, JSON).

Provides:
- ExportColumn / ExportConfig: column definitions shared by every format
- render_export: render rows into a streamable spooled file
- formatters: sentinel-safe value formatting helpers
"""

from adminlog.exports.columns import ADMIN_LOG_EXPORT_CONFIG, ExportColumn, ExportConfig
from adminlog.exports.service import (
    ExportError,
    ExportFormat,
    ExportGenerationError,
    RenderedExport,
    UnsupportedExportFormatError,
    build_export_filename,
    parse_export_format,
    render_export,
)

__all__ = [
    "ADMIN_LOG_EXPORT_CONFIG",
    "ExportColumn",
    "ExportConfig",
    "ExportError",
    "ExportFormat",
    "ExportGenerationError",
    "RenderedExport",
    "UnsupportedExportFormatError",
    "build_export_filename",
    "parse_export_format",
    "render_export",
]
