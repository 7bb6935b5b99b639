"""
Column and document configuration for exports.

A column resolves its cell from a row through an accessor function or a
dotted path, then formats it. Every exporter renders cells through
cell_text() so CSV, PDF, Excel and JSON output agree.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from adminlog.exports.formatters import (
    EMPTY,
    display_value,
    format_datetime,
    get_nested_value,
    is_blank,
)
from adminlog.models.audit_record import (
    AuthAttemptDetails,
    HttpRequestDetails,
    NoteDetails,
    details_from_dict,
)

ALIGNMENTS = ("left", "center", "right")


@dataclass(frozen=True)
class ExportColumn:
    """
    One exported column.

    width is in PDF points; spreadsheets use width / 8 characters.
    """

    key: str
    header: str
    width: int = 100
    align: str = "left"
    formatter: Optional[Callable[[Any], str]] = None
    accessor: Optional[Callable[[Any], Any]] = None

    def __post_init__(self):
        if self.align not in ALIGNMENTS:
            raise ValueError(f"Unsupported alignment: {self.align}")
        if self.width <= 0:
            raise ValueError("Column width must be positive")

    def raw_value(self, row: Any) -> Any:
        if self.accessor is not None:
            return self.accessor(row)
        return get_nested_value(row, self.key)

    def cell_text(self, row: Any) -> str:
        value = self.raw_value(row)
        if self.formatter is not None:
            return self.formatter(value)
        return display_value(value)


@dataclass(frozen=True)
class ExportConfig:
    title: str
    columns: tuple[ExportColumn, ...]
    sheet_name: str = "Sheet1"
    orientation: str = "portrait"
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def headers(self) -> list[str]:
        return [column.header for column in self.columns]

    def row_cells(self, row: Any) -> list[str]:
        return [column.cell_text(row) for column in self.columns]

    def with_metadata(self, **metadata: str) -> "ExportConfig":
        merged = dict(self.metadata)
        merged.update(metadata)
        return ExportConfig(
            title=self.title,
            columns=self.columns,
            sheet_name=self.sheet_name,
            orientation=self.orientation,
            metadata=merged,
        )


# ---------------------------------------------------------------------------
# Admin activity log
# ---------------------------------------------------------------------------

# Never rendered, even if a legacy row stored it unmasked
HIDDEN_DETAIL_KEYS = frozenset({"password"})
KNOWN_DETAIL_KINDS = ("http", "auth", "note")


def _compact(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str, sort_keys=True)
    return str(value)


def _pairs(values: dict[str, Any]) -> str:
    parts = [
        f"{key}: {_compact(value)}"
        for key, value in values.items()
        if key.lower() not in HIDDEN_DETAIL_KEYS and not is_blank(value)
    ]
    return ", ".join(parts) if parts else EMPTY


def format_details(payload: Any) -> str:
    """Render a stored details payload as one line of text."""
    if is_blank(payload):
        return EMPTY
    if isinstance(payload, dict) and payload.get("kind") not in KNOWN_DETAIL_KINDS:
        # Legacy untagged payloads are rendered key by key
        return _pairs(payload)

    details = details_from_dict(payload)
    if details is None:
        return EMPTY

    if isinstance(details, HttpRequestDetails):
        summary = f"{details.method} {details.path}".strip()
        if details.status_code is not None:
            summary += f" -> {details.status_code}"
        extras = {}
        if details.query:
            extras["query"] = details.query
        if details.body:
            extras["body"] = {
                key: value for key, value in details.body.items()
                if key.lower() not in HIDDEN_DETAIL_KEYS
            }
        return f"{summary} ({_pairs(extras)})" if extras else summary or EMPTY

    if isinstance(details, AuthAttemptDetails):
        return _pairs({
            "outcome": details.outcome,
            "reason": details.reason,
            "email": details.email,
        })

    if isinstance(details, NoteDetails):
        return details.text or EMPTY

    raise TypeError(f"Unhandled details type: {type(details).__name__}")


def _actor_label(value: Any) -> str:
    return "System" if is_blank(value) else display_value(value)


ADMIN_LOG_EXPORT_CONFIG = ExportConfig(
    title="Admin Activity Log",
    sheet_name="Admin Logs",
    orientation="landscape",
    columns=(
        ExportColumn(key="timestamp", header="Date", width=110, formatter=format_datetime),
        ExportColumn(key="actorName", header="Admin", width=100, formatter=_actor_label),
        ExportColumn(key="action", header="Action", width=90),
        ExportColumn(key="entity", header="Entity", width=90),
        ExportColumn(key="severity", header="Severity", width=70),
        ExportColumn(
            key="details",
            header="Details",
            width=200,
            accessor=lambda row: format_details(get_nested_value(row, "details")),
        ),
        ExportColumn(key="ipAddress", header="IP Address", width=80),
    ),
)
