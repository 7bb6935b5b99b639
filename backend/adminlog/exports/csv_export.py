"""CSV export: header row from column labels, one row per record."""

import csv
import logging
from typing import Any, Iterable, TextIO

from adminlog.exports.columns import ExportConfig

logger = logging.getLogger(__name__)


def write_csv(rows: Iterable[Any], config: ExportConfig, sink: TextIO) -> int:
    """
    Write rows to a text sink. Returns the number of data rows written.

    Quoting is left entirely to csv.writer, so commas, quotes and newlines
    in values round-trip through csv.reader.
    """
    writer = csv.writer(sink, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(config.headers)

    count = 0
    for row in rows:
        writer.writerow(config.row_cells(row))
        count += 1

    logger.debug("CSV export written", extra={"rows": count, "title": config.title})
    return count
