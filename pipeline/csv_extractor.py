"""
Positional CSV extraction for ERP report exports.

ERP "saved search" exports are report-shaped rather than table-shaped: a
block of title rows, a report date, column headings whose text changes
between runs, the data rows, then a totals row. Rows are therefore
addressed by position only:

  row 3, col 0          report date ("As of September 2, 2025"), opaque
  row 8 ..              data rows
  first "Total" row     end of the data region (sentinel, excluded)

The number of data rows varies per run; everything after the sentinel is
discarded. With no sentinel the data region runs to end of file.
"""
import csv
import io
import logging
import re
from dataclasses import dataclass, field
from typing import NamedTuple, Optional

from .errors import StructuralParseError

logger = logging.getLogger(__name__)

DEFAULT_REPORT_DATE_ROW = 3
DEFAULT_DATA_START_ROW  = 8
DEFAULT_TOTAL_SENTINEL  = "Total"

_CURRENCY_CHARS = re.compile(r"[$,\s]")


class ExtractedRow(NamedTuple):
    index: int              # 0-based position in the raw document
    cells: tuple[str, ...]

    def cell(self, col: int) -> str:
        """Return the stripped cell at *col*, or "" for short (ragged) rows."""
        if 0 <= col < len(self.cells):
            return (self.cells[col] or "").strip()
        return ""


@dataclass
class ExtractedReport:
    report_date: str
    rows: list[ExtractedRow] = field(default_factory=list)
    sentinel_row: Optional[int] = None      # index of the "Total" row, if any


def read_rows(text: str) -> list[list[str]]:
    """Split raw delimited text into rows of cells (no header binding)."""
    if text.startswith("\ufeff"):
        text = text[1:]
    return list(csv.reader(io.StringIO(text)))


def parse_amount(cell: Optional[str]) -> Optional[float]:
    """
    Parse a currency-formatted cell such as "$1,234.56" or "(45.00)".

    Blank cells are 0.0. Returns None when the cell is not a number, so the
    caller decides between defaulting and skipping.
    """
    if cell is None:
        return 0.0
    cleaned = _CURRENCY_CHARS.sub("", str(cell))
    if not cleaned:
        return 0.0
    negative = cleaned.startswith("(") and cleaned.endswith(")")
    if negative:
        cleaned = cleaned[1:-1]
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return -value if negative else value


def extract_report(
    text: str,
    report_date_row: int = DEFAULT_REPORT_DATE_ROW,
    report_date_col: int = 0,
    data_start_row: int = DEFAULT_DATA_START_ROW,
    total_sentinel: str = DEFAULT_TOTAL_SENTINEL,
) -> ExtractedReport:
    """
    Locate the data region of a PO export.

    Raises StructuralParseError if the document has fewer rows than the
    data-start offset. Individual malformed rows are passed through; the
    reconciler decides what to do with them.
    """
    raw = read_rows(text)
    if len(raw) < data_start_row or len(raw) <= report_date_row:
        raise StructuralParseError(
            f"Export has {len(raw)} rows; expected at least {data_start_row} "
            f"before the data region"
        )

    date_row = raw[report_date_row]
    report_date = (date_row[report_date_col] if len(date_row) > report_date_col else "").strip()

    report = ExtractedReport(report_date=report_date)
    for index in range(data_start_row, len(raw)):
        cells = raw[index]
        first = cells[0] if cells else ""
        if total_sentinel in first:
            report.sentinel_row = index
            break
        if not any((c or "").strip() for c in cells):
            continue
        report.rows.append(ExtractedRow(index, tuple(cells)))

    if report.sentinel_row is None:
        logger.info("No %r sentinel row found; data region runs to end of file", total_sentinel)

    logger.debug(
        "Extracted %d data rows (report date %r, rows %d..%s)",
        len(report.rows), report_date, data_start_row,
        report.sentinel_row if report.sentinel_row is not None else len(raw),
    )
    return report
