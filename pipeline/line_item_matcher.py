"""
Heuristic line item matching.

The accounting detail export is ragged: which column carries the PO
reference drifts between runs (extra "Name" or "Type" columns appear and
disappear). Rather than binding to a header, each row is scanned over a
ranked list of candidate columns for a cell shaped like a PO number
(optional "PO" prefix followed by 4-6 digits). A column that matched on an
earlier row is tried first, but every row is re-scanned on its own.

Only rows booked to the seed-inventory ledger account (configured prefix)
become LineItems. Rows for unknown POs are never stored, and a row whose
(po_id, po_number, memo, date) already exists is skipped, so re-importing
the same file is a no-op.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from models.line_item import LineItem
from models.purchase_order import PurchaseOrder
from models.result import BatchResult
from .errors import ReferentialMiss, RowSkipped

logger = logging.getLogger(__name__)

PO_NUMBER_PATTERN = re.compile(r"^\s*(?:PO)?\s*#?\s*(\d{4,6})\s*$", re.IGNORECASE)

# How many rows the column sniffer looks at before giving up
SNIFF_SAMPLE_ROWS = 50


@dataclass
class LineItemColumns:
    po_candidates: list[int] = field(default_factory=lambda: [2, 3, 1, 4, 0])
    date: int = 1
    account: int = 5
    memo: int = 6
    data_start_row: int = 1

    @classmethod
    def from_config(cls, config) -> "LineItemColumns":
        return cls(
            po_candidates=list(config.line_item_po_candidates),
            date=config.line_item_date_col,
            account=config.line_item_account_col,
            memo=config.line_item_memo_col,
            data_start_row=config.line_item_data_start_row,
        )


@dataclass
class LineItemPlan:
    items: list[LineItem] = field(default_factory=list)
    po_column_hint: Optional[int] = None
    result: BatchResult = field(default_factory=lambda: BatchResult(kind="line_items"))


def match_po_number(cell: Optional[str]) -> Optional[str]:
    """Return the canonical "PO#####" form of *cell*, or None if it is not one."""
    if not cell:
        return None
    m = PO_NUMBER_PATTERN.match(cell)
    return f"PO{m.group(1)}" if m else None


def normalise_po_number(po_number: str) -> str:
    """Key used to compare export references against stored PO numbers."""
    return match_po_number(po_number) or po_number.strip().upper()


def _cell(cells: Sequence[str], col: int) -> str:
    if 0 <= col < len(cells):
        return (cells[col] or "").strip()
    return ""


def _ranked(candidates: Sequence[int], hint: Optional[int]) -> list[int]:
    if hint is None:
        return list(candidates)
    return [hint] + [c for c in candidates if c != hint]


def sniff_po_column(
    rows: Iterable[Sequence[str]],
    candidates: Sequence[int],
    sample: int = SNIFF_SAMPLE_ROWS,
) -> Optional[int]:
    """
    Return the first candidate column holding a PO-shaped cell within the
    first *sample* rows, or None. Candidates are tried in ranked order for
    each row; the first hit wins.
    """
    for n, cells in enumerate(rows):
        if n >= sample:
            break
        for col in candidates:
            if match_po_number(_cell(cells, col)):
                return col
    return None


def find_po_number(
    cells: Sequence[str],
    candidates: Sequence[int],
    hint: Optional[int] = None,
) -> Optional[tuple[int, str]]:
    """Scan one row; returns (column, canonical PO number) or None."""
    for col in _ranked(candidates, hint):
        po_number = match_po_number(_cell(cells, col))
        if po_number:
            return col, po_number
    return None


def plan_line_items(
    rows: Sequence[Sequence[str]],
    purchase_orders: Iterable[PurchaseOrder],
    existing_keys: set[tuple],
    account_prefix: str,
    now: str,
    columns: Optional[LineItemColumns] = None,
) -> LineItemPlan:
    """
    Build the LineItems a line-item export would add to the store.

    *existing_keys* holds the dedup keys already stored; keys created by
    earlier rows of the same file are added as the scan proceeds.
    """
    columns = columns or LineItemColumns()
    plan = LineItemPlan()
    result = plan.result
    by_number = {normalise_po_number(po.po_number): po for po in purchase_orders}
    seen_keys = set(existing_keys)

    data = list(enumerate(rows))[columns.data_start_row:]
    plan.po_column_hint = sniff_po_column((cells for _, cells in data), columns.po_candidates)
    if plan.po_column_hint is None:
        logger.warning("No PO-number column found in candidates %s", columns.po_candidates)
    hint = plan.po_column_hint

    for index, cells in data:
        if not any((c or "").strip() for c in cells):
            continue
        result.processed += 1
        po_number: Optional[str] = None
        try:
            found = find_po_number(cells, columns.po_candidates, hint)
            if found is None:
                raise RowSkipped("no_po_match", "no PO-number cell in candidate columns")
            col, po_number = found
            if col != hint:
                logger.debug("Row %d: PO number found in column %d (hint %s)", index, col, hint)
                hint = col

            account = _cell(cells, columns.account)
            if not account.startswith(account_prefix):
                raise RowSkipped("account_mismatch", f"account {account!r}", po_number)

            memo = _cell(cells, columns.memo)
            if not memo:
                raise RowSkipped("missing_memo", "row has no item memo", po_number)

            po = by_number.get(po_number)
            if po is None or po.id is None:
                raise ReferentialMiss(po_number)

            item = LineItem(
                po_id=po.id,
                po_number=po.po_number,
                date=_cell(cells, columns.date),
                memo=memo,
                account=account,
                created_at=now,
                updated_at=now,
            )
            if item.dedup_key in seen_keys:
                raise RowSkipped("duplicate", f"{memo!r} on {item.date or 'no date'}", po.po_number)

            seen_keys.add(item.dedup_key)
            plan.items.append(item)
            result.created += 1

        except RowSkipped as skip:
            logger.debug("Row %d skipped: %s", index, skip)
            result.record_skip(index, skip.reason, skip.detail, skip.po_number or po_number)
        except ValueError as exc:
            logger.error("Row %d failed: %s", index, exc)
            result.record_error(index, str(exc), po_number)

    return plan
