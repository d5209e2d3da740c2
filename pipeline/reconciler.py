"""
Purchase Order upsert reconciliation.

Turns the rows of an extracted PO export into a plan against a snapshot of
the store, keyed by PO number:

  found      → replace the SystemFields block only; LocalFields are carried
               over untouched and updated_at is stamped
  not found  → new PurchaseOrder with SystemFields from the row and default
               LocalFields (custom status "" regardless of the ERP status)

The plan is computed without touching the database so it can be tested as a
pure function; pipeline.importer applies it in one transaction.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from models.purchase_order import HiddenReason, PurchaseOrder, SystemFields, Visibility
from models.result import BatchResult
from .csv_extractor import ExtractedReport, ExtractedRow, parse_amount
from .errors import RowSkipped

logger = logging.getLogger(__name__)

_PO_NUMBER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9\-_/.#]{0,63}$")


@dataclass
class POColumns:
    """Column offsets of a PO export data row."""
    date: int = 1
    po_number: int = 2
    vendor: int = 3
    ns_status: int = 4
    amount: int = 5
    location: int = 6

    @classmethod
    def from_config(cls, config) -> "POColumns":
        return cls(
            date=config.po_date_col,
            po_number=config.po_number_col,
            vendor=config.po_vendor_col,
            ns_status=config.po_status_col,
            amount=config.po_amount_col,
            location=config.po_location_col,
        )


@dataclass
class UpsertPlan:
    creates: list[PurchaseOrder] = field(default_factory=list)
    updates: list[PurchaseOrder] = field(default_factory=list)
    # PO numbers of updates whose orphan-hide is being reversed
    resurrected: list[str] = field(default_factory=list)
    # Every well-formed PO number present in the export, applied or not
    seen: set[str] = field(default_factory=set)
    result: BatchResult = field(default_factory=lambda: BatchResult(kind="purchase_orders"))


def read_po_number(row: ExtractedRow, columns: POColumns) -> str:
    """Return the row's PO number or raise RowSkipped if it is unusable."""
    po_number = row.cell(columns.po_number)
    if not po_number:
        raise RowSkipped("missing_po_number", f"row {row.index} has no PO number")
    if not _PO_NUMBER_RE.match(po_number):
        raise RowSkipped("invalid_po_number", f"{po_number!r} is not a PO number", po_number)
    return po_number


def row_to_system_fields(
    row: ExtractedRow,
    report_date: str,
    columns: POColumns,
    strict_amounts: bool = False,
) -> SystemFields:
    amount_cell = row.cell(columns.amount)
    amount = parse_amount(amount_cell)
    if amount is None:
        if strict_amounts:
            raise RowSkipped("invalid_amount", f"amount {amount_cell!r} is not a number")
        logger.warning("Row %d: unparsable amount %r, using 0.0", row.index, amount_cell)
        amount = 0.0

    return SystemFields(
        report_date=report_date,
        date=row.cell(columns.date),
        vendor=row.cell(columns.vendor),
        ns_status=row.cell(columns.ns_status),
        amount=amount,
        location=row.cell(columns.location),
    )


def new_purchase_order(po_number: str, system: SystemFields, now: str) -> PurchaseOrder:
    """First sighting of a PO number: local fields start at their defaults."""
    return PurchaseOrder(po_number=po_number, system=system, created_at=now, updated_at=now)


def merge_system_fields(existing: PurchaseOrder, system: SystemFields, now: str) -> PurchaseOrder:
    """Overwrite the system-of-record block; everything else is carried over."""
    update: dict = {"system": system, "updated_at": now}
    if (
        existing.visibility.is_hidden
        and existing.visibility.hidden_reason == HiddenReason.NOT_IN_IMPORT
    ):
        update["visibility"] = Visibility()
    return existing.model_copy(update=update)


def plan_upserts(
    snapshot: dict[str, PurchaseOrder],
    report: ExtractedReport,
    now: str,
    columns: Optional[POColumns] = None,
    strict_amounts: bool = False,
) -> UpsertPlan:
    """
    Reconcile every extracted row against *snapshot* (po_number → PO).

    A bad row is recorded as a skip or error and never aborts the batch.
    A PO number repeated within one export is applied once; later repeats
    are skipped as duplicate_in_batch.
    """
    columns = columns or POColumns()
    plan = UpsertPlan()
    plan.result.report_date = report.report_date
    applied: set[str] = set()

    for row in report.rows:
        result = plan.result
        result.processed += 1
        po_number: Optional[str] = None
        try:
            po_number = read_po_number(row, columns)
            plan.seen.add(po_number)
            if po_number in applied:
                raise RowSkipped("duplicate_in_batch", f"{po_number} already applied", po_number)

            system = row_to_system_fields(row, report.report_date, columns, strict_amounts)
            existing = snapshot.get(po_number)
            if existing is None:
                plan.creates.append(new_purchase_order(po_number, system, now))
                result.created += 1
                logger.debug("Row %d: new PO %s (ERP status %r)", row.index, po_number, system.ns_status)
            else:
                merged = merge_system_fields(existing, system, now)
                if existing.visibility.is_hidden and not merged.visibility.is_hidden:
                    plan.resurrected.append(po_number)
                plan.updates.append(merged)
                result.updated += 1
                logger.debug("Row %d: updated PO %s, custom status kept as %r",
                             row.index, po_number, existing.local.status)
            applied.add(po_number)

        except RowSkipped as skip:
            logger.info("Row %d skipped: %s", row.index, skip)
            result.record_skip(row.index, skip.reason, skip.detail, skip.po_number or po_number)
        except ValueError as exc:
            logger.error("Row %d failed: %s", row.index, exc)
            result.record_error(row.index, str(exc), po_number)

    return plan
