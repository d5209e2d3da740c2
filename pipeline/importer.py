"""
Import orchestrator.

Importer ties the reconciliation steps together for each kind of export:

  Purchase orders
    1. extract_report   -- locate the report date and data region
    2. plan_upserts     -- merge rows into a snapshot of the store
    3. resolve_orphans  -- soft-hide POs missing from this export
    4. apply            -- write creates, system-field updates, visibility
                           changes and their audit notes in one transaction

  Line items
    1. read_rows        -- raw positional rows
    2. plan_line_items  -- sniff PO column, filter account, dedup
    3. apply            -- insert surviving LineItems in one transaction

A structural error aborts the import before anything is written; row-level
problems are counted in the returned BatchResult. Each import holds the
store's write lock from snapshot to commit, so a concurrent import waits
instead of planning against a stale snapshot.
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from config import Config
from models.purchase_order import HiddenReason
from models.result import BatchResult
from .change_tracker import ChangeTracker, FieldChange
from .csv_extractor import extract_report, read_rows
from .database import Database
from .errors import StructuralParseError
from .line_item_matcher import LineItemColumns, plan_line_items
from .orphans import resolve_orphans
from .reconciler import POColumns, plan_upserts

logger = logging.getLogger(__name__)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("%s is not UTF-8; reading as cp1252", path.name)
        return path.read_text(encoding="cp1252", errors="replace")


class Importer:
    """Runs PO and line item imports against one Database."""

    def __init__(self, config: Optional[Config] = None, db: Optional[Database] = None):
        self.config = config or Config()
        self.db = db or Database(self.config.db_path)
        self.tracker = ChangeTracker(self.db, system_actor=self.config.system_actor)

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    def import_purchase_orders(self, csv_path: str | Path, actor: Optional[str] = None) -> BatchResult:
        csv_path = Path(csv_path)
        logger.info("=== PO import: %s ===", csv_path.name)
        return self.import_purchase_orders_text(_read_text(csv_path), actor)

    def import_purchase_orders_text(self, text: str, actor: Optional[str] = None) -> BatchResult:
        cfg = self.config
        actor = actor or cfg.system_actor
        try:
            report = extract_report(
                text,
                report_date_row=cfg.report_date_row,
                report_date_col=cfg.report_date_col,
                data_start_row=cfg.data_start_row,
                total_sentinel=cfg.total_sentinel,
            )
        except StructuralParseError as exc:
            logger.error("PO import aborted: %s", exc)
            raise

        now = datetime.now(timezone.utc).isoformat()
        with self.db.transaction(immediate=True) as conn:
            snapshot = self.db.load_snapshot(conn=conn)
            plan = plan_upserts(
                snapshot, report, now,
                columns=POColumns.from_config(cfg),
                strict_amounts=cfg.strict_amounts,
            )
            orphans = resolve_orphans(snapshot, plan.seen, now, actor)

            for po in plan.creates:
                self.db.insert_purchase_order(po, conn=conn)

            for po in plan.updates:
                self.db.save_system_fields(po.id, po.system, now, conn=conn)
                if po.po_number in plan.resurrected:
                    self.db.save_visibility(po.id, po.visibility, now, conn=conn)
                    self.tracker.track_many(po.id, [
                        FieldChange("is_hidden", True, False),
                        FieldChange("hidden_reason", HiddenReason.NOT_IN_IMPORT, None),
                    ], actor, conn=conn)
                    logger.info("PO %s is back in the import; unhidden", po.po_number)

            for po in orphans:
                self.db.save_visibility(po.id, po.visibility, now, conn=conn)
                self.tracker.track_many(po.id, [
                    FieldChange("is_hidden", False, True),
                    FieldChange("hidden_reason", None, po.visibility.hidden_reason),
                ], actor, conn=conn)

        result = plan.result
        result.hidden = len(orphans)
        result.unhidden = len(plan.resurrected)
        logger.info("PO import complete (%s): %s", report.report_date or "no report date", result.summary())
        if result.skip_reasons:
            logger.info("Skip reasons: %s", result.skip_reasons)
        return result

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def import_line_items(self, csv_path: str | Path) -> BatchResult:
        csv_path = Path(csv_path)
        logger.info("=== Line item import: %s ===", csv_path.name)
        return self.import_line_items_text(_read_text(csv_path))

    def import_line_items_text(self, text: str) -> BatchResult:
        cfg = self.config
        rows = read_rows(text)
        columns = LineItemColumns.from_config(cfg)
        if len(rows) <= columns.data_start_row:
            raise StructuralParseError(
                f"Line item export has {len(rows)} rows; no data after row {columns.data_start_row}"
            )

        now = datetime.now(timezone.utc).isoformat()
        with self.db.transaction(immediate=True) as conn:
            plan = plan_line_items(
                rows,
                self.db.load_snapshot(conn=conn).values(),
                self.db.line_item_keys(conn=conn),
                cfg.line_item_account_prefix,
                now,
                columns=columns,
            )
            for item in plan.items:
                self.db.insert_line_item(item, conn=conn)

        result = plan.result
        logger.info(
            "Line item import complete (PO column hint %s): %s",
            plan.po_column_hint, result.summary(),
        )
        if result.skip_reasons:
            logger.info("Skip reasons: %s", result.skip_reasons)
        return result
