from .csv_extractor import ExtractedReport, ExtractedRow, extract_report, parse_amount
from .reconciler import POColumns, UpsertPlan, plan_upserts
from .orphans import find_orphans, resolve_orphans
from .line_item_matcher import LineItemColumns, sniff_po_column, find_po_number, plan_line_items
from .database import Database
from .notes import NoteTimeline
from .change_tracker import ChangeTracker, FieldChange
from .purchase_orders import PurchaseOrderService
from .importer import Importer

__all__ = [
    "ExtractedReport", "ExtractedRow", "extract_report", "parse_amount",
    "POColumns", "UpsertPlan", "plan_upserts",
    "find_orphans", "resolve_orphans",
    "LineItemColumns", "sniff_po_column", "find_po_number", "plan_line_items",
    "Database", "NoteTimeline", "ChangeTracker", "FieldChange",
    "PurchaseOrderService", "Importer",
]
