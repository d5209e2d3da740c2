"""
Change tracking for Purchase Orders.

Every mutation of a locally-owned field is recorded as one human-readable
line on the PO's note timeline:

    [09/02/2025, 02:15 PM] jsmith - Status: None → Approved

Values are formatted by type: dates as MM/DD/YYYY, booleans as Yes/No,
None and "" as None. Unchanged values write nothing and leave the PO's
timestamps alone.
"""
import logging
import re
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from models.note import Note
from .database import Database
from .errors import PurchaseOrderNotFound
from .notes import NoteTimeline

logger = logging.getLogger(__name__)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(?:[T ][\d:.]+(?:Z|[+-]\d{2}:?\d{2})?)?$")

FIELD_LABELS = {
    "status":            "Status",
    "eta":               "ETA",
    "next_update_date":  "Next Update",
    "po_url":            "URL",
    "shipping_tracking": "Tracking",
    "shipping_carrier":  "Carrier",
    "priority":          "Priority",
    "snoozed_until":     "Snoozed Until",
    "snoozed_by":        "Snoozed By",
    "is_hidden":         "Hidden",
    "hidden_reason":     "Hidden Reason",
}


@dataclass
class FieldChange:
    field: str
    old: Any
    new: Any

    @property
    def label(self) -> str:
        return FIELD_LABELS.get(self.field, self.field)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def values_equal(old: Any, new: Any) -> bool:
    if _is_empty(old) and _is_empty(new):
        return True
    return old == new


def format_value(value: Any) -> str:
    if _is_empty(value):
        return "None"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, date):  # datetime included
        return value.strftime("%m/%d/%Y")
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, str) and _ISO_DATE_RE.match(value):
        try:
            return date.fromisoformat(value[:10]).strftime("%m/%d/%Y")
        except ValueError:
            return value
    return str(value)


def format_change(label: str, old: Any, new: Any, actor: Optional[str], at: datetime) -> str:
    timestamp = at.strftime("%m/%d/%Y, %I:%M %p")
    return f"[{timestamp}] {actor or 'System'} - {label}: {format_value(old)} → {format_value(new)}"


class ChangeTracker:
    """Writes audit lines for field changes onto the note timeline."""

    def __init__(
        self,
        db: Database,
        timeline: Optional[NoteTimeline] = None,
        system_actor: str = "System",
    ) -> None:
        self.db = db
        self.system_actor = system_actor
        self.timeline = timeline or NoteTimeline(db, system_actor)

    def track(
        self,
        po_id: int,
        field: str,
        old: Any,
        new: Any,
        actor: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Note]:
        """Record one change. Returns None (and writes nothing) if old == new."""
        notes = self.track_many(po_id, [FieldChange(field, old, new)], actor, conn)
        return notes[0] if notes else None

    def track_many(
        self,
        po_id: int,
        changes: list[FieldChange],
        actor: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Note]:
        """
        Record several changes saved together: one note per changed field,
        all in the same transaction.
        """
        actual = [c for c in changes if not values_equal(c.old, c.new)]
        if not actual:
            return []
        actor = actor or self.system_actor

        now = datetime.now(timezone.utc)
        written: list[Note] = []
        with self.db.transaction(conn) as c:
            po = self.db.get_purchase_order(po_id, conn=c)
            if po is None:
                raise PurchaseOrderNotFound(po_id)
            for change in actual:
                line = format_change(change.label, change.old, change.new, actor, now.astimezone())
                written.append(self.timeline.append(po_id, line, actor=actor, conn=c))

        logger.info("%d change(s) tracked for PO %s", len(written), po.po_number)
        return written
