"""
User-driven mutations of Purchase Orders and their line items.

This is the only write path for locally-owned fields and for visibility.
Each save compares old and new values, writes the changed columns, and
appends one audit note per changed field in the same transaction. A save
that changes nothing writes nothing.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from models.line_item import LineItem
from models.purchase_order import (
    Attachment, EmailRecord, HiddenReason, LocalFields, PurchaseOrder, Visibility,
)
from .change_tracker import ChangeTracker, FieldChange
from .database import Database
from .errors import FieldOwnershipError, LineItemNotFound, PurchaseOrderNotFound

logger = logging.getLogger(__name__)

# Local fields with their own dedicated write paths
_NOT_DIRECTLY_EDITABLE = {"notes", "attachments", "email_history"}
EDITABLE_FIELDS = frozenset(set(LocalFields.model_fields) - _NOT_DIRECTLY_EDITABLE)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PurchaseOrderService:

    def __init__(
        self,
        db: Database,
        tracker: Optional[ChangeTracker] = None,
        system_actor: str = "System",
    ) -> None:
        self.db = db
        self.tracker = tracker or ChangeTracker(db, system_actor=system_actor)

    def _require(self, po_id: int) -> PurchaseOrder:
        po = self.db.get_purchase_order(po_id)
        if po is None:
            raise PurchaseOrderNotFound(po_id)
        return po

    # ------------------------------------------------------------------
    # Locally-owned fields
    # ------------------------------------------------------------------

    def update_local_fields(self, po_id: int, changes: dict[str, Any], actor: str) -> PurchaseOrder:
        """
        Apply user edits to locally-owned fields.

        Raises FieldOwnershipError for system-of-record fields, the notes
        projection, or unknown keys. Values are validated by LocalFields.
        """
        rejected = sorted(set(changes) - EDITABLE_FIELDS)
        if rejected:
            raise FieldOwnershipError(
                f"Fields not editable here: {', '.join(rejected)}"
            )

        po = self._require(po_id)
        new_local = LocalFields.model_validate({**po.local.model_dump(), **changes})
        tracked = [
            FieldChange(name, getattr(po.local, name), getattr(new_local, name))
            for name in changes
        ]
        return self._save_local(po, new_local, tracked, actor)

    def snooze(self, po_id: int, until: str, actor: str) -> PurchaseOrder:
        return self.update_local_fields(po_id, {"snoozed_until": until, "snoozed_by": actor}, actor)

    def unsnooze(self, po_id: int, actor: str) -> PurchaseOrder:
        return self.update_local_fields(po_id, {"snoozed_until": None, "snoozed_by": ""}, actor)

    def add_attachment(self, po_id: int, attachment: Attachment, actor: str) -> PurchaseOrder:
        po = self._require(po_id)
        if attachment.uploaded_at is None:
            attachment = attachment.model_copy(update={"uploaded_at": _now(), "uploaded_by": actor})
        new_local = po.local.model_copy(update={"attachments": [*po.local.attachments, attachment]})
        return self._save_local(
            po, new_local, [FieldChange("Attachment", None, attachment.filename)], actor,
        )

    def record_email(self, po_id: int, email: EmailRecord, actor: str) -> PurchaseOrder:
        po = self._require(po_id)
        if email.sent_at is None:
            email = email.model_copy(update={"sent_at": _now(), "sent_by": actor})
        new_local = po.local.model_copy(update={"email_history": [*po.local.email_history, email]})
        return self._save_local(
            po, new_local, [FieldChange("Email Sent", None, email.to)], actor,
        )

    def _save_local(
        self,
        po: PurchaseOrder,
        new_local: LocalFields,
        changes: list[FieldChange],
        actor: str,
    ) -> PurchaseOrder:
        if new_local == po.local:
            logger.debug("No local field changes for PO %s", po.po_number)
            return po
        with self.db.transaction() as conn:
            self.db.save_local_fields(po.id, new_local, _now(), actor, conn=conn)
            self.tracker.track_many(po.id, changes, actor, conn=conn)
        logger.info("Updated PO %s by %s", po.po_number, actor)
        return self._require(po.id)

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def hide(
        self,
        po_id: int,
        actor: str,
        reason: HiddenReason = HiddenReason.MANUALLY_HIDDEN,
    ) -> PurchaseOrder:
        po = self._require(po_id)
        reason = HiddenReason(reason)
        if po.visibility.is_hidden and po.visibility.hidden_reason == reason:
            return po
        now = _now()
        visibility = Visibility(is_hidden=True, hidden_reason=reason, hidden_date=now, hidden_by=actor)
        return self._save_visibility(po, visibility, now, actor)

    def unhide(self, po_id: int, actor: str) -> PurchaseOrder:
        """Reverse a soft hide of any kind. Line items and notes were never touched."""
        po = self._require(po_id)
        if not po.visibility.is_hidden:
            return po
        return self._save_visibility(po, Visibility(), _now(), actor)

    def _save_visibility(self, po: PurchaseOrder, visibility: Visibility, now: str, actor: str) -> PurchaseOrder:
        changes = [
            FieldChange("is_hidden", po.visibility.is_hidden, visibility.is_hidden),
            FieldChange("hidden_reason", po.visibility.hidden_reason, visibility.hidden_reason),
        ]
        with self.db.transaction() as conn:
            self.db.save_visibility(po.id, visibility, now, conn=conn)
            self.tracker.track_many(po.id, changes, actor, conn=conn)
        logger.info(
            "PO %s %s by %s", po.po_number,
            f"hidden ({visibility.hidden_reason.value})" if visibility.is_hidden else "unhidden",
            actor,
        )
        return self._require(po.id)

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def mark_line_item_received(self, item_id: int, received: bool, actor: str) -> LineItem:
        item = self.db.get_line_item(item_id)
        if item is None:
            raise LineItemNotFound(item_id)
        if item.received == received:
            return item
        now = _now()
        with self.db.transaction() as conn:
            self.db.save_line_item_receipt(
                item.id, received, now if received else None, actor if received else None, now,
                conn=conn,
            )
            self.tracker.track(
                item.po_id, f"Line Item [{item.memo}] Received", item.received, received, actor,
                conn=conn,
            )
        return self.db.get_line_item(item_id)

    def mark_all_received(self, po_id: int, received: bool, actor: str) -> list[LineItem]:
        """Set every line item of a PO to *received*; returns the items that changed."""
        po = self._require(po_id)
        pending = [i for i in self.db.list_line_items(po_id=po.id) if i.received != received]
        if not pending:
            return []
        now = _now()
        with self.db.transaction() as conn:
            for item in pending:
                self.db.save_line_item_receipt(
                    item.id, received, now if received else None, actor if received else None, now,
                    conn=conn,
                )
            self.tracker.track_many(
                po.id,
                [FieldChange(f"Line Item [{i.memo}] Received", i.received, received) for i in pending],
                actor,
                conn=conn,
            )
        logger.info("%d line item(s) on PO %s set received=%s", len(pending), po.po_number, received)
        return [self.db.get_line_item(i.id) for i in pending]
