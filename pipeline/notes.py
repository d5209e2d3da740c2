"""
Per-PO note timeline.

Notes are immutable: they are appended (manually or by the change tracker)
and, rarely, deleted. The PO's `notes` column is never edited directly; it
is recomputed from the newest remaining note after every append or delete.
"""
import logging
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from models.note import Note
from .database import Database
from .errors import NoteNotFound, PurchaseOrderNotFound

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class NoteTimeline:
    """Append / list / delete notes and keep the projection in step."""

    def __init__(self, db: Database, system_actor: str = "System") -> None:
        self.db = db
        self.system_actor = system_actor

    def append(
        self,
        po_id: int,
        content: str,
        actor: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Note:
        """Append a note and make it the PO's current notes."""
        content = (content or "").strip()
        if not content:
            raise ValueError("Note content must not be empty")

        with self.db.transaction(conn) as c:
            po = self.db.get_purchase_order(po_id, conn=c)
            if po is None:
                raise PurchaseOrderNotFound(po_id)
            note = Note(
                po_id=po.id,
                po_number=po.po_number,
                vendor=po.system.vendor,
                content=content,
                created_at=utc_now_iso(),
            )
            note.id = self.db.insert_note(note, conn=c)
            self._refresh_projection(po_id, actor or self.system_actor, note.created_at, c)

        logger.debug("Note %d appended to PO %s", note.id, note.po_number)
        return note

    def list(self, po_id: int) -> List[Note]:
        """The PO's timeline, newest first."""
        return self.db.list_notes(po_id)

    def delete(self, note_id: int, actor: Optional[str] = None) -> Note:
        """Delete one note and re-derive the PO's current notes."""
        with self.db.transaction() as c:
            note = self.db.get_note(note_id, conn=c)
            if note is None:
                raise NoteNotFound(note_id)
            self.db.delete_note(note_id, conn=c)
            self._refresh_projection(note.po_id, actor or self.system_actor, utc_now_iso(), c)

        logger.info("Note %d deleted from PO %s", note_id, note.po_number)
        return note

    def current(self, po_id: int) -> str:
        latest = self.db.latest_note(po_id)
        return latest.content if latest else ""

    def _refresh_projection(self, po_id: int, actor: str, at: str, conn: sqlite3.Connection) -> None:
        latest = self.db.latest_note(po_id, conn=conn)
        self.db.set_notes_projection(po_id, latest.content if latest else "", at, actor, conn=conn)
