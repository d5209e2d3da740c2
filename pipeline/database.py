"""
SQLite persistence layer for the reconciliation pipeline.

A single database file (output/reconciler.db) holds three tables:

  purchase_orders  one row per PO number. Columns are grouped the same way
                   as the model: system-of-record columns (written only by
                   imports), locally-owned columns (written only by user
                   actions) and visibility columns (soft-hide state).
  line_items       accounting lines attached to a PO by id and PO number.
  notes            append-only timeline per PO. purchase_orders.notes is a
                   projection of the newest row here.

Writes that must land together (a whole import, a field change and its
audit notes) share one connection via transaction(); every public method
accepts an optional conn for that purpose.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from models.line_item import LineItem
from models.note import Note
from models.purchase_order import (
    HiddenReason, LocalFields, PurchaseOrder, SystemFields, Visibility,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS purchase_orders (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    po_number         TEXT    NOT NULL UNIQUE,

    -- System of record (ERP export)
    report_date       TEXT    NOT NULL DEFAULT '',
    po_date           TEXT    NOT NULL DEFAULT '',
    po_date_iso       TEXT,               -- po_date as YYYY-MM-DD for range filters
    vendor            TEXT    NOT NULL DEFAULT '',
    ns_status         TEXT    NOT NULL DEFAULT '',
    amount            REAL    NOT NULL DEFAULT 0,
    location          TEXT    NOT NULL DEFAULT '',

    -- Locally owned
    status            TEXT    NOT NULL DEFAULT '',
    notes             TEXT    NOT NULL DEFAULT '',
    eta               TEXT,
    next_update_date  TEXT,
    po_url            TEXT    NOT NULL DEFAULT '',
    shipping_tracking TEXT    NOT NULL DEFAULT '',
    shipping_carrier  TEXT    NOT NULL DEFAULT 'FedEx',
    priority          INTEGER,
    attachments       TEXT    NOT NULL DEFAULT '[]',   -- JSON list
    snoozed_until     TEXT,
    snoozed_by        TEXT    NOT NULL DEFAULT '',
    email_history     TEXT    NOT NULL DEFAULT '[]',   -- JSON list

    -- Visibility (soft hide)
    is_hidden         INTEGER NOT NULL DEFAULT 0,
    hidden_reason     TEXT,
    hidden_date       TEXT,
    hidden_by         TEXT    NOT NULL DEFAULT '',

    created_at        TEXT    NOT NULL,
    updated_at        TEXT    NOT NULL,
    last_updated_by   TEXT    NOT NULL DEFAULT ''
);

CREATE INDEX IF NOT EXISTS idx_po_status    ON purchase_orders (status);
CREATE INDEX IF NOT EXISTS idx_po_ns_status ON purchase_orders (ns_status);
CREATE INDEX IF NOT EXISTS idx_po_hidden    ON purchase_orders (is_hidden);
CREATE INDEX IF NOT EXISTS idx_po_date      ON purchase_orders (po_date_iso);

CREATE TABLE IF NOT EXISTS line_items (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    po_id         INTEGER NOT NULL,
    po_number     TEXT    NOT NULL,
    date          TEXT    NOT NULL DEFAULT '',
    memo          TEXT    NOT NULL,
    account       TEXT    NOT NULL DEFAULT '',
    received      INTEGER NOT NULL DEFAULT 0,
    received_date TEXT,
    received_by   TEXT,
    eta           TEXT,
    created_at    TEXT    NOT NULL,
    updated_at    TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_line_items_po    ON line_items (po_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_line_items_ponum ON line_items (po_number, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_line_items_key   ON line_items (po_id, po_number, memo, date);

CREATE TABLE IF NOT EXISTS notes (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    po_id       INTEGER NOT NULL,
    po_number   TEXT    NOT NULL,
    vendor      TEXT    NOT NULL DEFAULT '',
    content     TEXT    NOT NULL,
    created_at  TEXT    NOT NULL          -- ISO-8601 UTC
);

CREATE INDEX IF NOT EXISTS idx_notes_po     ON notes (po_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_notes_ponum  ON notes (po_number, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_notes_vendor ON notes (vendor, created_at DESC);
"""

_PO_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%m/%d/%y")


def iso_po_date(value: str) -> Optional[str]:
    """Best-effort YYYY-MM-DD form of an exported PO date, or None."""
    value = (value or "").strip()
    for fmt in _PO_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date().isoformat()
        except ValueError:
            continue
    return None


class Database:
    """Thin wrapper around an SQLite database file for the PO store."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @contextmanager
    def _conn(
        self, conn: Optional[sqlite3.Connection] = None, immediate: bool = False
    ) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            # Already inside a caller's transaction
            yield conn
            return
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def transaction(self, conn: Optional[sqlite3.Connection] = None, immediate: bool = False):
        """
        Open a connection whose writes commit (or roll back) together.
        Passing an open conn joins that transaction instead.

        immediate=True takes the write lock up front, so reads made inside
        the transaction cannot go stale before its writes land. Other
        writers wait on the busy timeout.
        """
        return self._conn(conn, immediate)

    def _init_schema(self) -> None:
        with self._conn() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Database schema ready: %s", self.db_path)

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _po_from_row(row: sqlite3.Row) -> PurchaseOrder:
        return PurchaseOrder(
            id=row["id"],
            po_number=row["po_number"],
            system=SystemFields(
                report_date=row["report_date"],
                date=row["po_date"],
                vendor=row["vendor"],
                ns_status=row["ns_status"],
                amount=row["amount"],
                location=row["location"],
            ),
            local=LocalFields(
                status=row["status"],
                notes=row["notes"],
                eta=row["eta"],
                next_update_date=row["next_update_date"],
                po_url=row["po_url"],
                shipping_tracking=row["shipping_tracking"],
                shipping_carrier=row["shipping_carrier"],
                priority=row["priority"],
                attachments=json.loads(row["attachments"] or "[]"),
                snoozed_until=row["snoozed_until"],
                snoozed_by=row["snoozed_by"],
                email_history=json.loads(row["email_history"] or "[]"),
            ),
            visibility=Visibility(
                is_hidden=bool(row["is_hidden"]),
                hidden_reason=HiddenReason(row["hidden_reason"]) if row["hidden_reason"] else None,
                hidden_date=row["hidden_date"],
                hidden_by=row["hidden_by"],
            ),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_updated_by=row["last_updated_by"],
        )

    @staticmethod
    def _line_item_from_row(row: sqlite3.Row) -> LineItem:
        data = dict(row)
        data["received"] = bool(data["received"])
        return LineItem(**data)

    @staticmethod
    def _system_params(system: SystemFields) -> dict:
        return {
            "report_date": system.report_date,
            "po_date":     system.date,
            "po_date_iso": iso_po_date(system.date),
            "vendor":      system.vendor,
            "ns_status":   system.ns_status,
            "amount":      system.amount,
            "location":    system.location,
        }

    @staticmethod
    def _local_params(local: LocalFields) -> dict:
        # notes is deliberately absent: only the note timeline writes it
        return {
            "status":            local.status,
            "eta":               local.eta,
            "next_update_date":  local.next_update_date,
            "po_url":            local.po_url,
            "shipping_tracking": local.shipping_tracking,
            "shipping_carrier":  local.shipping_carrier,
            "priority":          local.priority,
            "attachments":       json.dumps([a.model_dump() for a in local.attachments]),
            "snoozed_until":     local.snoozed_until,
            "snoozed_by":        local.snoozed_by,
            "email_history":     json.dumps([e.model_dump() for e in local.email_history]),
        }

    @staticmethod
    def _visibility_params(visibility: Visibility) -> dict:
        return {
            "is_hidden":     int(visibility.is_hidden),
            "hidden_reason": visibility.hidden_reason.value if visibility.hidden_reason else None,
            "hidden_date":   visibility.hidden_date,
            "hidden_by":     visibility.hidden_by,
        }

    # ------------------------------------------------------------------
    # Purchase orders: writes
    # ------------------------------------------------------------------

    def insert_purchase_order(self, po: PurchaseOrder, conn: Optional[sqlite3.Connection] = None) -> int:
        """Insert a new PO and return its id."""
        params = {
            "po_number":       po.po_number,
            "created_at":      po.created_at,
            "updated_at":      po.updated_at or po.created_at,
            "last_updated_by": po.last_updated_by,
            **self._system_params(po.system),
            **self._local_params(po.local),
            "notes":           po.local.notes,
            **self._visibility_params(po.visibility),
        }
        columns = ", ".join(params)
        placeholders = ", ".join(f":{k}" for k in params)
        with self._conn(conn) as c:
            cur = c.execute(
                f"INSERT INTO purchase_orders ({columns}) VALUES ({placeholders})",
                params,
            )
            return cur.lastrowid

    def save_system_fields(
        self,
        po_id: int,
        system: SystemFields,
        updated_at: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """Overwrite the system-of-record columns of one PO."""
        params = {**self._system_params(system), "updated_at": updated_at, "id": po_id}
        with self._conn(conn) as c:
            c.execute(
                """UPDATE purchase_orders SET
                    report_date = :report_date,
                    po_date     = :po_date,
                    po_date_iso = :po_date_iso,
                    vendor      = :vendor,
                    ns_status   = :ns_status,
                    amount      = :amount,
                    location    = :location,
                    updated_at  = :updated_at
                WHERE id = :id""",
                params,
            )
            return c.execute("SELECT changes()").fetchone()[0] > 0

    def save_local_fields(
        self,
        po_id: int,
        local: LocalFields,
        updated_at: str,
        actor: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """Overwrite the locally-owned columns (except the notes projection)."""
        params = {
            **self._local_params(local),
            "updated_at": updated_at,
            "last_updated_by": actor,
            "id": po_id,
        }
        assignments = ", ".join(f"{k} = :{k}" for k in params if k != "id")
        with self._conn(conn) as c:
            c.execute(f"UPDATE purchase_orders SET {assignments} WHERE id = :id", params)
            return c.execute("SELECT changes()").fetchone()[0] > 0

    def save_visibility(
        self,
        po_id: int,
        visibility: Visibility,
        updated_at: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        params = {**self._visibility_params(visibility), "updated_at": updated_at, "id": po_id}
        with self._conn(conn) as c:
            c.execute(
                """UPDATE purchase_orders SET
                    is_hidden     = :is_hidden,
                    hidden_reason = :hidden_reason,
                    hidden_date   = :hidden_date,
                    hidden_by     = :hidden_by,
                    updated_at    = :updated_at
                WHERE id = :id""",
                params,
            )
            return c.execute("SELECT changes()").fetchone()[0] > 0

    def set_notes_projection(
        self,
        po_id: int,
        content: str,
        updated_at: str,
        actor: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        with self._conn(conn) as c:
            c.execute(
                """UPDATE purchase_orders
                   SET notes = ?, updated_at = ?, last_updated_by = ?
                   WHERE id = ?""",
                (content, updated_at, actor, po_id),
            )

    # ------------------------------------------------------------------
    # Purchase orders: reads
    # ------------------------------------------------------------------

    def get_purchase_order(self, po_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[PurchaseOrder]:
        with self._conn(conn) as c:
            row = c.execute("SELECT * FROM purchase_orders WHERE id = ?", (po_id,)).fetchone()
        return self._po_from_row(row) if row else None

    def get_purchase_order_by_number(
        self,
        po_number: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[PurchaseOrder]:
        """Natural-key lookup."""
        with self._conn(conn) as c:
            row = c.execute(
                "SELECT * FROM purchase_orders WHERE po_number = ?", (po_number.strip(),)
            ).fetchone()
        return self._po_from_row(row) if row else None

    def load_snapshot(self, conn: Optional[sqlite3.Connection] = None) -> dict[str, PurchaseOrder]:
        """Every stored PO (hidden included), keyed by PO number."""
        with self._conn(conn) as c:
            rows = c.execute("SELECT * FROM purchase_orders").fetchall()
        return {row["po_number"]: self._po_from_row(row) for row in rows}

    def list_purchase_orders(
        self,
        status: Optional[str] = None,
        ns_status: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        include_hidden: bool = False,
        hidden_only: bool = False,
        limit: int = 1000,
        offset: int = 0,
    ) -> list[PurchaseOrder]:
        """
        Return POs ordered by PO date, then PO number.

        Args:
            status:         Custom workflow status filter.
            ns_status:      ERP status filter.
            date_from:      Inclusive lower bound on the PO date (YYYY-MM-DD).
            date_to:        Inclusive upper bound on the PO date (YYYY-MM-DD).
            include_hidden: Include soft-hidden POs alongside visible ones.
            hidden_only:    Return only soft-hidden POs.
        """
        clauses: list[str] = []
        params: list = []

        if hidden_only:
            clauses.append("is_hidden = 1")
        elif not include_hidden:
            clauses.append("is_hidden = 0")
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if ns_status is not None:
            clauses.append("ns_status = ?")
            params.append(ns_status)
        if date_from:
            clauses.append("po_date_iso >= ?")
            params.append(date_from)
        if date_to:
            clauses.append("po_date_iso <= ?")
            params.append(date_to)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([limit, offset])

        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM purchase_orders
                {where}
                ORDER BY po_date_iso IS NULL, po_date_iso, po_number
                LIMIT ? OFFSET ?
                """,
                params,
            ).fetchall()
        return [self._po_from_row(r) for r in rows]

    def get_stats(self) -> dict:
        """Aggregate counts for the health check and CLI."""
        with self._conn() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*)                                        AS total,
                    SUM(CASE WHEN is_hidden = 0 THEN 1 ELSE 0 END)  AS visible,
                    SUM(CASE WHEN is_hidden = 1 THEN 1 ELSE 0 END)  AS hidden,
                    MAX(updated_at)                                 AS last_updated
                FROM purchase_orders
                """
            ).fetchone()
            items = conn.execute(
                "SELECT COUNT(*) AS n, SUM(received) AS received FROM line_items"
            ).fetchone()
            notes = conn.execute("SELECT COUNT(*) FROM notes").fetchone()[0]
        stats = dict(row) if row else {}
        stats["visible"] = stats.get("visible") or 0
        stats["hidden"] = stats.get("hidden") or 0
        stats["line_items"] = items["n"]
        stats["line_items_received"] = items["received"] or 0
        stats["notes"] = notes
        return stats

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def insert_line_item(self, item: LineItem, conn: Optional[sqlite3.Connection] = None) -> int:
        with self._conn(conn) as c:
            cur = c.execute(
                """INSERT INTO line_items (
                       po_id, po_number, date, memo, account,
                       received, received_date, received_by, eta,
                       created_at, updated_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    item.po_id, item.po_number, item.date, item.memo, item.account,
                    int(item.received), item.received_date, item.received_by, item.eta,
                    item.created_at, item.updated_at or item.created_at,
                ),
            )
            return cur.lastrowid

    def line_item_keys(self, conn: Optional[sqlite3.Connection] = None) -> set[tuple]:
        """All stored (po_id, po_number, memo, date) dedup keys."""
        with self._conn(conn) as c:
            rows = c.execute("SELECT po_id, po_number, memo, date FROM line_items").fetchall()
        return {(r["po_id"], r["po_number"], r["memo"], r["date"]) for r in rows}

    def get_line_item(self, item_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[LineItem]:
        with self._conn(conn) as c:
            row = c.execute("SELECT * FROM line_items WHERE id = ?", (item_id,)).fetchone()
        return self._line_item_from_row(row) if row else None

    def list_line_items(
        self,
        po_id: Optional[int] = None,
        po_number: Optional[str] = None,
        received: Optional[bool] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[LineItem]:
        """Line items, newest first."""
        clauses: list[str] = []
        params: list = []
        if po_id is not None:
            clauses.append("po_id = ?")
            params.append(po_id)
        if po_number is not None:
            clauses.append("po_number = ?")
            params.append(po_number)
        if received is not None:
            clauses.append("received = ?")
            params.append(int(received))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._conn(conn) as c:
            rows = c.execute(
                f"SELECT * FROM line_items {where} ORDER BY created_at DESC, id DESC",
                params,
            ).fetchall()
        return [self._line_item_from_row(r) for r in rows]

    def save_line_item_receipt(
        self,
        item_id: int,
        received: bool,
        received_date: Optional[str],
        received_by: Optional[str],
        updated_at: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        with self._conn(conn) as c:
            c.execute(
                """UPDATE line_items SET
                    received = ?, received_date = ?, received_by = ?, updated_at = ?
                WHERE id = ?""",
                (int(received), received_date, received_by, updated_at, item_id),
            )
            return c.execute("SELECT changes()").fetchone()[0] > 0

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def insert_note(self, note: Note, conn: Optional[sqlite3.Connection] = None) -> int:
        with self._conn(conn) as c:
            cur = c.execute(
                """INSERT INTO notes (po_id, po_number, vendor, content, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (note.po_id, note.po_number, note.vendor, note.content, note.created_at),
            )
            return cur.lastrowid

    def get_note(self, note_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Note]:
        with self._conn(conn) as c:
            row = c.execute("SELECT * FROM notes WHERE id = ?", (note_id,)).fetchone()
        return Note(**dict(row)) if row else None

    def list_notes(self, po_id: int, conn: Optional[sqlite3.Connection] = None) -> list[Note]:
        """Timeline for one PO, newest first."""
        with self._conn(conn) as c:
            rows = c.execute(
                """SELECT * FROM notes WHERE po_id = ?
                   ORDER BY created_at DESC, id DESC""",
                (po_id,),
            ).fetchall()
        return [Note(**dict(r)) for r in rows]

    def latest_note(self, po_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Note]:
        with self._conn(conn) as c:
            row = c.execute(
                """SELECT * FROM notes WHERE po_id = ?
                   ORDER BY created_at DESC, id DESC LIMIT 1""",
                (po_id,),
            ).fetchone()
        return Note(**dict(row)) if row else None

    def delete_note(self, note_id: int, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self._conn(conn) as c:
            c.execute("DELETE FROM notes WHERE id = ?", (note_id,))
            return c.execute("SELECT changes()").fetchone()[0] > 0
