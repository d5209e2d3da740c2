"""
PO Reconciler — FastAPI backend.

JSON API over the reconciled purchase order store. Imports are driven by
uploading the ERP exports; everything else reads or edits the locally-owned
side of a PO. Every edit goes through PurchaseOrderService so each changed
field lands on the PO's note timeline.

Endpoints
---------
  GET    /api/health                          → liveness check + store counts
  POST   /api/import/purchase-orders          → upload + reconcile a PO export
  POST   /api/import/line-items               → upload + attach a line item export
  GET    /api/purchase-orders                 → list (?status= ?ns_status= ?include_hidden= ...)
  GET    /api/purchase-orders/{po_id}         → one PO
  PATCH  /api/purchase-orders/{po_id}         → edit locally-owned fields
  POST   /api/purchase-orders/{po_id}/hide    → soft-hide
  POST   /api/purchase-orders/{po_id}/unhide  → reverse a soft hide
  GET    /api/purchase-orders/{po_id}/notes   → timeline, newest first
  POST   /api/purchase-orders/{po_id}/notes   → append a note
  DELETE /api/notes/{note_id}                 → delete a note
  GET    /api/purchase-orders/{po_id}/line-items → line items of one PO
  PATCH  /api/line-items/{item_id}            → mark received / not received
"""
import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import Config
from models.purchase_order import HiddenReason
from pipeline.database import Database
from pipeline.errors import (
    FieldOwnershipError,
    LineItemNotFound,
    NoteNotFound,
    PurchaseOrderNotFound,
    StructuralParseError,
)
from pipeline.importer import Importer
from pipeline.notes import NoteTimeline
from pipeline.purchase_orders import PurchaseOrderService
from pipeline.uploads import uploaded_csv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config / database (lazy: opened on first request so startup doesn't fail
# before the store has been created)
# ---------------------------------------------------------------------------
_config: Optional[Config] = None
_db: Optional[Database] = None


def get_config() -> Config:
    global _config
    if _config is None:
        _config = Config()
        _config.ensure_dirs()
    return _config


def get_db(config: Config = Depends(get_config)) -> Database:
    global _db
    if _db is None:
        _db = Database(config.db_path)
    return _db


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(title="PO Reconciler", docs_url=None, redoc_url=None)


@app.exception_handler(StructuralParseError)
async def _structural_error(request: Request, exc: StructuralParseError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(FieldOwnershipError)
async def _ownership_error(request: Request, exc: FieldOwnershipError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(PurchaseOrderNotFound)
async def _po_not_found(request: Request, exc: PurchaseOrderNotFound):
    return JSONResponse(status_code=404, content={"detail": f"Purchase order not found: {exc.args[0]}"})


@app.exception_handler(LineItemNotFound)
async def _line_item_not_found(request: Request, exc: LineItemNotFound):
    return JSONResponse(status_code=404, content={"detail": f"Line item not found: {exc.args[0]}"})


@app.exception_handler(NoteNotFound)
async def _note_not_found(request: Request, exc: NoteNotFound):
    return JSONResponse(status_code=404, content={"detail": f"Note not found: {exc.args[0]}"})


# ── Request models ───────────────────────────────────────────────────────────

class LocalFieldsUpdate(BaseModel):
    changes: dict[str, Any]
    user: str = "web"


class HideRequest(BaseModel):
    reason: HiddenReason = HiddenReason.MANUALLY_HIDDEN
    user: str = "web"


class UnhideRequest(BaseModel):
    user: str = "web"


class NoteCreate(BaseModel):
    content: str = Field(min_length=1)
    user: str = "web"


class ReceivedUpdate(BaseModel):
    received: bool
    user: str = "web"


# ── Helpers ──────────────────────────────────────────────────────────────────

async def _read_upload(file: UploadFile) -> bytes:
    filename = file.filename or ""
    if not filename.lower().endswith(".csv"):
        raise HTTPException(400, "Only CSV files are accepted (.csv extension required)")
    contents = await file.read()
    if len(contents) == 0:
        raise HTTPException(400, "Uploaded file is empty")
    return contents


def _service(db: Database, config: Config) -> PurchaseOrderService:
    return PurchaseOrderService(db, system_actor=config.system_actor)


def _timeline(db: Database, config: Config) -> NoteTimeline:
    return NoteTimeline(db, config.system_actor)


# ── Routes ───────────────────────────────────────────────────────────────────

@app.get("/api/health")
def health(config: Config = Depends(get_config), db: Database = Depends(get_db)):
    return {
        "status": "ok",
        "db_path": str(config.db_path),
        "stats": db.get_stats(),
    }


@app.post("/api/import/purchase-orders")
async def import_purchase_orders(
    file: UploadFile = File(...),
    user: Optional[str] = Query(None),
    config: Config = Depends(get_config),
    db: Database = Depends(get_db),
):
    """
    Reconcile an uploaded PO export.

    The upload is stored only for the duration of the import. A file too
    short to contain the export layout is rejected with 400 and nothing is
    written.
    """
    contents = await _read_upload(file)
    with uploaded_csv(config.upload_dir, file.filename, contents) as path:
        result = Importer(config, db).import_purchase_orders(path, actor=user)
    return result.model_dump()


@app.post("/api/import/line-items")
async def import_line_items(
    file: UploadFile = File(...),
    config: Config = Depends(get_config),
    db: Database = Depends(get_db),
):
    contents = await _read_upload(file)
    with uploaded_csv(config.upload_dir, file.filename, contents) as path:
        result = Importer(config, db).import_line_items(path)
    return result.model_dump()


@app.get("/api/purchase-orders")
def list_purchase_orders(
    status: Optional[str] = Query(None),
    ns_status: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    include_hidden: bool = Query(False),
    hidden_only: bool = Query(False),
    limit: int = Query(1000, ge=1, le=5000),
    offset: int = Query(0, ge=0),
    db: Database = Depends(get_db),
):
    pos = db.list_purchase_orders(
        status=status, ns_status=ns_status,
        date_from=date_from, date_to=date_to,
        include_hidden=include_hidden, hidden_only=hidden_only,
        limit=limit, offset=offset,
    )
    return [po.model_dump() for po in pos]


@app.get("/api/purchase-orders/{po_id}")
def get_purchase_order(po_id: int, db: Database = Depends(get_db)):
    po = db.get_purchase_order(po_id)
    if po is None:
        raise PurchaseOrderNotFound(po_id)
    return po.model_dump()


@app.patch("/api/purchase-orders/{po_id}")
def update_purchase_order(po_id: int, body: LocalFieldsUpdate, db: Database = Depends(get_db),
                          config: Config = Depends(get_config)):
    """Edit locally-owned fields. System-of-record fields are rejected with 400."""
    try:
        po = _service(db, config).update_local_fields(po_id, body.changes, body.user)
    except FieldOwnershipError:
        raise
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return po.model_dump()


@app.post("/api/purchase-orders/{po_id}/hide")
def hide_purchase_order(po_id: int, body: HideRequest, db: Database = Depends(get_db),
                        config: Config = Depends(get_config)):
    return _service(db, config).hide(po_id, body.user, body.reason).model_dump()


@app.post("/api/purchase-orders/{po_id}/unhide")
def unhide_purchase_order(po_id: int, body: UnhideRequest, db: Database = Depends(get_db),
                          config: Config = Depends(get_config)):
    return _service(db, config).unhide(po_id, body.user).model_dump()


@app.get("/api/purchase-orders/{po_id}/notes")
def list_notes(po_id: int, db: Database = Depends(get_db)):
    if db.get_purchase_order(po_id) is None:
        raise PurchaseOrderNotFound(po_id)
    return [note.model_dump() for note in NoteTimeline(db).list(po_id)]


@app.post("/api/purchase-orders/{po_id}/notes", status_code=201)
def add_note(po_id: int, body: NoteCreate, db: Database = Depends(get_db),
             config: Config = Depends(get_config)):
    try:
        note = _timeline(db, config).append(po_id, body.content, actor=body.user)
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return note.model_dump()


@app.delete("/api/notes/{note_id}")
def delete_note(
    note_id: int,
    user: Optional[str] = Query(None),
    config: Config = Depends(get_config),
    db: Database = Depends(get_db),
):
    note = _timeline(db, config).delete(note_id, actor=user)
    return {"deleted": note.id, "po_id": note.po_id}


@app.get("/api/purchase-orders/{po_id}/line-items")
def list_line_items(
    po_id: int,
    received: Optional[bool] = Query(None),
    db: Database = Depends(get_db),
):
    if db.get_purchase_order(po_id) is None:
        raise PurchaseOrderNotFound(po_id)
    return [item.model_dump() for item in db.list_line_items(po_id=po_id, received=received)]


@app.patch("/api/line-items/{item_id}")
def update_line_item(item_id: int, body: ReceivedUpdate, db: Database = Depends(get_db),
                     config: Config = Depends(get_config)):
    item = _service(db, config).mark_line_item_received(item_id, body.received, body.user)
    return item.model_dump()
