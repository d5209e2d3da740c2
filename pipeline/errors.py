"""
Exception taxonomy for the reconciliation pipeline.

Only StructuralParseError is fatal for an import. RowSkipped and its
ReferentialMiss variant are raised and caught inside the row loops so a
single bad row never aborts a batch.
"""
from typing import Optional


class ReconciliationError(Exception):
    """Base class for all pipeline errors."""


class StructuralParseError(ReconciliationError):
    """The document is too short to contain the fixed export offsets."""


class RowSkipped(ReconciliationError):
    """A data row was intentionally not applied."""

    def __init__(self, reason: str, detail: Optional[str] = None, po_number: Optional[str] = None):
        self.reason = reason
        self.detail = detail
        self.po_number = po_number
        super().__init__(f"{reason}: {detail}" if detail else reason)


class ReferentialMiss(RowSkipped):
    """A line item references a PO number that is not in the store."""

    def __init__(self, po_number: str):
        super().__init__("po_not_found", f"PO {po_number} is not in the store", po_number)


class FieldOwnershipError(ReconciliationError, ValueError):
    """A caller tried to write a field it does not own."""


class PurchaseOrderNotFound(ReconciliationError, KeyError):
    pass


class LineItemNotFound(ReconciliationError, KeyError):
    pass


class NoteNotFound(ReconciliationError, KeyError):
    pass
