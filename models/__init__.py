from .purchase_order import (
    PurchaseOrder, SystemFields, LocalFields, Visibility, HiddenReason,
    Attachment, EmailRecord,
)
from .line_item import LineItem
from .note import Note
from .result import BatchResult, RowDiagnostic, SkipReason

__all__ = [
    "PurchaseOrder", "SystemFields", "LocalFields", "Visibility", "HiddenReason",
    "Attachment", "EmailRecord",
    "LineItem",
    "Note",
    "BatchResult", "RowDiagnostic", "SkipReason",
]
