from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field


class HiddenReason(str, Enum):
    """Why a Purchase Order was soft-hidden."""
    NOT_IN_IMPORT = "Not in import"
    MANUALLY_HIDDEN = "Manually hidden"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    OTHER = "Other"


class SystemFields(BaseModel):
    """
    System-of-record fields. Their true source is the ERP export, so every
    import overwrites them wholesale.
    """
    report_date: str = ""                   # "As of September 2, 2025" (opaque)
    date: str = ""                          # PO date as exported, e.g. 09/01/2025
    vendor: str = ""
    ns_status: str = ""                     # ERP lifecycle status, display only
    amount: float = 0.0
    location: str = ""


class Attachment(BaseModel):
    """Descriptor for a file attached to a PO. Storage lives elsewhere."""
    filename: str
    url: Optional[str] = None
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[str] = None       # ISO 8601


class EmailRecord(BaseModel):
    """One outbound email sent about a PO."""
    to: str
    subject: str = ""
    sent_by: Optional[str] = None
    sent_at: Optional[str] = None           # ISO 8601


class LocalFields(BaseModel):
    """
    Locally-owned fields, set only by user action inside this system.
    Imports never read or write any of these.
    """
    status: str = ""                        # internal workflow status, NOT the ERP status
    notes: str = ""                         # projection of the latest Note
    eta: Optional[str] = None               # YYYY-MM-DD
    next_update_date: Optional[str] = None  # YYYY-MM-DD
    po_url: str = ""
    shipping_tracking: str = ""
    shipping_carrier: str = "FedEx"
    priority: Optional[int] = Field(default=None, ge=1, le=5)
    attachments: List[Attachment] = Field(default_factory=list)
    snoozed_until: Optional[str] = None     # YYYY-MM-DD
    snoozed_by: str = ""
    email_history: List[EmailRecord] = Field(default_factory=list)


class Visibility(BaseModel):
    is_hidden: bool = False
    hidden_reason: Optional[HiddenReason] = None
    hidden_date: Optional[str] = None       # ISO 8601
    hidden_by: str = ""


class PurchaseOrder(BaseModel):
    """
    A Purchase Order as held in the store.

    po_number is the natural key used to correlate repeated ERP exports.
    The two field groups are kept in separate models so the reconciler can
    only ever replace `system`, never `local`.
    """
    id: Optional[int] = None
    po_number: str
    system: SystemFields = Field(default_factory=SystemFields)
    local: LocalFields = Field(default_factory=LocalFields)
    visibility: Visibility = Field(default_factory=Visibility)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    last_updated_by: str = ""
