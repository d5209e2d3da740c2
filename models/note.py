from typing import Optional

from pydantic import BaseModel


class Note(BaseModel):
    """
    An immutable timeline entry on a Purchase Order: either a manual note or
    an audit line written by the change tracker.
    """
    id: Optional[int] = None
    po_id: int
    po_number: str
    vendor: str = ""
    content: str
    created_at: Optional[str] = None    # ISO 8601 UTC
