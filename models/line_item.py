from typing import Optional

from pydantic import BaseModel


class LineItem(BaseModel):
    """
    One accounting line associated with a Purchase Order.

    Both po_id and po_number are stored so the link survives either side
    being re-keyed.
    """
    id: Optional[int] = None
    po_id: int
    po_number: str
    date: str = ""              # kept as the exported string
    memo: str
    account: str = ""
    received: bool = False
    received_date: Optional[str] = None
    received_by: Optional[str] = None
    eta: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def dedup_key(self) -> tuple[int, str, str, str]:
        return (self.po_id, self.po_number, self.memo, self.date)
