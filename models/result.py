from pydantic import BaseModel, Field
from typing import Optional, List, Literal


SkipReason = Literal[
    # PO import
    "missing_po_number",
    "invalid_po_number",
    "invalid_amount",
    "duplicate_in_batch",
    # Line item import
    "no_po_match",
    "account_mismatch",
    "po_not_found",
    "duplicate",
    "missing_memo",
]


class RowDiagnostic(BaseModel):
    """Why a single CSV row was skipped or failed."""
    row_index: int                          # 0-based index into the raw CSV
    reason: str                             # SkipReason value, or "error"
    detail: Optional[str] = None
    po_number: Optional[str] = None


class BatchResult(BaseModel):
    """
    Outcome of one import pass, returned to the caller / operator.

    processed counts every data row looked at; created + updated + skipped
    + errors == processed.
    """
    kind: Literal["purchase_orders", "line_items"]
    report_date: Optional[str] = None
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    hidden: int = 0                         # orphans soft-hidden by this batch
    unhidden: int = 0                       # previously orphaned POs that reappeared
    skip_reasons: dict[str, int] = Field(default_factory=dict)
    diagnostics: List[RowDiagnostic] = Field(default_factory=list)

    def record_skip(
        self,
        row_index: int,
        reason: str,
        detail: Optional[str] = None,
        po_number: Optional[str] = None,
    ) -> None:
        self.skipped += 1
        self.skip_reasons[reason] = self.skip_reasons.get(reason, 0) + 1
        self.diagnostics.append(RowDiagnostic(
            row_index=row_index, reason=reason, detail=detail, po_number=po_number,
        ))

    def record_error(self, row_index: int, detail: str, po_number: Optional[str] = None) -> None:
        self.errors += 1
        self.diagnostics.append(RowDiagnostic(
            row_index=row_index, reason="error", detail=detail, po_number=po_number,
        ))

    def summary(self) -> str:
        parts = [
            f"processed={self.processed}",
            f"created={self.created}",
            f"updated={self.updated}",
            f"skipped={self.skipped}",
            f"errors={self.errors}",
        ]
        if self.kind == "purchase_orders":
            parts += [f"hidden={self.hidden}", f"unhidden={self.unhidden}"]
        return " ".join(parts)
