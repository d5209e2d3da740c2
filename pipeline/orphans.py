"""
Orphan resolution for PO imports.

ERP exports are full snapshots, so a PO number that stops appearing usually
means the order was closed or billed. Such orders are soft-hidden with
reason "Not in import"; nothing is deleted and their line items and notes
stay queryable. A later import that lists the PO again, or a manual unhide,
makes it visible again.
"""
import logging
from typing import Iterable

from models.purchase_order import HiddenReason, PurchaseOrder, Visibility

logger = logging.getLogger(__name__)


def find_orphans(
    snapshot: dict[str, PurchaseOrder], seen_po_numbers: Iterable[str]
) -> list[PurchaseOrder]:
    """Return visible POs from *snapshot* whose number is not in *seen_po_numbers*."""
    seen = set(seen_po_numbers)
    return [
        po for number, po in sorted(snapshot.items())
        if number not in seen and not po.visibility.is_hidden
    ]


def hide_orphan(po: PurchaseOrder, now: str, actor: str) -> PurchaseOrder:
    return po.model_copy(update={
        "visibility": Visibility(
            is_hidden=True,
            hidden_reason=HiddenReason.NOT_IN_IMPORT,
            hidden_date=now,
            hidden_by=actor,
        ),
        "updated_at": now,
    })


def resolve_orphans(
    snapshot: dict[str, PurchaseOrder],
    seen: Iterable[str],
    now: str,
    actor: str,
) -> list[PurchaseOrder]:
    """
    Plan the soft-hide of every orphan.

    An export that yielded no PO numbers at all is treated as a bad file,
    not as "every order closed", and hides nothing.
    """
    seen = set(seen)
    if not seen:
        if snapshot:
            logger.warning("Import contained no PO numbers; orphan resolution skipped")
        return []
    hidden = [hide_orphan(po, now, actor) for po in find_orphans(snapshot, seen)]
    for po in hidden:
        logger.info("PO %s not in import; hidden", po.po_number)
    return hidden
