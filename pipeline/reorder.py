"""
Replenishment flags for supplier links.

A link needs reordering once its stock is at or below the reorder point.
"""
import logging
from typing import Iterable, Optional

from models.allocation import ReorderStatus
from models.supplier import SupplierLink

logger = logging.getLogger(__name__)

DEFAULT_REORDER_POINT = 5
DEFAULT_REORDER_QUANTITY = 10


def check_reorder(
    supplier: Optional[SupplierLink],
    reorder_point: int = DEFAULT_REORDER_POINT,
    reorder_quantity: int = DEFAULT_REORDER_QUANTITY,
) -> ReorderStatus:
    if supplier is None:
        return ReorderStatus(needs_reorder=False, reorder_amount=0)

    needs_reorder = supplier.stock_level <= reorder_point
    return ReorderStatus(
        needs_reorder=needs_reorder,
        reorder_amount=reorder_quantity if needs_reorder else 0,
    )


def scan_catalog(
    links: Iterable[SupplierLink],
    reorder_point: int = DEFAULT_REORDER_POINT,
    reorder_quantity: int = DEFAULT_REORDER_QUANTITY,
) -> list[tuple[SupplierLink, ReorderStatus]]:
    """Return every link that needs replenishment, in catalog order."""
    flagged = []
    for link in links:
        status = check_reorder(link, reorder_point, reorder_quantity)
        if status.needs_reorder:
            flagged.append((link, status))
    logger.debug("Reorder scan flagged %d link(s)", len(flagged))
    return flagged
