"""Fulfilment lead-time estimates for an allocation."""
from typing import Optional, Sequence

from models.allocation import AllocationEntry, LeadTimeEstimate
from models.supplier import SupplierLink

# Extra days added to the worst case when any quantity is backordered
BACKORDER_PENALTY_DAYS = 14


def calculate_lead_time(
    allocation: Sequence[AllocationEntry],
    suppliers: Sequence[SupplierLink],
    backorder_penalty_days: int = BACKORDER_PENALTY_DAYS,
) -> LeadTimeEstimate:
    """
    Return min/max days until the allocation is fulfilled.

    Entries whose supplier cannot be found count as zero days. When any entry
    is a backorder, max_days carries the backorder penalty.
    """
    if not allocation:
        return LeadTimeEstimate(min_days=None, max_days=None, has_backorder=False)

    has_backorder = any(entry.is_backorder for entry in allocation)
    lead_times = [_lead_time_for(entry, suppliers) for entry in allocation]
    penalty = backorder_penalty_days if has_backorder else 0

    return LeadTimeEstimate(
        min_days=min(lead_times),
        max_days=max(lead_times) + penalty,
        has_backorder=has_backorder,
    )


def _lead_time_for(entry: AllocationEntry, suppliers: Sequence[SupplierLink]) -> int:
    link = find_link(suppliers, entry.supplier_id, entry.product_id)
    return link.lead_time if link else 0


def find_link(
    suppliers: Sequence[SupplierLink],
    supplier_id: str,
    product_id: Optional[str] = None,
) -> Optional[SupplierLink]:
    """Find the link for supplier_id, narrowed to product_id when one is given."""
    for link in suppliers:
        if link.supplier_id != supplier_id:
            continue
        if product_id is None or link.product_id == product_id:
            return link
    return None
