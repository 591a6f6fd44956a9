"""
Supplier allocation decisions.

Two pure functions over a product's supplier links:
  determine_supplier        pick exactly one supplier (no splitting)
  allocate_across_suppliers split a quantity across suppliers by priority,
                            falling back to a single backorder entry

Neither function touches catalog stock; committing an allocation is the
caller's job (see PurchaseOrderBuilder).
"""
import logging
from typing import Optional, Sequence

from models.allocation import AllocationEntry, AllocationOptions
from models.supplier import SupplierLink

logger = logging.getLogger(__name__)


def by_priority(suppliers: Sequence[SupplierLink]) -> list[SupplierLink]:
    """Return suppliers ordered by priority. sorted() is stable, so ties keep catalog order."""
    return sorted(suppliers, key=lambda s: s.priority)


def determine_supplier(
    suppliers: Sequence[SupplierLink],
    quantity: int,
    options: Optional[AllocationOptions] = None,
) -> Optional[SupplierLink]:
    """
    Select the single best supplier for a line item.

    Order of preference:
      1. (prioritize_stock) highest-priority supplier that can ship the full quantity
      2. suppliers holding more than min_stock_threshold units:
           shortest lead time when prioritize_lead_time, else highest priority
      3. highest-priority supplier overall (implicit backorder)

    Returns None only when there are no suppliers at all.
    """
    if not suppliers:
        return None

    opts = options or AllocationOptions()
    prioritized = by_priority(suppliers)

    if opts.prioritize_stock:
        for supplier in prioritized:
            if supplier.stock_level >= quantity:
                return supplier

    available = [s for s in prioritized if s.stock_level > opts.min_stock_threshold]
    if available:
        if opts.prioritize_lead_time:
            # min() keeps the first of equal lead times, i.e. the higher priority one
            return min(available, key=lambda s: s.lead_time)
        return available[0]

    logger.debug(
        "No supplier of product %s has stock — defaulting to %s",
        prioritized[0].product_id, prioritized[0].supplier_id,
    )
    return prioritized[0]


def allocate_across_suppliers(
    suppliers: Sequence[SupplierLink],
    quantity: int,
) -> list[AllocationEntry]:
    """
    Split quantity across suppliers in priority order.

    Each supplier with stock contributes min(stock, remaining). Whatever is
    left once every supplier is exhausted becomes one backorder entry against
    the highest-priority supplier. The entry quantities always sum to quantity.
    """
    if not suppliers or quantity <= 0:
        return []

    prioritized = by_priority(suppliers)
    remaining = quantity
    allocation: list[AllocationEntry] = []

    for supplier in prioritized:
        if remaining <= 0:
            break
        if supplier.stock_level <= 0:
            continue
        take = min(supplier.stock_level, remaining)
        allocation.append(_entry(supplier, take, is_backorder=False))
        remaining -= take

    if remaining > 0:
        primary = prioritized[0]
        logger.info(
            "Backordering %d x %s with %s (stock exhausted across %d supplier(s))",
            remaining, primary.product_id, primary.supplier_id, len(prioritized),
        )
        allocation.append(_entry(primary, remaining, is_backorder=True))

    return allocation


def _entry(supplier: SupplierLink, quantity: int, is_backorder: bool) -> AllocationEntry:
    return AllocationEntry(
        supplier_id=supplier.supplier_id,
        supplier_name=supplier.display_name,
        product_id=supplier.product_id,
        quantity=quantity,
        price=supplier.price,
        is_backorder=is_backorder,
    )
