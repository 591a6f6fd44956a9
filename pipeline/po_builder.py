"""
Purchase order consolidation.

PurchaseOrderBuilder turns one sales order into one PurchaseOrder per
supplier:

  1. For each line item (in order): look up the product's supplier links,
     split the quantity with allocate_across_suppliers, and commit stock for
     every non-backorder entry while holding the product lock.
  2. Group all allocation entries by supplier, across line items.
  3. Number, total and date each supplier group.

Problems with individual lines (no supplier, bad quantity, a failed stock
decrement) are recorded as warnings; they never abort the order.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Optional

from models.allocation import AllocationEntry
from models.order import OrderLineItem, SalesOrder
from models.purchase_order import POLineItem, PurchaseOrder, STATUS_PENDING_APPROVAL
from models.result import ConsolidationResult, ConsolidationWarning
from models.supplier import SupplierLink
from .allocation import allocate_across_suppliers
from .catalog import SupplierCatalog
from .errors import InvalidQuantity, NoSupplierFound, StockMutationError, require_positive_quantity
from .lead_time import find_link
from .reorder import DEFAULT_REORDER_POINT, DEFAULT_REORDER_QUANTITY, check_reorder

logger = logging.getLogger(__name__)


def po_number_for(order_reference: str, supplier_id: str) -> str:
    """PO-{order}-{last four characters of the supplier id}."""
    return f"PO-{order_reference}-{str(supplier_id)[-4:]}"


class _SupplierGroup:
    """Allocation entries for one supplier, accumulated across line items."""

    def __init__(self, supplier_id: str, supplier_name: str):
        self.supplier_id = supplier_id
        self.supplier_name = supplier_name
        self.items: list[POLineItem] = []

    def add(self, line: OrderLineItem, entry: AllocationEntry, link: Optional[SupplierLink]) -> None:
        self.items.append(POLineItem(
            product_id=line.product_id,
            title=line.title,
            variant_id=line.variant_id,
            sku=line.sku,
            quantity=entry.quantity,
            price=entry.price,
            line_total=entry.price * entry.quantity,
            lead_time=link.lead_time if link else 0,
            is_backorder=entry.is_backorder,
        ))


class PurchaseOrderBuilder:
    """
    Consolidates sales orders into per-supplier purchase orders.

    Usage:
        builder = PurchaseOrderBuilder(catalog)
        result = builder.build(order)
        for po in result.purchase_orders: ...
    """

    def __init__(
        self,
        catalog: SupplierCatalog,
        today: Optional[Callable[[], date]] = None,
        reorder_point: int = DEFAULT_REORDER_POINT,
        reorder_quantity: int = DEFAULT_REORDER_QUANTITY,
    ):
        self.catalog = catalog
        self._today = today or date.today
        self.reorder_point = reorder_point
        self.reorder_quantity = reorder_quantity

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, order: SalesOrder) -> ConsolidationResult:
        """Allocate every line of order and return the consolidated POs plus warnings."""
        warnings: list[ConsolidationWarning] = []
        groups: dict[str, _SupplierGroup] = {}

        for line in order.line_items:
            try:
                require_positive_quantity(line.product_id, line.quantity)
                self._allocate_line(line, groups, warnings)
            except InvalidQuantity as exc:
                logger.warning("Order %s: %s — line skipped", order.order_reference, exc)
                warnings.append(ConsolidationWarning(
                    type="invalid_quantity",
                    description=str(exc),
                    product_id=line.product_id,
                ))
            except NoSupplierFound as exc:
                logger.warning("Order %s: %s — line skipped", order.order_reference, exc)
                warnings.append(ConsolidationWarning(
                    type="no_supplier_found",
                    description=str(exc),
                    product_id=line.product_id,
                ))

        purchase_orders = self._assemble(order, groups)
        logger.info(
            "Order %s consolidated into %d PO(s) with %d warning(s)",
            order.order_reference, len(purchase_orders), len(warnings),
        )
        return ConsolidationResult(
            order_reference=order.order_reference,
            purchase_orders=purchase_orders,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Allocation per line
    # ------------------------------------------------------------------

    def _allocate_line(
        self,
        line: OrderLineItem,
        groups: dict[str, _SupplierGroup],
        warnings: list[ConsolidationWarning],
    ) -> None:
        if not line.product_id:
            # Custom storefront lines carry no catalog product
            raise NoSupplierFound(f"(none) on line {line.title or line.sku or 'untitled'!r}")

        with self.catalog.lock(line.product_id):
            links = self.catalog.get_supplier_links(line.product_id)
            if not links:
                raise NoSupplierFound(line.product_id)

            allocation = allocate_across_suppliers(links, line.quantity)
            for entry in allocation:
                link = find_link(links, entry.supplier_id, line.product_id)
                if not entry.is_backorder:
                    self._commit_stock(entry, line, warnings)
                    if link and entry.quantity < link.minimum_order:
                        warnings.append(ConsolidationWarning(
                            type="below_minimum_order",
                            description=(
                                f"{entry.quantity} x {line.product_id} from {entry.supplier_id} "
                                f"is below the supplier minimum of {link.minimum_order}"
                            ),
                            product_id=line.product_id,
                            supplier_id=entry.supplier_id,
                        ))

                group = groups.get(entry.supplier_id)
                if group is None:
                    group = groups[entry.supplier_id] = _SupplierGroup(
                        entry.supplier_id, entry.supplier_name
                    )
                group.add(line, entry, link)

    def _commit_stock(
        self,
        entry: AllocationEntry,
        line: OrderLineItem,
        warnings: list[ConsolidationWarning],
    ) -> None:
        """Decrement catalog stock for a shipped entry. Failures are reported, not raised."""
        try:
            applied = self.catalog.decrement_stock(entry.supplier_id, line.product_id, entry.quantity)
            reason = None if applied else "insufficient stock at commit time"
        except StockMutationError as exc:
            applied, reason = False, str(exc)

        if not applied:
            logger.error(
                "Stock decrement failed for %s/%s (qty %d): %s — PO line kept",
                entry.supplier_id, line.product_id, entry.quantity, reason,
            )
            warnings.append(ConsolidationWarning(
                type="stock_mutation_failed",
                description=(
                    f"Could not decrement stock of {line.product_id} at "
                    f"{entry.supplier_id} by {entry.quantity}: {reason}"
                ),
                product_id=line.product_id,
                supplier_id=entry.supplier_id,
            ))
            return

        updated = self.catalog.get_link(entry.supplier_id, line.product_id)
        status = check_reorder(updated, self.reorder_point, self.reorder_quantity)
        if status.needs_reorder:
            logger.info(
                "Reorder needed: %s/%s stock=%d (reorder %d)",
                entry.supplier_id, line.product_id, updated.stock_level, status.reorder_amount,
            )

    # ------------------------------------------------------------------
    # PO assembly
    # ------------------------------------------------------------------

    def _assemble(self, order: SalesOrder, groups: dict[str, _SupplierGroup]) -> list[PurchaseOrder]:
        today = self._today()
        used_numbers: set[str] = set()
        purchase_orders: list[PurchaseOrder] = []

        for group in groups.values():
            po_number = self._unique_number(
                po_number_for(order.order_reference, group.supplier_id), used_numbers
            )
            subtotal = sum((item.line_total for item in group.items), Decimal("0"))
            max_lead = max(item.lead_time for item in group.items)

            purchase_orders.append(PurchaseOrder(
                po_number=po_number,
                supplier_id=group.supplier_id,
                supplier_name=group.supplier_name,
                order_reference=order.order_reference,
                status=STATUS_PENDING_APPROVAL,
                items=group.items,
                shipping_address=order.shipping_address,
                subtotal=subtotal,
                total=subtotal,
                required_by=today + timedelta(days=max_lead),
            ))

        return purchase_orders

    @staticmethod
    def _unique_number(base: str, used: set[str]) -> str:
        # Distinct supplier ids can share their last four characters
        number, n = base, 1
        while number in used:
            n += 1
            number = f"{base}-{n}"
        used.add(number)
        return number


def build_purchase_orders(order: SalesOrder, catalog: SupplierCatalog) -> list[PurchaseOrder]:
    """Convenience wrapper returning only the purchase orders."""
    return PurchaseOrderBuilder(catalog).build(order).purchase_orders
