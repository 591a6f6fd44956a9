"""
Exception types raised inside the consolidation pipeline.

The line-level errors (NoSupplierFound, InvalidQuantity, StockMutationError)
are never fatal to an order: the PO builder catches them per line item (or per
allocation entry) and records a ConsolidationWarning instead. The workflow
errors (InvalidStatusTransition, OrderLocked) come from the persistence sink
and reach the caller.
"""


class ConsolidationError(Exception):
    """Base class for all pipeline errors."""


class NoSupplierFound(ConsolidationError):
    def __init__(self, product_id: str):
        super().__init__(f"No suppliers found for product {product_id}")
        self.product_id = product_id


class InvalidQuantity(ConsolidationError, ValueError):
    def __init__(self, product_id: str, quantity: int):
        super().__init__(f"Invalid quantity {quantity} for product {product_id}")
        self.product_id = product_id
        self.quantity = quantity


class StockMutationError(ConsolidationError):
    """A stock decrement could not be applied to a supplier link."""


class InvalidStatusTransition(ConsolidationError, ValueError):
    def __init__(self, po_number: str, current: str, requested: str):
        super().__init__(
            f"Cannot move PO {po_number} from {current!r} to {requested!r}"
        )
        self.po_number = po_number
        self.current = current
        self.requested = requested


class OrderLocked(ConsolidationError, ValueError):
    """A forced re-run would rewrite purchase orders already past pending_approval."""

    def __init__(self, order_reference: str, po_numbers: list[str]):
        super().__init__(
            f"Order {order_reference} has purchase orders past pending_approval "
            f"({', '.join(po_numbers)}); re-run refused"
        )
        self.order_reference = order_reference
        self.po_numbers = po_numbers


def require_positive_quantity(product_id: str, quantity: int) -> int:
    """Return quantity unchanged, or raise InvalidQuantity when it is not > 0."""
    if quantity is None or quantity <= 0:
        raise InvalidQuantity(product_id, quantity)
    return quantity
