from pydantic import BaseModel, Field
from typing import Optional, List, Literal

from .allocation import AllocationEntry, LeadTimeEstimate
from .purchase_order import PurchaseOrder


WarningType = Literal[
    "no_supplier_found",
    "invalid_quantity",
    "stock_mutation_failed",
    "below_minimum_order",
]


class ConsolidationWarning(BaseModel):
    """A non-fatal problem met while consolidating an order."""
    type: WarningType
    description: str                        # Human-readable explanation
    product_id: Optional[str] = None
    supplier_id: Optional[str] = None


class ConsolidationResult(BaseModel):
    """
    The complete output of consolidating a single sales order.
    This is the machine-readable record handed to the persistence sink.
    """
    order_reference: str
    purchase_orders: List[PurchaseOrder] = Field(default_factory=list)
    warnings: List[ConsolidationWarning] = Field(default_factory=list)

    # --- Metadata ---
    processed_at: Optional[str] = None      # ISO 8601 datetime
    processing_time_seconds: Optional[float] = None

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def po_numbers(self) -> List[str]:
        return [po.po_number for po in self.purchase_orders]


class LinePlan(BaseModel):
    """
    What-if view of one line item: the preferred single supplier, the split
    allocation and its lead-time estimate. Produced without touching stock.
    """
    product_id: Optional[str] = None
    quantity: int
    preferred_supplier_id: Optional[str] = None
    allocation: List[AllocationEntry] = Field(default_factory=list)
    lead_time: LeadTimeEstimate = Field(default_factory=LeadTimeEstimate)
