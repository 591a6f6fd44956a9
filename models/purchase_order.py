from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Literal

from pydantic import BaseModel, Field

from .order import ShippingAddress


POStatus = Literal["pending_approval", "approved", "sent", "completed"]

STATUS_PENDING_APPROVAL = "pending_approval"
STATUS_APPROVED         = "approved"
STATUS_SENT             = "sent"
STATUS_COMPLETED        = "completed"
ALL_STATUSES = (STATUS_PENDING_APPROVAL, STATUS_APPROVED, STATUS_SENT, STATUS_COMPLETED)


class POLineItem(BaseModel):
    """A single line on a generated Purchase Order."""
    product_id: str
    title: Optional[str] = None
    variant_id: Optional[str] = None
    sku: Optional[str] = None
    quantity: int = Field(gt=0)
    price: Decimal
    line_total: Decimal                     # quantity * price
    lead_time: int = 0                      # days, from the supplier link
    is_backorder: bool = False


class PurchaseOrder(BaseModel):
    """
    The consolidated request to one supplier for one sales order.
    Always created as pending_approval; the approval workflow moves it on.
    """
    po_number: str
    supplier_id: str
    supplier_name: Optional[str] = None
    order_reference: str
    status: POStatus = STATUS_PENDING_APPROVAL
    items: List[POLineItem] = Field(min_length=1)
    shipping_address: Optional[ShippingAddress] = None
    subtotal: Decimal
    total: Decimal
    required_by: date
    approval_required: bool = True
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def has_backorder(self) -> bool:
        return any(item.is_backorder for item in self.items)
