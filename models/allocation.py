from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AllocationEntry(BaseModel):
    """
    Quantity of one line item assigned to one supplier.
    Backorder entries represent quantity no supplier can ship from stock yet.
    """
    model_config = ConfigDict(frozen=True)

    supplier_id: str
    supplier_name: str
    product_id: Optional[str] = None
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0)
    is_backorder: bool = False


class AllocationOptions(BaseModel):
    """Knobs for single-supplier selection."""
    prioritize_stock: bool = True
    prioritize_lead_time: bool = True
    min_stock_threshold: int = 0


class LeadTimeEstimate(BaseModel):
    min_days: Optional[int] = None
    max_days: Optional[int] = None
    has_backorder: bool = False


class ReorderStatus(BaseModel):
    needs_reorder: bool = False
    reorder_amount: int = 0
