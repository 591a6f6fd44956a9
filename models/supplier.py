from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class SupplierLink(BaseModel):
    """
    One supplier's offer for one product, as held by the supplier catalog.
    priority orders suppliers for a product: lower value is preferred first.
    """
    supplier_id: str
    product_id: str
    supplier_name: Optional[str] = None
    priority: int = 0
    price: Decimal = Field(ge=0)
    stock_level: int = Field(default=0, ge=0)
    lead_time: int = Field(default=0, ge=0)       # days
    minimum_order: int = Field(default=1, ge=1)

    @property
    def display_name(self) -> str:
        """Return the supplier name, or the id when the catalog has no name."""
        return self.supplier_name or self.supplier_id
