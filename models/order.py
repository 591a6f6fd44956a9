from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ShippingAddress(BaseModel):
    """Delivery address copied from the sales order onto each purchase order."""
    name: Optional[str] = None
    company: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


class OrderLineItem(BaseModel):
    """
    A single line on the triggering sales order.
    quantity is not range-checked here; the PO builder reports non-positive
    quantities as warnings instead of failing the whole order.
    """
    model_config = ConfigDict(frozen=True)

    product_id: Optional[str] = None       # null for custom (non-catalog) lines
    title: Optional[str] = None
    quantity: int
    variant_id: Optional[str] = None
    sku: Optional[str] = None

    @field_validator("product_id", "variant_id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        # Webhook payloads carry numeric ids
        if value is None:
            return value
        return str(value)


class SalesOrder(BaseModel):
    """The order whose line items are allocated to suppliers."""
    order_reference: str
    line_items: List[OrderLineItem] = Field(default_factory=list)
    shipping_address: Optional[ShippingAddress] = None

    @field_validator("order_reference", mode="before")
    @classmethod
    def _coerce_reference(cls, value):
        return str(value) if value is not None else value

    @classmethod
    def from_payload(cls, payload: dict) -> "SalesOrder":
        """
        Build a SalesOrder from a webhook-style order payload.

        Accepts either our own field names or the storefront's
        (order_number / name, line_items[].product_id, shipping_address).
        Unknown keys are ignored.
        """
        reference = (
            payload.get("order_reference")
            or payload.get("order_number")
            or payload.get("name")
        )
        if reference is None:
            raise ValueError("Order payload has no order_reference / order_number")

        line_items = []
        for raw in payload.get("line_items") or []:
            line_items.append(OrderLineItem(
                product_id=raw.get("product_id"),
                title=raw.get("title"),
                quantity=int(raw.get("quantity") or 0),
                variant_id=raw.get("variant_id"),
                sku=raw.get("sku") or None,
            ))

        address = payload.get("shipping_address")
        shipping = None
        if address:
            shipping = ShippingAddress.model_validate(
                {k: v for k, v in address.items() if k in ShippingAddress.model_fields}
            )

        return cls(
            order_reference=str(reference).lstrip("#"),
            line_items=line_items,
            shipping_address=shipping,
        )
