from .supplier import SupplierLink
from .order import SalesOrder, OrderLineItem, ShippingAddress
from .allocation import AllocationEntry, AllocationOptions, LeadTimeEstimate, ReorderStatus
from .purchase_order import PurchaseOrder, POLineItem
from .result import ConsolidationResult, ConsolidationWarning, LinePlan

__all__ = [
    "SupplierLink",
    "SalesOrder", "OrderLineItem", "ShippingAddress",
    "AllocationEntry", "AllocationOptions", "LeadTimeEstimate", "ReorderStatus",
    "PurchaseOrder", "POLineItem",
    "ConsolidationResult", "ConsolidationWarning", "LinePlan",
]
