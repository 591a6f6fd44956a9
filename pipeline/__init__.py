from .allocation import determine_supplier, allocate_across_suppliers
from .lead_time import calculate_lead_time
from .reorder import check_reorder, scan_catalog
from .catalog import SupplierCatalog, InMemorySupplierCatalog
from .po_builder import PurchaseOrderBuilder, build_purchase_orders
from .database import Database, SqliteSupplierCatalog

__all__ = [
    "determine_supplier", "allocate_across_suppliers",
    "calculate_lead_time",
    "check_reorder", "scan_catalog",
    "SupplierCatalog", "InMemorySupplierCatalog",
    "PurchaseOrderBuilder", "build_purchase_orders",
    "Database", "SqliteSupplierCatalog",
]
