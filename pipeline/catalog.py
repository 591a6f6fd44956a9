"""
Supplier catalog access.

The catalog maps a product to the suppliers that can ship it (SupplierLink
records) and owns their stock levels. Two operations matter to the pipeline:

  get_supplier_links(product_id)                  read the candidates
  decrement_stock(supplier_id, product_id, qty)   compare-and-decrement

lock(product_id) serializes read-allocate-decrement for one product, so two
orders processed on different threads cannot both ship the last unit.

CSV format (catalog.csv):
  supplier_id, supplier_name, product_id, priority, price, stock_level,
  lead_time, minimum_order
"""
import csv
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, Iterator, Optional

from models.supplier import SupplierLink
from .errors import StockMutationError

logger = logging.getLogger(__name__)


class SupplierCatalog(ABC):
    """Interface shared by the in-memory and SQLite-backed catalogs."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @abstractmethod
    def get_supplier_links(self, product_id: str) -> list[SupplierLink]:
        """Return all links for product_id in catalog order (may be empty)."""

    @abstractmethod
    def decrement_stock(self, supplier_id: str, product_id: str, quantity: int) -> bool:
        """
        Reduce the link's stock by quantity if at least that much is on hand.
        Returns False when the stock was insufficient; raises
        StockMutationError when the link does not exist or the store fails.
        """

    @abstractmethod
    def all_links(self) -> list[SupplierLink]:
        """Return every link in the catalog."""

    @contextmanager
    def lock(self, product_id: str) -> Iterator[None]:
        """Hold the per-product lock for the duration of the block."""
        with self._locks_guard:
            product_lock = self._locks.setdefault(product_id, threading.Lock())
        with product_lock:
            yield

    def get_link(self, supplier_id: str, product_id: str) -> Optional[SupplierLink]:
        for link in self.get_supplier_links(product_id):
            if link.supplier_id == supplier_id:
                return link
        return None


class InMemorySupplierCatalog(SupplierCatalog):
    """
    Catalog held in process memory, loaded from a list or a CSV file.

    Links are replaced (never mutated in place) on decrement, so lists handed
    out by get_supplier_links stay consistent snapshots.
    """

    def __init__(self, links: Iterable[SupplierLink] = ()):
        super().__init__()
        self._links: list[SupplierLink] = list(links)
        self._stock_guard = threading.Lock()

    @classmethod
    def from_csv(cls, path: str | Path) -> "InMemorySupplierCatalog":
        return cls(load_links_csv(Path(path)))

    def get_supplier_links(self, product_id: str) -> list[SupplierLink]:
        with self._stock_guard:
            return [link for link in self._links if link.product_id == product_id]

    def all_links(self) -> list[SupplierLink]:
        with self._stock_guard:
            return list(self._links)

    def decrement_stock(self, supplier_id: str, product_id: str, quantity: int) -> bool:
        with self._stock_guard:
            for i, link in enumerate(self._links):
                if link.supplier_id == supplier_id and link.product_id == product_id:
                    if link.stock_level < quantity:
                        logger.warning(
                            "Insufficient stock for %s/%s: have %d, need %d",
                            supplier_id, product_id, link.stock_level, quantity,
                        )
                        return False
                    self._links[i] = link.model_copy(
                        update={"stock_level": link.stock_level - quantity}
                    )
                    logger.debug(
                        "Stock %s/%s: %d -> %d",
                        supplier_id, product_id, link.stock_level, link.stock_level - quantity,
                    )
                    return True
        raise StockMutationError(
            f"No catalog link for supplier {supplier_id}, product {product_id}"
        )


# ------------------------------------------------------------------
# CSV loading
# ------------------------------------------------------------------

def load_links_csv(path: Path) -> list[SupplierLink]:
    """Read supplier links from CSV. A missing file yields an empty catalog."""
    links: list[SupplierLink] = []
    if not path.exists():
        logger.warning("Catalog CSV not found: %s — catalog is empty", path)
        return links

    with open(path, newline="", encoding="utf-8") as f:
        for line_no, row in enumerate(csv.DictReader(f), start=2):
            try:
                links.append(SupplierLink(
                    supplier_id=row["supplier_id"].strip(),
                    supplier_name=(row.get("supplier_name") or "").strip() or None,
                    product_id=row["product_id"].strip(),
                    priority=_to_int(row.get("priority"), 0),
                    price=_to_decimal(row.get("price")),
                    stock_level=_to_int(row.get("stock_level"), 0),
                    lead_time=_to_int(row.get("lead_time"), 0),
                    minimum_order=_to_int(row.get("minimum_order"), 1),
                ))
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping catalog row %d in %s: %s", line_no, path.name, exc)

    logger.info("Loaded %d supplier links from %s", len(links), path.name)
    return links


def _to_int(value: Optional[str], default: int) -> int:
    if value is None or not str(value).strip():
        return default
    return int(str(value).strip())


def _to_decimal(value: Optional[str]) -> Decimal:
    if value is None or not str(value).strip():
        raise ValueError("price is required")
    try:
        return Decimal(str(value).strip().lstrip("$"))
    except InvalidOperation as exc:
        raise ValueError(f"invalid price {value!r}") from exc
