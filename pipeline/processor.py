"""
Main pipeline orchestrator.

OrderProcessor ties together the supplier catalog, the PO builder and the
SQLite persistence sink into a single process() call:

  1. SalesOrder.from_payload -- parse the webhook-style order JSON
  2. PurchaseOrderBuilder    -- allocate each line, commit stock, group by supplier
  3. Database.save_result    -- store the POs (pending_approval) and warnings

Orders are consolidated at most once: process() first claims the order
reference in the orders table, and only the call that wins the claim builds
and commits stock. A later (or concurrent) delivery of the same order is
skipped unless force=True. A forced re-run replaces the order's pending POs
and is refused once any of them has been approved.

preview() runs the same allocation read-only and reports, per line, the
preferred single supplier, the split and its lead-time estimate.
"""
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from config import Config
from models.order import SalesOrder
from models.result import ConsolidationResult, LinePlan
from .allocation import allocate_across_suppliers, determine_supplier
from .catalog import SupplierCatalog, load_links_csv
from .database import Database, SqliteSupplierCatalog
from .errors import OrderLocked
from .lead_time import calculate_lead_time
from .po_builder import PurchaseOrderBuilder
from .reorder import scan_catalog

logger = logging.getLogger(__name__)


class OrderProcessor:
    """
    Orchestrates order consolidation end-to-end.

    By default the catalog lives in the same SQLite file as the POs; pass a
    different SupplierCatalog (e.g. InMemorySupplierCatalog) to override.
    """

    def __init__(self, config: Optional[Config] = None, catalog: Optional[SupplierCatalog] = None):
        self.config = config or Config()
        self.config.ensure_output_dir()

        self.db = Database(self.config.db_path)
        self.catalog = catalog or SqliteSupplierCatalog(self.db)
        self.builder = PurchaseOrderBuilder(
            self.catalog,
            reorder_point=self.config.reorder_point,
            reorder_quantity=self.config.reorder_quantity,
        )

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def import_catalog(self, csv_path: Optional[str | Path] = None) -> int:
        """Load supplier links from CSV into the database catalog."""
        path = Path(csv_path) if csv_path else self.config.catalog_csv
        links = load_links_csv(path)
        if not links:
            return 0
        return self.db.upsert_links(links)

    def reorder_report(self) -> list:
        """Return (link, ReorderStatus) pairs for every link at or below the reorder point."""
        return scan_catalog(
            self.catalog.all_links(),
            reorder_point=self.config.reorder_point,
            reorder_quantity=self.config.reorder_quantity,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def process(self, order: SalesOrder, force: bool = False) -> Optional[ConsolidationResult]:
        """
        Consolidate one order into purchase orders and persist them.

        Returns None when the order was already claimed and force is False.
        A forced re-run raises OrderLocked, before any stock is committed, if
        one of the order's POs has already left pending_approval.
        """
        claimed = self.db.claim_order(order.order_reference)
        if not claimed:
            if not force:
                logger.info("Order %s already consolidated — skipping", order.order_reference)
                return None
            progressed = self.db.progressed_po_numbers(order.order_reference)
            if progressed:
                raise OrderLocked(order.order_reference, progressed)

        logger.info(
            "=== Consolidating order %s (%d line item(s)) ===",
            order.order_reference, len(order.line_items),
        )
        start = time.monotonic()

        try:
            result = self.builder.build(order)
        except Exception:
            if claimed:
                self.db.release_order(order.order_reference)
            raise
        result.processed_at = datetime.now(timezone.utc).isoformat()
        result.processing_time_seconds = round(time.monotonic() - start, 3)

        self.db.save_result(result)

        logger.info(
            "Completed order %s in %.3fs | POs=%s | warnings=%d",
            order.order_reference,
            result.processing_time_seconds,
            ", ".join(result.po_numbers) or "(none)",
            len(result.warnings),
        )
        return result

    def process_payload(self, payload: dict, force: bool = False) -> Optional[ConsolidationResult]:
        return self.process(SalesOrder.from_payload(payload), force=force)

    def process_file(self, path: str | Path, force: bool = False) -> Optional[ConsolidationResult]:
        """Consolidate an order stored as a JSON file."""
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
        return self.process_payload(payload, force=force)

    def process_batch(self, directory: str | Path, force: bool = False) -> list[ConsolidationResult]:
        """
        Consolidate every *.json order in a directory, in file-name order.

        A file that fails to parse is logged and skipped; the batch continues.
        """
        directory = Path(directory)
        files = sorted(directory.glob("*.json"))
        if not files:
            logger.warning("No order files found in %s", directory)
            return []

        logger.info("Batch consolidating %d order file(s) from %s", len(files), directory)
        results = []
        for i, order_file in enumerate(files, 1):
            logger.info("[%d/%d] %s", i, len(files), order_file.name)
            try:
                result = self.process_file(order_file, force=force)
            except (OSError, ValueError, KeyError) as e:
                logger.error("Failed to process %s: %s", order_file.name, e, exc_info=True)
                continue
            if result is not None:
                results.append(result)

        logger.info(
            "Batch complete: %d consolidated, %d skipped or failed",
            len(results),
            len(files) - len(results),
        )
        return results

    def preview(self, order: SalesOrder) -> list[LinePlan]:
        """Plan every line of order without committing stock or saving anything."""
        options = self.config.allocation_options
        plans = []
        for line in order.line_items:
            # get_links(None) would return the whole catalog
            links = self.catalog.get_supplier_links(line.product_id) if line.product_id else []
            preferred = determine_supplier(links, line.quantity, options)
            allocation = allocate_across_suppliers(links, line.quantity)
            plans.append(LinePlan(
                product_id=line.product_id,
                quantity=line.quantity,
                preferred_supplier_id=preferred.supplier_id if preferred else None,
                allocation=allocation,
                lead_time=calculate_lead_time(
                    allocation, links, self.config.backorder_penalty_days
                ),
            ))
        return plans

    def check_setup(self) -> dict:
        """Report the state of the catalog CSV, database and output directory."""
        return {
            "catalog_csv": {
                "path": str(self.config.catalog_csv),
                "exists": self.config.catalog_csv.exists(),
            },
            "catalog": {
                "links": len(self.catalog.all_links()),
            },
            "database": {
                "path": str(self.config.db_path),
                "exists": self.config.db_path.exists(),
            },
            "output_dir": {
                "path": str(self.config.output_dir),
                "exists": self.config.output_dir.exists(),
            },
        }
