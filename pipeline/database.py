"""
SQLite persistence layer for the PO consolidation pipeline.

A single database file (output/consolidation.db) holds:

  - supplier_links   the supplier catalog, including live stock levels
  - orders           one row per claimed / consolidated sales order (warnings
                     included), so an order is never consolidated twice
  - purchase_orders  generated POs, with the approval workflow state
  - audit_log        every status change and processing event

Status values (purchase_orders.status)
--------------------------------------
  pending_approval  Set by the pipeline for every new PO.
  approved          An operator approved the PO (approved_by / approved_at set).
  sent              The PO was transmitted to the supplier.
  completed         Goods received.

Transitions only move forward, one step at a time.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional

from models.purchase_order import (
    ALL_STATUSES,
    STATUS_APPROVED,
    STATUS_COMPLETED,
    STATUS_PENDING_APPROVAL,
    STATUS_SENT,
    PurchaseOrder,
)
from models.result import ConsolidationResult
from models.supplier import SupplierLink
from .catalog import SupplierCatalog
from .errors import InvalidStatusTransition, OrderLocked, StockMutationError

logger = logging.getLogger(__name__)

NEXT_STATUS = {
    STATUS_PENDING_APPROVAL: STATUS_APPROVED,
    STATUS_APPROVED:         STATUS_SENT,
    STATUS_SENT:             STATUS_COMPLETED,
}

_SCHEMA = """
CREATE TABLE IF NOT EXISTS supplier_links (
    supplier_id    TEXT    NOT NULL,
    product_id     TEXT    NOT NULL,
    supplier_name  TEXT,
    priority       INTEGER NOT NULL DEFAULT 0,
    price          TEXT    NOT NULL,           -- Decimal as string
    stock_level    INTEGER NOT NULL DEFAULT 0 CHECK (stock_level >= 0),
    lead_time      INTEGER NOT NULL DEFAULT 0,
    minimum_order  INTEGER NOT NULL DEFAULT 1,
    updated_at     TEXT    NOT NULL,
    PRIMARY KEY (supplier_id, product_id)
);

CREATE INDEX IF NOT EXISTS idx_links_product ON supplier_links (product_id);

CREATE TABLE IF NOT EXISTS orders (
    order_reference  TEXT PRIMARY KEY,
    processed_at     TEXT NOT NULL,
    po_count         INTEGER NOT NULL DEFAULT 0,
    warning_count    INTEGER NOT NULL DEFAULT 0,
    warnings         TEXT                       -- JSON list of ConsolidationWarning
);

CREATE TABLE IF NOT EXISTS purchase_orders (
    po_number          TEXT PRIMARY KEY,
    order_reference    TEXT NOT NULL,
    supplier_id        TEXT NOT NULL,
    supplier_name      TEXT,
    status             TEXT NOT NULL DEFAULT 'pending_approval',
    subtotal           TEXT NOT NULL,
    total              TEXT NOT NULL,
    required_by        TEXT NOT NULL,           -- YYYY-MM-DD
    approval_required  INTEGER NOT NULL DEFAULT 1,
    approved_by        TEXT,
    approved_at        TEXT,
    created_at         TEXT NOT NULL,

    -- Full PurchaseOrder serialised as JSON
    data               TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_po_order    ON purchase_orders (order_reference);
CREATE INDEX IF NOT EXISTS idx_po_supplier ON purchase_orders (supplier_id);
CREATE INDEX IF NOT EXISTS idx_po_status   ON purchase_orders (status);

CREATE TABLE IF NOT EXISTS audit_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    subject     TEXT    NOT NULL,   -- po_number or order_reference
    timestamp   TEXT    NOT NULL,   -- ISO-8601 UTC
    action      TEXT    NOT NULL,   -- consolidated | po_created | po_withdrawn | status_changed | stock_decremented
    actor       TEXT    NOT NULL DEFAULT 'system',
    detail      TEXT                -- optional JSON blob with action-specific context
);

CREATE INDEX IF NOT EXISTS idx_audit_subject   ON audit_log (subject);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log (timestamp DESC);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """Thin wrapper around an SQLite database file for catalog and PO state."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._conn() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Database schema ready: %s", self.db_path)

    # ------------------------------------------------------------------
    # Supplier catalog
    # ------------------------------------------------------------------

    def upsert_links(self, links: Iterable[SupplierLink]) -> int:
        """
        Insert or update supplier links (catalog sync).

        Existing links keep their position in catalog order. Returns the
        number of rows written.
        """
        rows = [
            {
                "supplier_id":   link.supplier_id,
                "product_id":    link.product_id,
                "supplier_name": link.supplier_name,
                "priority":      link.priority,
                "price":         str(link.price),
                "stock_level":   link.stock_level,
                "lead_time":     link.lead_time,
                "minimum_order": link.minimum_order,
                "updated_at":    _now(),
            }
            for link in links
        ]
        with self._conn() as conn:
            conn.executemany(
                """
                INSERT INTO supplier_links (
                    supplier_id, product_id, supplier_name, priority, price,
                    stock_level, lead_time, minimum_order, updated_at
                ) VALUES (
                    :supplier_id, :product_id, :supplier_name, :priority, :price,
                    :stock_level, :lead_time, :minimum_order, :updated_at
                )
                ON CONFLICT(supplier_id, product_id) DO UPDATE SET
                    supplier_name = excluded.supplier_name,
                    priority      = excluded.priority,
                    price         = excluded.price,
                    stock_level   = excluded.stock_level,
                    lead_time     = excluded.lead_time,
                    minimum_order = excluded.minimum_order,
                    updated_at    = excluded.updated_at
                """,
                rows,
            )
        logger.info("Catalog sync: %d supplier link(s) written", len(rows))
        return len(rows)

    def get_links(self, product_id: Optional[str] = None) -> list[SupplierLink]:
        """Return links (for one product, or all) in catalog insertion order."""
        query = "SELECT * FROM supplier_links"
        params: tuple = ()
        if product_id is not None:
            query += " WHERE product_id = ?"
            params = (product_id,)
        query += " ORDER BY rowid"
        with self._conn() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_link(r) for r in rows]

    def decrement_stock(self, supplier_id: str, product_id: str, quantity: int) -> bool:
        """
        Atomically subtract quantity from a link's stock if enough is on hand.

        Returns True when applied, False when stock was insufficient. Raises
        StockMutationError if the link does not exist or SQLite fails.
        """
        exists = None
        try:
            with self._conn() as conn:
                conn.execute(
                    """UPDATE supplier_links
                       SET stock_level = stock_level - ?, updated_at = ?
                       WHERE supplier_id = ? AND product_id = ? AND stock_level >= ?""",
                    (quantity, _now(), supplier_id, product_id, quantity),
                )
                changed = conn.execute("SELECT changes()").fetchone()[0]
                if not changed:
                    exists = conn.execute(
                        "SELECT 1 FROM supplier_links WHERE supplier_id = ? AND product_id = ?",
                        (supplier_id, product_id),
                    ).fetchone()
        except sqlite3.Error as exc:
            raise StockMutationError(
                f"Database error decrementing {supplier_id}/{product_id}: {exc}"
            ) from exc

        if changed:
            self.log_audit(
                f"{supplier_id}/{product_id}", "stock_decremented",
                detail={"quantity": quantity},
            )
            return True
        if exists is None:
            raise StockMutationError(
                f"No catalog link for supplier {supplier_id}, product {product_id}"
            )
        logger.warning("Insufficient stock for %s/%s (need %d)", supplier_id, product_id, quantity)
        return False

    # ------------------------------------------------------------------
    # Orders and purchase orders
    # ------------------------------------------------------------------

    def is_order_processed(self, order_reference: str) -> bool:
        """Return True if this order has already been consolidated."""
        with self._conn() as conn:
            row = conn.execute(
                "SELECT 1 FROM orders WHERE order_reference = ?", (order_reference,)
            ).fetchone()
        return row is not None

    def claim_order(self, order_reference: str) -> bool:
        """
        Atomically reserve an order reference before its stock is committed.

        Returns True only for the call that inserted the orders row; a second
        delivery of the same order (even one racing on another thread) gets
        False.
        """
        with self._conn() as conn:
            conn.execute(
                """INSERT INTO orders (order_reference, processed_at)
                   VALUES (?, ?)
                   ON CONFLICT(order_reference) DO NOTHING""",
                (order_reference, _now()),
            )
            claimed = conn.execute("SELECT changes()").fetchone()[0] == 1
        logger.debug("Order %s claim: %s", order_reference, "won" if claimed else "already held")
        return claimed

    def release_order(self, order_reference: str) -> None:
        """Drop a claim whose consolidation failed, so the order can be retried."""
        with self._conn() as conn:
            conn.execute(
                "DELETE FROM orders WHERE order_reference = ? AND po_count = 0 AND warnings IS NULL",
                (order_reference,),
            )

    def progressed_po_numbers(self, order_reference: str) -> list[str]:
        """Return the order's POs that have left pending_approval."""
        with self._conn() as conn:
            return self._progressed_po_numbers(conn, order_reference)

    @staticmethod
    def _progressed_po_numbers(conn: sqlite3.Connection, order_reference: str) -> list[str]:
        rows = conn.execute(
            """SELECT po_number FROM purchase_orders
               WHERE order_reference = ? AND status != ?
               ORDER BY po_number""",
            (order_reference, STATUS_PENDING_APPROVAL),
        ).fetchall()
        return [r["po_number"] for r in rows]

    def save_result(self, result: ConsolidationResult) -> None:
        """
        Persist the order record and every PO of a consolidation result.

        The stored POs of the order are replaced by the result's POs: pending
        POs the result no longer contains are withdrawn. Raises OrderLocked,
        writing nothing, if any stored PO of the order has left
        pending_approval.
        """
        processed_at = result.processed_at or _now()
        new_numbers = result.po_numbers
        with self._conn() as conn:
            # Hold the write lock from the status check through the replace
            conn.execute("BEGIN IMMEDIATE")
            progressed = self._progressed_po_numbers(conn, result.order_reference)
            if progressed:
                raise OrderLocked(result.order_reference, progressed)

            placeholders = ", ".join("?" for _ in new_numbers)
            not_in = f"AND po_number NOT IN ({placeholders})" if new_numbers else ""
            withdrawn = [
                r["po_number"] for r in conn.execute(
                    f"SELECT po_number FROM purchase_orders WHERE order_reference = ? {not_in}",
                    [result.order_reference, *new_numbers],
                ).fetchall()
            ]
            if withdrawn:
                conn.execute(
                    f"DELETE FROM purchase_orders WHERE order_reference = ? {not_in}",
                    [result.order_reference, *new_numbers],
                )

            conn.execute(
                """
                INSERT INTO orders (order_reference, processed_at, po_count, warning_count, warnings)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(order_reference) DO UPDATE SET
                    processed_at  = excluded.processed_at,
                    po_count      = excluded.po_count,
                    warning_count = excluded.warning_count,
                    warnings      = excluded.warnings
                """,
                (
                    result.order_reference,
                    processed_at,
                    len(result.purchase_orders),
                    len(result.warnings),
                    json.dumps([json.loads(w.model_dump_json()) for w in result.warnings]),
                ),
            )
            for po in result.purchase_orders:
                self._upsert_po(conn, po, created_at=processed_at)

        self.log_audit(
            result.order_reference, "consolidated",
            detail={"po_numbers": result.po_numbers, "warnings": len(result.warnings)},
        )
        for po in result.purchase_orders:
            self.log_audit(po.po_number, "po_created", detail={"total": str(po.total)})
        for po_number in withdrawn:
            self.log_audit(po_number, "po_withdrawn", detail={"order": result.order_reference})
        if withdrawn:
            logger.info(
                "Order %s re-run withdrew %d stale PO(s): %s",
                result.order_reference, len(withdrawn), ", ".join(withdrawn),
            )
        logger.info(
            "DB saved order %s: %d PO(s)", result.order_reference, len(result.purchase_orders)
        )

    @staticmethod
    def _upsert_po(conn: sqlite3.Connection, po: PurchaseOrder, created_at: str) -> None:
        created = po.created_at.isoformat() if po.created_at else created_at
        conn.execute(
            """
            INSERT INTO purchase_orders (
                po_number, order_reference, supplier_id, supplier_name, status,
                subtotal, total, required_by, approval_required,
                approved_by, approved_at, created_at, data
            ) VALUES (
                :po_number, :order_reference, :supplier_id, :supplier_name, :status,
                :subtotal, :total, :required_by, :approval_required,
                :approved_by, :approved_at, :created_at, :data
            )
            ON CONFLICT(po_number) DO UPDATE SET
                supplier_name = excluded.supplier_name,
                subtotal      = excluded.subtotal,
                total         = excluded.total,
                required_by   = excluded.required_by,
                data          = excluded.data
            """,
            {
                "po_number":         po.po_number,
                "order_reference":   po.order_reference,
                "supplier_id":       po.supplier_id,
                "supplier_name":     po.supplier_name,
                "status":            po.status,
                "subtotal":          str(po.subtotal),
                "total":             str(po.total),
                "required_by":       po.required_by.isoformat(),
                "approval_required": int(po.approval_required),
                "approved_by":       po.approved_by,
                "approved_at":       po.approved_at.isoformat() if po.approved_at else None,
                "created_at":        created,
                "data":              po.model_dump_json(),
            },
        )

    def get_purchase_order(self, po_number: str) -> Optional[PurchaseOrder]:
        """Return the PO with its current workflow state, or None."""
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM purchase_orders WHERE po_number = ?", (po_number,)
            ).fetchone()
        return _row_to_po(row) if row else None

    def list_purchase_orders(
        self,
        status: Optional[str] = None,
        order_reference: Optional[str] = None,
        limit: int = 500,
        offset: int = 0,
    ) -> list[PurchaseOrder]:
        """Return POs newest-first, optionally filtered by status and/or order."""
        clauses: list[str] = []
        params: list = []

        if status:
            clauses.append("status = ?")
            params.append(status)
        if order_reference:
            clauses.append("order_reference = ?")
            params.append(order_reference)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([limit, offset])

        with self._conn() as conn:
            rows = conn.execute(
                f"""SELECT * FROM purchase_orders {where}
                    ORDER BY created_at DESC, po_number ASC
                    LIMIT ? OFFSET ?""",
                params,
            ).fetchall()
        return [_row_to_po(r) for r in rows]

    def update_status(self, po_number: str, status: str, actor: str = "system") -> bool:
        """
        Advance a PO through the approval workflow.

        Moving to 'approved' records approved_by / approved_at. Returns False
        if the PO does not exist; raises InvalidStatusTransition when the move
        is not the next step.
        """
        if status not in ALL_STATUSES:
            raise ValueError(f"Invalid status {status!r}. Must be one of {ALL_STATUSES}")

        with self._conn() as conn:
            row = conn.execute(
                "SELECT status FROM purchase_orders WHERE po_number = ?", (po_number,)
            ).fetchone()
            if row is None:
                return False
            current = row["status"]
            if NEXT_STATUS.get(current) != status:
                raise InvalidStatusTransition(po_number, current, status)

            if status == STATUS_APPROVED:
                conn.execute(
                    """UPDATE purchase_orders
                       SET status = ?, approved_by = ?, approved_at = ?
                       WHERE po_number = ?""",
                    (status, actor, _now(), po_number),
                )
            else:
                conn.execute(
                    "UPDATE purchase_orders SET status = ? WHERE po_number = ?",
                    (status, po_number),
                )

        self.log_audit(
            po_number, "status_changed", actor=actor,
            detail={"from": current, "to": status},
        )
        logger.info("PO %s: %s -> %s (by %s)", po_number, current, status, actor)
        return True

    def get_order_warnings(self, order_reference: str) -> list[dict]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT warnings FROM orders WHERE order_reference = ?", (order_reference,)
            ).fetchone()
        if row is None or not row["warnings"]:
            return []
        return json.loads(row["warnings"])

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def log_audit(
        self,
        subject: str,
        action: str,
        actor: str = "system",
        detail: Optional[dict] = None,
    ) -> None:
        """Append one entry to the audit log."""
        with self._conn() as conn:
            conn.execute(
                """INSERT INTO audit_log (subject, timestamp, action, actor, detail)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    subject,
                    _now(),
                    action,
                    actor,
                    json.dumps(detail) if detail is not None else None,
                ),
            )

    def get_audit_log(self, subject: str) -> list[dict]:
        """Return all audit entries for one PO / order / link, oldest first."""
        with self._conn() as conn:
            rows = conn.execute(
                """SELECT id, timestamp, action, actor, detail
                   FROM audit_log WHERE subject = ?
                   ORDER BY timestamp ASC, id ASC""",
                (subject,),
            ).fetchall()
        return [dict(r) for r in rows]


class SqliteSupplierCatalog(SupplierCatalog):
    """SupplierCatalog backed by the supplier_links table."""

    def __init__(self, db: Database):
        super().__init__()
        self.db = db

    def get_supplier_links(self, product_id: str) -> list[SupplierLink]:
        return self.db.get_links(product_id)

    def all_links(self) -> list[SupplierLink]:
        return self.db.get_links()

    def decrement_stock(self, supplier_id: str, product_id: str, quantity: int) -> bool:
        return self.db.decrement_stock(supplier_id, product_id, quantity)


# ------------------------------------------------------------------
# Row mapping
# ------------------------------------------------------------------

def _row_to_link(row: sqlite3.Row) -> SupplierLink:
    return SupplierLink(
        supplier_id=row["supplier_id"],
        product_id=row["product_id"],
        supplier_name=row["supplier_name"],
        priority=row["priority"],
        price=Decimal(row["price"]),
        stock_level=row["stock_level"],
        lead_time=row["lead_time"],
        minimum_order=row["minimum_order"],
    )


def _row_to_po(row: sqlite3.Row) -> PurchaseOrder:
    # Workflow columns are authoritative over the JSON snapshot
    data = json.loads(row["data"])
    data.update({
        "status":      row["status"],
        "approved_by": row["approved_by"],
        "approved_at": row["approved_at"],
        "created_at":  row["created_at"],
    })
    return PurchaseOrder.model_validate(data)
