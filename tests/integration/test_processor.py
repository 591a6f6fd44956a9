"""
Integration tests for the OrderProcessor: catalog import, consolidation,
persistence, preview and reorder reporting against a real SQLite file.
"""
import json
import threading

import pytest

from models.order import SalesOrder
from models.purchase_order import STATUS_APPROVED
from pipeline.catalog import InMemorySupplierCatalog
from pipeline.errors import OrderLocked
from pipeline.processor import OrderProcessor


@pytest.fixture
def processor(test_config, sample_catalog_csv):
    proc = OrderProcessor(test_config)
    proc.import_catalog(sample_catalog_csv)
    return proc


@pytest.mark.integration
class TestOrderProcessor:

    def test_import_catalog(self, test_config, sample_catalog_csv):
        proc = OrderProcessor(test_config)

        assert proc.import_catalog(sample_catalog_csv) == 4
        assert len(proc.catalog.all_links()) == 4

    def test_import_missing_catalog(self, test_config):
        proc = OrderProcessor(test_config)

        assert proc.import_catalog() == 0
        assert proc.catalog.all_links() == []

    def test_process_file_end_to_end(self, processor, sample_order_file):
        result = processor.process_file(sample_order_file)

        assert result is not None
        assert result.order_reference == "1001"
        assert result.po_numbers == ["PO-1001-0007", "PO-1001-0042"]
        assert result.warnings == []
        assert result.processed_at is not None
        assert result.processing_time_seconds >= 0

        stored = processor.db.get_purchase_order("PO-1001-0007")
        assert stored.status == "pending_approval"
        assert [(i.product_id, i.quantity) for i in stored.items] == [("P-100", 8), ("P-300", 4)]
        assert stored.shipping_address.city == "Sydney"

        assert processor.catalog.get_link("SUP-0007", "P-100").stock_level == 0
        assert processor.catalog.get_link("SUP-0042", "P-100").stock_level == 13
        assert processor.catalog.get_link("SUP-0007", "P-300").stock_level == 46

    def test_second_run_is_skipped(self, processor, sample_order_file):
        processor.process_file(sample_order_file)

        assert processor.process_file(sample_order_file) is None
        assert processor.catalog.get_link("SUP-0042", "P-100").stock_level == 13

    def test_force_reprocesses(self, processor, sample_order_file):
        processor.process_file(sample_order_file)

        result = processor.process_file(sample_order_file, force=True)

        assert result is not None
        assert processor.catalog.get_link("SUP-0042", "P-100").stock_level == 3
        assert len(processor.db.list_purchase_orders(order_reference="1001")) == 2

    def test_concurrent_delivery_commits_stock_once(self, processor, sample_order):
        barrier = threading.Barrier(2)
        results, errors = [], []

        def deliver():
            barrier.wait()
            try:
                results.append(processor.process(sample_order))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=deliver) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert len([r for r in results if r is not None]) == 1
        assert results.count(None) == 1
        assert processor.catalog.get_link("SUP-0042", "P-100").stock_level == 13
        assert processor.catalog.get_link("SUP-0007", "P-300").stock_level == 46
        assert len(processor.db.list_purchase_orders(order_reference="1001")) == 2

    def test_forced_rerun_withdraws_stale_pos(self, processor):
        payload = {
            "order_number": 3001,
            "line_items": [{"product_id": "P-100", "title": "Widget", "quantity": 10}],
        }
        first = processor.process_payload(payload)
        assert first.po_numbers == ["PO-3001-0007", "PO-3001-0042"]

        # SUP-0007 is now out of P-100, so the re-run sources everything from SUP-0042
        second = processor.process_payload(payload, force=True)

        assert second.po_numbers == ["PO-3001-0042"]
        assert [p.po_number for p in processor.db.list_purchase_orders(order_reference="3001")] == [
            "PO-3001-0042",
        ]
        assert processor.db.get_purchase_order("PO-3001-0007") is None
        assert processor.db.get_purchase_order("PO-3001-0042").items[0].quantity == 10
        actions = [e["action"] for e in processor.db.get_audit_log("PO-3001-0007")]
        assert actions == ["po_created", "po_withdrawn"]

    def test_forced_rerun_refused_after_approval(self, processor, sample_order_file):
        processor.process_file(sample_order_file)
        processor.db.update_status("PO-1001-0007", STATUS_APPROVED, actor="alice")

        with pytest.raises(OrderLocked) as exc_info:
            processor.process_file(sample_order_file, force=True)

        assert exc_info.value.po_numbers == ["PO-1001-0007"]
        assert processor.catalog.get_link("SUP-0042", "P-100").stock_level == 13
        assert processor.catalog.get_link("SUP-0007", "P-300").stock_level == 46
        assert processor.db.get_purchase_order("PO-1001-0007").status == STATUS_APPROVED
        assert processor.db.get_purchase_order("PO-1001-0042") is not None

    def test_failed_build_releases_claim(self, processor, sample_order, monkeypatch):
        def boom(order):
            raise RuntimeError("catalog offline")

        monkeypatch.setattr(processor.builder, "build", boom)
        with pytest.raises(RuntimeError):
            processor.process(sample_order)
        assert processor.db.is_order_processed("1001") is False

        monkeypatch.undo()
        assert processor.process(sample_order) is not None

    def test_custom_line_without_product_is_skipped(self, processor, sample_order_payload):
        sample_order_payload["line_items"].insert(
            1, {"product_id": None, "title": "Gift wrapping", "quantity": 1},
        )

        result = processor.process_payload(sample_order_payload)

        assert result.po_numbers == ["PO-1001-0007", "PO-1001-0042"]
        assert [w.type for w in result.warnings] == ["no_supplier_found"]
        assert result.warnings[0].product_id is None
        assert [w["type"] for w in processor.db.get_order_warnings("1001")] == ["no_supplier_found"]

    def test_preview_custom_line(self, processor):
        plan = processor.preview(SalesOrder.from_payload({
            "order_number": 1, "line_items": [{"product_id": None, "quantity": 2}],
        }))[0]

        assert plan.product_id is None
        assert plan.preferred_supplier_id is None
        assert plan.allocation == []

    def test_warnings_are_persisted(self, processor):
        result = processor.process_payload({
            "order_number": "2001",
            "line_items": [
                {"product_id": "P-999", "quantity": 1},
                {"product_id": "P-300", "quantity": 0},
            ],
        })

        assert result.purchase_orders == []
        stored = processor.db.get_order_warnings("2001")
        assert [w["type"] for w in stored] == ["no_supplier_found", "invalid_quantity"]
        assert processor.db.is_order_processed("2001") is True

    def test_process_batch_skips_bad_files(self, processor, sample_order_file):
        orders_dir = sample_order_file.parent
        (orders_dir / "order_1002.json").write_text("{not json")
        (orders_dir / "order_1003.json").write_text(json.dumps({"line_items": []}))
        (orders_dir / "order_1004.json").write_text(json.dumps({
            "order_number": 1004,
            "line_items": [{"product_id": "P-300", "quantity": 2}],
        }))

        results = processor.process_batch(orders_dir)

        assert [r.order_reference for r in results] == ["1001", "1004"]

    def test_process_batch_empty_directory(self, processor, temp_dir):
        empty = temp_dir / "empty"
        empty.mkdir()

        assert processor.process_batch(empty) == []

    def test_preview_commits_nothing(self, processor, sample_order):
        plans = processor.preview(sample_order)

        widget, bolts = plans
        assert widget.preferred_supplier_id == "SUP-0042"
        assert [(e.supplier_id, e.quantity) for e in widget.allocation] == [
            ("SUP-0007", 8), ("SUP-0042", 2),
        ]
        assert (widget.lead_time.min_days, widget.lead_time.max_days) == (3, 7)
        assert bolts.preferred_supplier_id == "SUP-0007"
        assert bolts.lead_time.max_days == 10

        assert processor.catalog.get_link("SUP-0007", "P-100").stock_level == 8
        assert processor.db.is_order_processed("1001") is False

    def test_preview_backorder_penalty(self, processor, sample_order_payload):
        processor.config.backorder_penalty_days = 30
        sample_order_payload["line_items"] = [{"product_id": "P-200", "quantity": 3}]

        plan = processor.preview(SalesOrder.from_payload(sample_order_payload))[0]

        assert plan.lead_time.has_backorder is True
        assert plan.lead_time.max_days == 35

    def test_preview_unknown_product(self, processor):
        plan = processor.preview(SalesOrder.from_payload({
            "order_number": 1, "line_items": [{"product_id": "P-999", "quantity": 1}],
        }))[0]

        assert plan.preferred_supplier_id is None
        assert plan.allocation == []
        assert plan.lead_time.max_days is None

    def test_reorder_report(self, processor, sample_order_file):
        processor.process_file(sample_order_file)

        flagged = processor.reorder_report()

        assert [(l.supplier_id, l.product_id) for l, _ in flagged] == [
            ("SUP-0007", "P-100"),
            ("SUP-0042", "P-200"),
        ]
        assert all(status.reorder_amount == 10 for _, status in flagged)

    def test_injected_catalog(self, test_config, sample_links, sample_order):
        catalog = InMemorySupplierCatalog(sample_links)
        proc = OrderProcessor(test_config, catalog=catalog)

        result = proc.process(sample_order)

        assert result.po_numbers == ["PO-1001-0007", "PO-1001-0042"]
        assert catalog.get_link("SUP-0007", "P-300").stock_level == 46
        assert proc.db.get_purchase_order("PO-1001-0042") is not None

    def test_check_setup(self, processor, test_config):
        status = processor.check_setup()

        assert status["catalog"]["links"] == 4
        assert status["database"]["exists"] is True
        assert status["output_dir"]["path"] == str(test_config.output_dir)
        assert status["catalog_csv"]["exists"] is False
