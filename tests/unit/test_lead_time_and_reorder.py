"""
Unit tests for lead-time estimation and reorder monitoring.
"""
from decimal import Decimal

import pytest

from models.allocation import AllocationEntry
from pipeline.allocation import allocate_across_suppliers
from pipeline.lead_time import BACKORDER_PENALTY_DAYS, calculate_lead_time
from pipeline.reorder import check_reorder, scan_catalog


def _entry(supplier_id, quantity=1, is_backorder=False, product_id="P-100"):
    return AllocationEntry(
        supplier_id=supplier_id,
        supplier_name=supplier_id,
        product_id=product_id,
        quantity=quantity,
        price=Decimal("1.00"),
        is_backorder=is_backorder,
    )


@pytest.mark.unit
class TestCalculateLeadTime:

    def test_empty_allocation(self):
        estimate = calculate_lead_time([], [])

        assert estimate.min_days is None
        assert estimate.max_days is None
        assert estimate.has_backorder is False

    def test_min_and_max_over_suppliers(self, make_link):
        suppliers = [make_link("A", lead_time=3), make_link("B", lead_time=7)]

        estimate = calculate_lead_time([_entry("A"), _entry("B")], suppliers)

        assert (estimate.min_days, estimate.max_days, estimate.has_backorder) == (3, 7, False)

    def test_backorder_adds_penalty_to_max(self, make_link):
        suppliers = [make_link("A", lead_time=3), make_link("B", lead_time=7)]
        allocation = [_entry("A"), _entry("B"), _entry("A", is_backorder=True)]

        estimate = calculate_lead_time(allocation, suppliers)

        assert estimate.has_backorder is True
        assert estimate.min_days == 3
        assert estimate.max_days == 7 + BACKORDER_PENALTY_DAYS

    def test_backorder_never_shortens_max(self, make_link):
        suppliers = [make_link(1, priority=1, stock=4, lead_time=2),
                     make_link(2, priority=2, stock=4, lead_time=9)]
        without = calculate_lead_time(allocate_across_suppliers(suppliers, 8), suppliers)
        with_backorder = calculate_lead_time(allocate_across_suppliers(suppliers, 12), suppliers)

        assert without.has_backorder is False
        assert with_backorder.max_days >= without.max_days + 14

    def test_unknown_supplier_counts_as_zero_days(self, make_link):
        estimate = calculate_lead_time([_entry("ghost"), _entry("A")], [make_link("A", lead_time=5)])

        assert estimate.min_days == 0
        assert estimate.max_days == 5

    def test_lookup_respects_product(self, make_link):
        suppliers = [
            make_link("A", product_id="P-1", lead_time=2),
            make_link("A", product_id="P-2", lead_time=20),
        ]

        estimate = calculate_lead_time([_entry("A", product_id="P-2")], suppliers)

        assert estimate.max_days == 20

    def test_custom_penalty(self, make_link):
        estimate = calculate_lead_time(
            [_entry("A", is_backorder=True)], [make_link("A", lead_time=1)],
            backorder_penalty_days=30,
        )
        assert estimate.max_days == 31


@pytest.mark.unit
class TestReorder:

    def test_at_reorder_point_needs_reorder(self, make_link):
        status = check_reorder(make_link(1, stock=5))

        assert status.needs_reorder is True
        assert status.reorder_amount == 10

    def test_above_reorder_point(self, make_link):
        status = check_reorder(make_link(1, stock=6))

        assert status.needs_reorder is False
        assert status.reorder_amount == 0

    def test_custom_thresholds(self, make_link):
        status = check_reorder(make_link(1, stock=20), reorder_point=25, reorder_quantity=100)

        assert status.needs_reorder is True
        assert status.reorder_amount == 100

    def test_missing_supplier(self):
        status = check_reorder(None)

        assert status.needs_reorder is False
        assert status.reorder_amount == 0

    def test_scan_catalog_returns_only_flagged_in_order(self, make_link):
        links = [
            make_link("A", stock=0),
            make_link("B", stock=40),
            make_link("C", stock=5),
        ]

        flagged = scan_catalog(links)

        assert [link.supplier_id for link, _ in flagged] == ["A", "C"]
        assert all(status.reorder_amount == 10 for _, status in flagged)
