"""
Pytest configuration and shared fixtures for the PO consolidation test suite.
"""
import json
import os
import shutil
import tempfile
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Generator

import pytest

# Relative default paths resolve against the project root
PROJECT_ROOT = Path(__file__).parent.parent
os.chdir(PROJECT_ROOT)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for test files."""
    tmp_path = tempfile.mkdtemp(prefix="po_consolidation_test_")
    yield Path(tmp_path)
    shutil.rmtree(tmp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path, monkeypatch) -> "Config":
    """Provide a test configuration with isolated directories."""
    # Keep any developer allocation_settings.json out of the tests
    monkeypatch.setenv("CONFIG_DIR", str(temp_dir / "config"))
    from config import Config

    config = Config()
    config.output_dir = temp_dir / "output"
    config.output_dir.mkdir(parents=True, exist_ok=True)
    config.db_path = temp_dir / "output" / "consolidation.db"
    config.catalog_csv = temp_dir / "data" / "catalog.csv"
    config.catalog_csv.parent.mkdir(parents=True, exist_ok=True)
    config.backorder_penalty_days = 14
    config.reorder_point = 5
    config.reorder_quantity = 10
    return config


def _make_link(supplier_id, product_id="P-100", priority=1, stock=10, lead_time=3,
              price="10.00", name=None, minimum_order=1):
    """Build a SupplierLink with test-friendly defaults."""
    from models.supplier import SupplierLink
    return SupplierLink(
        supplier_id=str(supplier_id),
        product_id=product_id,
        supplier_name=name,
        priority=priority,
        price=Decimal(price),
        stock_level=stock,
        lead_time=lead_time,
        minimum_order=minimum_order,
    )


@pytest.fixture
def make_link():
    return _make_link


@pytest.fixture
def fixed_today() -> date:
    """The date PO builders in tests treat as today."""
    return date(2024, 3, 1)


@pytest.fixture
def sample_links() -> list:
    """Two products; P-100 has two suppliers, P-200 one, P-300 shares SUP-0007."""
    return [
        _make_link("SUP-0007", "P-100", priority=1, stock=8, lead_time=3, price="12.50", name="Acme Supplies"),
        _make_link("SUP-0042", "P-100", priority=2, stock=15, lead_time=7, price="11.00", name="Global Parts"),
        _make_link("SUP-0042", "P-200", priority=1, stock=0, lead_time=5, price="4.00", name="Global Parts"),
        _make_link("SUP-0007", "P-300", priority=1, stock=50, lead_time=10, price="2.25", name="Acme Supplies"),
    ]


@pytest.fixture
def memory_catalog(sample_links):
    from pipeline.catalog import InMemorySupplierCatalog
    return InMemorySupplierCatalog(sample_links)


@pytest.fixture
def sample_catalog_csv(temp_dir: Path) -> Path:
    """Create a sample catalog CSV file."""
    csv_path = temp_dir / "catalog.csv"
    content = """supplier_id,supplier_name,product_id,priority,price,stock_level,lead_time,minimum_order
SUP-0007,Acme Supplies,P-100,1,12.50,8,3,1
SUP-0042,Global Parts,P-100,2,11.00,15,7,1
SUP-0042,Global Parts,P-200,1,4.00,0,5,1
SUP-0007,Acme Supplies,P-300,1,2.25,50,10,1"""
    csv_path.write_text(content)
    return csv_path


@pytest.fixture
def sample_order_payload() -> dict:
    """Return a webhook-style order payload."""
    return {
        "order_number": 1001,
        "line_items": [
            {"product_id": "P-100", "title": "Widget", "quantity": 10, "variant_id": 501, "sku": "WID-1"},
            {"product_id": "P-300", "title": "Bolt pack", "quantity": 4, "variant_id": 502},
        ],
        "shipping_address": {
            "name": "Jane Doe",
            "address1": "1 Harbour St",
            "city": "Sydney",
            "province": "NSW",
            "zip": "2000",
            "country": "AU",
            "phone": "02 9999 0000",
            "latitude": -33.86,
        },
    }


@pytest.fixture
def sample_order(sample_order_payload):
    from models.order import SalesOrder
    return SalesOrder.from_payload(sample_order_payload)


@pytest.fixture
def test_db(test_config) -> "Database":
    """Provide a test database instance."""
    from pipeline.database import Database
    return Database(test_config.db_path)


@pytest.fixture
def sample_order_file(temp_dir: Path, sample_order_payload: dict) -> Path:
    orders_dir = temp_dir / "orders"
    orders_dir.mkdir(parents=True, exist_ok=True)
    path = orders_dir / "order_1001.json"
    path.write_text(json.dumps(sample_order_payload))
    return path


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
