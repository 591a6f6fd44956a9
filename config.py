"""
Central configuration for the PO consolidation pipeline.

All paths, allocation knobs, and reorder thresholds are defined here.
Override via environment variables or by passing a Config instance directly.

Settings priority (highest wins):
  1. config/allocation_settings.json  (admin-editable, persisted)
  2. Environment variables
  3. Hardcoded defaults in this file
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from models.allocation import AllocationOptions
from pipeline.lead_time import BACKORDER_PENALTY_DAYS
from pipeline.reorder import DEFAULT_REORDER_POINT, DEFAULT_REORDER_QUANTITY

logger = logging.getLogger(__name__)

# Project root (directory containing this file)
PROJECT_ROOT = Path(__file__).parent

# Default data locations (relative to project root)
DEFAULT_CATALOG_CSV = PROJECT_ROOT / "data" / "catalog.csv"
DEFAULT_ORDERS_DIR  = PROJECT_ROOT / "orders"
DEFAULT_OUTPUT_DIR  = PROJECT_ROOT / "output"
DEFAULT_DB_PATH     = DEFAULT_OUTPUT_DIR / "consolidation.db"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("false", "0", "no", "off")


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "off")
    return bool(value)


@dataclass
class Config:
    # --- Data source paths ---
    catalog_csv: Path = field(
        default_factory=lambda: Path(os.getenv("CATALOG_CSV", str(DEFAULT_CATALOG_CSV)))
    )
    orders_dir: Path = field(
        default_factory=lambda: Path(os.getenv("ORDERS_DIR", str(DEFAULT_ORDERS_DIR)))
    )

    # --- Output settings ---
    output_dir: Path = field(
        default_factory=lambda: Path(os.getenv("OUTPUT_DIR", str(DEFAULT_OUTPUT_DIR)))
    )
    db_path: Path = field(
        default_factory=lambda: Path(os.getenv("DB_PATH", str(DEFAULT_DB_PATH)))
    )
    pretty_json: bool = True        # Indent JSON output for human readability

    # --- Single-supplier selection ---
    prioritize_stock: bool = field(
        default_factory=lambda: _env_bool("PRIORITIZE_STOCK", True)
    )
    prioritize_lead_time: bool = field(
        default_factory=lambda: _env_bool("PRIORITIZE_LEAD_TIME", True)
    )
    min_stock_threshold: int = field(
        default_factory=lambda: int(os.getenv("MIN_STOCK_THRESHOLD", "0"))
    )

    # --- Lead time ---
    backorder_penalty_days: int = field(
        default_factory=lambda: int(os.getenv("BACKORDER_PENALTY_DAYS", str(BACKORDER_PENALTY_DAYS)))
    )
    # Added to the worst-case lead time whenever part of a line is backordered.

    # --- Reorder monitoring ---
    reorder_point: int = field(
        default_factory=lambda: int(os.getenv("REORDER_POINT", str(DEFAULT_REORDER_POINT)))
    )
    reorder_quantity: int = field(
        default_factory=lambda: int(os.getenv("REORDER_QUANTITY", str(DEFAULT_REORDER_QUANTITY)))
    )

    def __post_init__(self) -> None:
        """Overlay runtime-tunable settings from allocation_settings.json if present."""
        config_dir = Path(os.getenv("CONFIG_DIR", str(PROJECT_ROOT / "config")))
        settings_file = config_dir / "allocation_settings.json"
        if not settings_file.exists():
            return
        _type_map = {
            "prioritize_stock":       _to_bool,
            "prioritize_lead_time":   _to_bool,
            "min_stock_threshold":    int,
            "backorder_penalty_days": int,
            "reorder_point":          int,
            "reorder_quantity":       int,
        }
        try:
            with open(settings_file, encoding="utf-8") as f:
                overrides = {k: v for k, v in json.load(f).items() if not k.startswith("_")}
            for key, val in overrides.items():
                if key in _type_map and hasattr(self, key):
                    setattr(self, key, _type_map[key](val))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load allocation_settings.json: %s", exc)

    @property
    def allocation_options(self) -> AllocationOptions:
        return AllocationOptions(
            prioritize_stock=self.prioritize_stock,
            prioritize_lead_time=self.prioritize_lead_time,
            min_stock_threshold=self.min_stock_threshold,
        )

    def ensure_output_dir(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
