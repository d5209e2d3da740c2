"""
Central configuration for the ERP reconciliation pipeline.

All paths, export layouts, and import policies are defined here.
Override via environment variables or by passing a Config instance directly.

Settings priority (highest wins):
  1. Environment variables
  2. config/import_settings.json  (admin-editable, persisted)
  3. Hardcoded defaults in this file
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Project root (directory containing this file)
PROJECT_ROOT = Path(__file__).parent

# Default data locations (relative to project root)
DEFAULT_OUTPUT_DIR = PROJECT_ROOT / "output"
DEFAULT_DB_PATH    = DEFAULT_OUTPUT_DIR / "reconciler.db"
DEFAULT_UPLOAD_DIR = PROJECT_ROOT / "uploads"


def _int_list(raw: str) -> list[int]:
    return [int(part) for part in raw.split(",") if part.strip()]


@dataclass
class Config:
    # --- Storage ---
    db_path:   Path = field(
        default_factory=lambda: Path(os.getenv("DB_PATH", str(DEFAULT_DB_PATH)))
    )
    upload_dir: Path = field(
        default_factory=lambda: Path(os.getenv("UPLOAD_DIR", str(DEFAULT_UPLOAD_DIR)))
    )

    # Actor recorded on changes made by imports rather than people
    system_actor: str = field(
        default_factory=lambda: os.getenv("SYSTEM_ACTOR", "System")
    )

    # --- PO export layout (0-based row / column offsets) ---
    report_date_row:  int = 3
    report_date_col:  int = 0
    data_start_row:   int = 8
    total_sentinel:   str = "Total"
    po_date_col:      int = 1
    po_number_col:    int = 2
    po_vendor_col:    int = 3
    po_status_col:    int = 4
    po_amount_col:    int = 5
    po_location_col:  int = 6

    # strict_amounts=False → unparsable amounts import as 0.0 with a warning
    # strict_amounts=True  → the row is skipped as invalid_amount
    strict_amounts: bool = field(
        default_factory=lambda: os.getenv("STRICT_AMOUNTS", "false").lower() == "true"
    )

    # --- Line item export layout ---
    line_item_data_start_row: int = 1
    # Ranked candidate columns for the PO number; first match wins
    line_item_po_candidates: list[int] = field(
        default_factory=lambda: _int_list(os.getenv("LINE_ITEM_PO_COLUMNS", "2,3,1,4,0"))
    )
    line_item_date_col:    int = 1
    line_item_account_col: int = 5
    line_item_memo_col:    int = 6
    # Ledger account prefix for received seed inventory
    line_item_account_prefix: str = field(
        default_factory=lambda: os.getenv("LINE_ITEM_ACCOUNT_PREFIX", "1300")
    )

    def __post_init__(self) -> None:
        """Overlay runtime-tunable settings from import_settings.json if present."""
        config_dir = Path(os.getenv("CONFIG_DIR", str(PROJECT_ROOT / "config")))
        settings_file = config_dir / "import_settings.json"
        if not settings_file.exists():
            return
        _type_map: dict[str, type] = {
            "system_actor":              str,
            "report_date_row":           int,
            "data_start_row":            int,
            "total_sentinel":            str,
            "strict_amounts":            bool,
            "line_item_data_start_row":  int,
            "line_item_po_candidates":   list,
            "line_item_date_col":        int,
            "line_item_account_col":     int,
            "line_item_memo_col":        int,
            "line_item_account_prefix":  str,
        }
        try:
            with open(settings_file, encoding="utf-8") as f:
                overrides = {k: v for k, v in json.load(f).items() if not k.startswith("_")}
            for key, val in overrides.items():
                if key in _type_map and hasattr(self, key):
                    if _type_map[key] is list:
                        val = [int(v) for v in val]
                    setattr(self, key, _type_map[key](val))
        except Exception as exc:
            logger.warning("Failed to load import_settings.json: %s", exc)

    def ensure_dirs(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
