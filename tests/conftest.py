"""
Pytest configuration and shared fixtures for the PO reconciler test suite.
"""
import csv
import io
import os
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
os.chdir(PROJECT_ROOT)

REPORT_DATE = "As of September 2, 2025"


def _to_csv(rows: list[list[str]]) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerows(rows)
    return buf.getvalue()


def build_po_export(data_rows: list[list[str]], report_date: str = REPORT_DATE, total: bool = True) -> str:
    """
    Render a PO export in the ERP report layout: title rows, the report date
    at row 3, column headings, data from row 8, then a Total row.
    """
    rows = [
        ["Open Purchase Orders"],
        ["Acme Farms"],
        [""],
        [report_date],
        [""],
        [""],
        ["", "Date", "Document Number", "Name", "Status", "Amount", "Location"],
        [""],
    ]
    rows.extend(data_rows)
    if total:
        rows.append(["Total", "", "", "", "", "$0.00", ""])
    return _to_csv(rows)


def po_row(po_number: str, vendor: str = "Acme Seeds", status: str = "Pending Receipt",
           amount: str = "$1,000.00", date: str = "09/01/2025", location: str = "Main") -> list[str]:
    return ["", date, po_number, vendor, status, amount, location]


def build_line_item_export(data_rows: list[list[str]]) -> str:
    """Render a transaction detail export: one header row, then data."""
    rows = [["Type", "Date", "Document Number", "Name", "Created From", "Account", "Memo"]]
    rows.extend(data_rows)
    return _to_csv(rows)


def line_row(po_ref: str, memo: str, account: str = "1300 Seed Inventory",
             date: str = "09/03/2025") -> list[str]:
    return ["Item Receipt", date, po_ref, "Acme Seeds", "", account, memo]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for test files."""
    tmp_path = tempfile.mkdtemp(prefix="reconciler_test_")
    yield Path(tmp_path)
    shutil.rmtree(tmp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path, monkeypatch) -> "Config":
    """Provide a test configuration with isolated directories."""
    from config import Config

    # Keep a developer's import_settings.json out of the tests
    monkeypatch.setenv("CONFIG_DIR", str(temp_dir / "config"))
    config = Config()
    config.db_path = temp_dir / "output" / "reconciler.db"
    config.upload_dir = temp_dir / "uploads"
    config.system_actor = "System"
    config.strict_amounts = False
    config.line_item_po_candidates = [2, 3, 1, 4, 0]
    config.line_item_account_prefix = "1300"
    config.ensure_dirs()
    return config


@pytest.fixture
def test_db(test_config) -> "Database":
    """Provide a test database instance."""
    from pipeline.database import Database
    return Database(test_config.db_path)


@pytest.fixture
def importer(test_config, test_db) -> "Importer":
    from pipeline.importer import Importer
    return Importer(test_config, test_db)


@pytest.fixture
def seeded_db(importer, test_db):
    """Database holding PO10001 and PO10002 from one import."""
    importer.import_purchase_orders_text(build_po_export([
        po_row("PO10001", amount="$1,234.56"),
        po_row("PO10002", vendor="Valley Growers", status="Partially Received", amount="$500.00"),
    ]))
    return test_db


@pytest.fixture
def make_po_export():
    return build_po_export


@pytest.fixture
def make_po_row():
    return po_row


@pytest.fixture
def make_line_item_export():
    return build_line_item_export


@pytest.fixture
def make_line_row():
    return line_row


@pytest.fixture
def sample_po_csv(temp_dir: Path) -> Path:
    """Write a sample PO export to disk."""
    csv_path = temp_dir / "open_pos.csv"
    csv_path.write_text(build_po_export([
        po_row("PO10001", amount="$1,234.56"),
        po_row("PO10002", vendor="Valley Growers", amount="$500.00"),
    ]), encoding="utf-8")
    return csv_path


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API tests")
    config.addinivalue_line("markers", "slow: Slow tests")
