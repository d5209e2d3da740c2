"""
Unit tests for heuristic line item matching.
"""
import pytest

from models.purchase_order import PurchaseOrder
from pipeline.line_item_matcher import (
    LineItemColumns,
    find_po_number,
    match_po_number,
    plan_line_items,
    sniff_po_column,
)

NOW = "2025-09-03T10:00:00+00:00"

HEADER = ["Type", "Date", "Document Number", "Name", "Created From", "Account", "Memo"]


def _pos(*numbers: str) -> list[PurchaseOrder]:
    return [PurchaseOrder(id=i, po_number=n) for i, n in enumerate(numbers, start=1)]


def _row(po_ref: str, memo: str = "Corn 50lb", account: str = "1300 Seed Inventory",
         date: str = "09/03/2025") -> list[str]:
    return ["Item Receipt", date, po_ref, "Acme Seeds", "", account, memo]


@pytest.mark.unit
class TestMatchPoNumber:
    """Tests for PO-number shape recognition."""

    @pytest.mark.parametrize("cell,expected", [
        ("PO10001", "PO10001"),
        ("po10001", "PO10001"),
        ("PO 10001", "PO10001"),
        ("PO#10001", "PO10001"),
        ("#10001", "PO10001"),
        ("10001", "PO10001"),
        ("1234", "PO1234"),
        (" PO123456 ", "PO123456"),
    ])
    def test_accepts_po_shapes(self, cell, expected):
        assert match_po_number(cell) == expected

    @pytest.mark.parametrize("cell", ["", "PO123", "PO1234567", "Acme Seeds", "09/03/2025", "Bill #1001x"])
    def test_rejects_other_cells(self, cell):
        assert match_po_number(cell) is None


@pytest.mark.unit
class TestColumnSniffing:
    """Tests for locating the PO-number column in a drifting layout."""

    def test_first_candidate_wins(self):
        rows = [_row("PO10001")]
        assert sniff_po_column(rows, [2, 3, 1, 4, 0]) == 2

    def test_shifted_layout_is_found(self):
        """An extra leading column moves the PO reference to column 3."""
        rows = [["x", "Item Receipt", "09/03/2025", "PO10001", "Acme"]]
        assert sniff_po_column(rows, [2, 3, 1, 4, 0]) == 3

    def test_no_match_returns_none(self):
        rows = [["a", "b", "c"]] * 5
        assert sniff_po_column(rows, [0, 1, 2]) is None

    def test_sample_limit(self):
        rows = [["a", "b", "c"]] * 3 + [["", "", "PO10001"]]
        assert sniff_po_column(rows, [2], sample=3) is None
        assert sniff_po_column(rows, [2], sample=4) == 2

    def test_each_row_is_rescanned(self):
        """The hint is tried first but other candidates still match."""
        assert find_po_number(["", "", "", "PO10002"], [2, 3], hint=2) == (3, "PO10002")
        assert find_po_number(["", "", "PO10001", "PO10002"], [2, 3], hint=3) == (3, "PO10002")


@pytest.mark.unit
class TestPlanLineItems:
    """Tests for plan_line_items."""

    def test_matching_rows_become_line_items(self):
        rows = [HEADER, _row("PO10001", memo="Corn 50lb"), _row("10002", memo="Soy 40lb")]

        plan = plan_line_items(rows, _pos("PO10001", "PO10002"), set(), "1300", NOW)

        assert [(i.po_id, i.po_number, i.memo) for i in plan.items] == [
            (1, "PO10001", "Corn 50lb"),
            (2, "PO10002", "Soy 40lb"),
        ]
        assert plan.items[0].date == "09/03/2025"
        assert plan.items[0].received is False
        assert plan.result.created == 2
        assert plan.po_column_hint == 2

    def test_account_filter(self):
        rows = [HEADER, _row("PO10001", account="5000 Freight")]

        plan = plan_line_items(rows, _pos("PO10001"), set(), "1300", NOW)

        assert plan.items == []
        assert plan.result.skip_reasons == {"account_mismatch": 1}

    def test_unknown_po_is_not_stored(self):
        rows = [HEADER, _row("PO99999")]

        plan = plan_line_items(rows, _pos("PO10001"), set(), "1300", NOW)

        assert plan.items == []
        assert plan.result.skip_reasons == {"po_not_found": 1}
        assert plan.result.diagnostics[0].po_number == "PO99999"

    def test_row_without_po_reference(self):
        rows = [HEADER, ["Journal", "09/03/2025", "JE-17", "", "", "1300 Seed Inventory", "Adjustment"]]

        plan = plan_line_items(rows, _pos("PO10001"), set(), "1300", NOW)

        assert plan.result.skip_reasons == {"no_po_match": 1}

    def test_missing_memo(self):
        rows = [HEADER, _row("PO10001", memo="")]

        plan = plan_line_items(rows, _pos("PO10001"), set(), "1300", NOW)

        assert plan.result.skip_reasons == {"missing_memo": 1}

    def test_existing_key_is_duplicate(self):
        rows = [HEADER, _row("PO10001", memo="Corn 50lb")]
        existing = {(1, "PO10001", "Corn 50lb", "09/03/2025")}

        plan = plan_line_items(rows, _pos("PO10001"), existing, "1300", NOW)

        assert plan.items == []
        assert plan.result.skip_reasons == {"duplicate": 1}

    def test_duplicates_within_one_file_collapse(self):
        rows = [HEADER, _row("PO10001"), _row("PO10001")]

        plan = plan_line_items(rows, _pos("PO10001"), set(), "1300", NOW)

        assert len(plan.items) == 1
        assert plan.result.skip_reasons == {"duplicate": 1}

    def test_same_memo_different_date_is_distinct(self):
        rows = [HEADER, _row("PO10001", date="09/03/2025"), _row("PO10001", date="09/04/2025")]

        plan = plan_line_items(rows, _pos("PO10001"), set(), "1300", NOW)

        assert len(plan.items) == 2

    def test_header_and_blank_rows_ignored(self):
        rows = [HEADER, [], ["", ""], _row("PO10001")]

        plan = plan_line_items(rows, _pos("PO10001"), set(), "1300", NOW)

        assert plan.result.processed == 1
        assert plan.result.created == 1

    def test_custom_columns(self):
        columns = LineItemColumns(po_candidates=[0], date=1, account=2, memo=3, data_start_row=0)
        rows = [["PO10001", "09/03/2025", "1300-01", "Wheat"]]

        plan = plan_line_items(rows, _pos("PO10001"), set(), "1300", NOW, columns=columns)

        assert plan.items[0].memo == "Wheat"
        assert plan.items[0].account == "1300-01"
