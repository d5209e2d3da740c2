"""
Integration tests for the command-line interface.
"""
import pytest
from click.testing import CliRunner

from main import cli


@pytest.fixture
def run(test_config):
    runner = CliRunner()

    def _run(*args):
        return runner.invoke(cli, ["--db", str(test_config.db_path), *args])

    return _run


@pytest.mark.integration
class TestCli:

    def test_import_and_list(self, run, sample_po_csv):
        result = run("import-pos", str(sample_po_csv))
        assert result.exit_code == 0, result.output
        assert "Created:      2" in result.output

        result = run("list")
        assert "PO10001" in result.output
        assert "2 purchase order(s)" in result.output

    def test_structural_error_exits_nonzero(self, run, temp_dir):
        short = temp_dir / "short.csv"
        short.write_text("a\nb\n")

        result = run("import-pos", str(short))

        assert result.exit_code == 1

    def test_hide_unhide_and_notes(self, run, sample_po_csv):
        run("import-pos", str(sample_po_csv))

        assert run("hide", "PO10002", "--reason", "Completed").exit_code == 0
        assert "PO10002" not in run("list").output
        assert "PO10002" in run("list", "--hidden-only").output

        assert run("unhide", "PO10002").exit_code == 0
        result = run("notes", "PO10002")
        assert "Hidden Reason: Completed → None" in result.output

    def test_add_note(self, run, sample_po_csv):
        run("import-pos", str(sample_po_csv))

        assert run("add-note", "PO10001", "Called vendor", "--user", "jsmith").exit_code == 0
        assert "Called vendor" in run("notes", "PO10001").output

    def test_unknown_po(self, run):
        assert run("notes", "PO99999").exit_code == 1
