"""
API tests for the FastAPI backend.
"""
import pytest
from fastapi.testclient import TestClient

from dashboard.app import app, get_config, get_db


@pytest.fixture
def client(test_config, test_db):
    app.dependency_overrides[get_config] = lambda: test_config
    app.dependency_overrides[get_db] = lambda: test_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded_client(client, seeded_db):
    return client


def _po_id(db, po_number: str) -> int:
    return db.get_purchase_order_by_number(po_number).id


@pytest.mark.api
class TestImportEndpoints:

    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["stats"]["total"] == 0

    def test_upload_purchase_orders(self, client, test_config, make_po_export, make_po_row):
        text = make_po_export([make_po_row("PO10001"), make_po_row("PO10002")])

        resp = client.post(
            "/api/import/purchase-orders",
            files={"file": ("open_pos.csv", text.encode(), "text/csv")},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["created"] == 2
        assert body["report_date"] == "As of September 2, 2025"
        # The upload is removed once the import is done
        assert list(test_config.upload_dir.iterdir()) == []

    def test_structural_error_is_400(self, client, test_config):
        resp = client.post(
            "/api/import/purchase-orders",
            files={"file": ("short.csv", b"a\nb\n", "text/csv")},
        )

        assert resp.status_code == 400
        assert list(test_config.upload_dir.iterdir()) == []

    def test_non_csv_rejected(self, client):
        resp = client.post(
            "/api/import/purchase-orders",
            files={"file": ("invoice.pdf", b"%PDF", "application/pdf")},
        )
        assert resp.status_code == 400

    def test_empty_upload_rejected(self, client):
        resp = client.post(
            "/api/import/line-items",
            files={"file": ("empty.csv", b"", "text/csv")},
        )
        assert resp.status_code == 400

    def test_upload_line_items(self, seeded_client, make_line_item_export, make_line_row):
        text = make_line_item_export([make_line_row("PO10001", "Corn 50lb")])

        resp = seeded_client.post(
            "/api/import/line-items",
            files={"file": ("detail.csv", text.encode(), "text/csv")},
        )

        assert resp.status_code == 200
        assert resp.json()["created"] == 1
        assert resp.json()["kind"] == "line_items"


@pytest.mark.api
class TestPurchaseOrderEndpoints:

    def test_list_and_get(self, seeded_client, seeded_db):
        resp = seeded_client.get("/api/purchase-orders")
        assert resp.status_code == 200
        assert {p["po_number"] for p in resp.json()} == {"PO10001", "PO10002"}

        po_id = _po_id(seeded_db, "PO10001")
        resp = seeded_client.get(f"/api/purchase-orders/{po_id}")
        assert resp.json()["system"]["amount"] == pytest.approx(1234.56)

    def test_get_unknown_is_404(self, client):
        assert client.get("/api/purchase-orders/999").status_code == 404

    def test_patch_local_fields(self, seeded_client, seeded_db):
        po_id = _po_id(seeded_db, "PO10001")

        resp = seeded_client.patch(
            f"/api/purchase-orders/{po_id}",
            json={"changes": {"status": "On Hold", "priority": 1}, "user": "jsmith"},
        )

        assert resp.status_code == 200
        assert resp.json()["local"]["status"] == "On Hold"
        assert len(seeded_db.list_notes(po_id)) == 2

    def test_patch_system_field_is_400(self, seeded_client, seeded_db):
        po_id = _po_id(seeded_db, "PO10001")

        resp = seeded_client.patch(f"/api/purchase-orders/{po_id}", json={"changes": {"vendor": "X"}})

        assert resp.status_code == 400
        assert seeded_db.get_purchase_order(po_id).system.vendor == "Acme Seeds"

    def test_patch_invalid_value_is_400(self, seeded_client, seeded_db):
        po_id = _po_id(seeded_db, "PO10001")
        resp = seeded_client.patch(f"/api/purchase-orders/{po_id}", json={"changes": {"priority": 7}})
        assert resp.status_code == 400

    def test_hide_and_unhide(self, seeded_client, seeded_db):
        po_id = _po_id(seeded_db, "PO10002")

        resp = seeded_client.post(f"/api/purchase-orders/{po_id}/hide", json={"reason": "Completed"})
        assert resp.json()["visibility"]["hidden_reason"] == "Completed"
        listed = seeded_client.get("/api/purchase-orders").json()
        assert [p["po_number"] for p in listed] == ["PO10001"]
        hidden = seeded_client.get("/api/purchase-orders", params={"hidden_only": True}).json()
        assert [p["po_number"] for p in hidden] == ["PO10002"]

        resp = seeded_client.post(f"/api/purchase-orders/{po_id}/unhide", json={})
        assert resp.json()["visibility"]["is_hidden"] is False


@pytest.mark.api
class TestNoteEndpoints:

    def test_append_list_delete(self, seeded_client, seeded_db):
        po_id = _po_id(seeded_db, "PO10001")

        first = seeded_client.post(f"/api/purchase-orders/{po_id}/notes", json={"content": "First"})
        second = seeded_client.post(f"/api/purchase-orders/{po_id}/notes", json={"content": "Second"})
        assert first.status_code == 201

        notes = seeded_client.get(f"/api/purchase-orders/{po_id}/notes").json()
        assert [n["content"] for n in notes] == ["Second", "First"]

        resp = seeded_client.delete(f"/api/notes/{second.json()['id']}")
        assert resp.status_code == 200
        assert seeded_db.get_purchase_order(po_id).local.notes == "First"

    def test_blank_note_rejected(self, seeded_client, seeded_db):
        po_id = _po_id(seeded_db, "PO10001")
        resp = seeded_client.post(f"/api/purchase-orders/{po_id}/notes", json={"content": "  "})
        assert resp.status_code == 400

    def test_delete_unknown_note_is_404(self, client):
        assert client.delete("/api/notes/999").status_code == 404

    def test_anonymous_delete_credited_to_configured_actor(self, seeded_client, seeded_db, test_config):
        test_config.system_actor = "ERP Sync"
        po_id = _po_id(seeded_db, "PO10001")
        note = seeded_client.post(f"/api/purchase-orders/{po_id}/notes", json={"content": "Temp"}).json()

        seeded_client.delete(f"/api/notes/{note['id']}")

        assert seeded_db.get_purchase_order(po_id).last_updated_by == "ERP Sync"


@pytest.mark.api
class TestLineItemEndpoints:

    def test_list_and_receive(self, seeded_client, seeded_db, importer, make_line_item_export, make_line_row):
        importer.import_line_items_text(make_line_item_export([make_line_row("PO10001", "Corn 50lb")]))
        po_id = _po_id(seeded_db, "PO10001")

        items = seeded_client.get(f"/api/purchase-orders/{po_id}/line-items").json()
        assert [i["memo"] for i in items] == ["Corn 50lb"]

        resp = seeded_client.patch(f"/api/line-items/{items[0]['id']}", json={"received": True, "user": "jsmith"})
        assert resp.status_code == 200
        assert resp.json()["received"] is True
        assert resp.json()["received_by"] == "jsmith"

    def test_unknown_line_item_is_404(self, client):
        assert client.patch("/api/line-items/999", json={"received": True}).status_code == 404
