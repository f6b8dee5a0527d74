"""
Inventory API tests.

Verifies:
- Item creation books the opening balance as an entry
- Quantity cannot be patched directly
- Ledger endpoints return 201 {transaction, inventory} and map errors to 4xx
- Critical list and date-range transaction queries
"""

import pytest

from farmpro.extensions import db
from farmpro.models import InventoryItem, InventoryTransaction


@pytest.fixture
def editor_headers(inventory_editor, login):
    return login(inventory_editor)


class TestCreateItem:

    def test_create_with_initial_stock(self, client, farm, editor_headers):
        resp = client.post(
            f"/api/farms/{farm.id}/inventory",
            json={"name": "Milho", "category": "feed", "unit": "kg", "minimumLevel": 50, "quantity": 250},
            headers=editor_headers,
        )
        assert resp.status_code == 201
        item = resp.json["item"]
        assert item["quantity"] == 250.0
        assert item["minimum_level"] == 50.0
        assert item["farm_id"] == farm.id

        txs = db.session.query(InventoryTransaction).filter_by(item_id=item["id"]).all()
        assert len(txs) == 1
        assert txs[0].notes == "Estoque inicial"
        assert txs[0].previous_balance == 0
        assert txs[0].new_balance == 250

    def test_create_without_stock_has_no_transactions(self, client, farm, editor_headers):
        resp = client.post(
            f"/api/farms/{farm.id}/inventory",
            json={"name": "Vermifugo", "category": "medicine", "unit": "ml"},
            headers=editor_headers,
        )
        assert resp.status_code == 201
        assert resp.json["item"]["quantity"] == 0.0
        assert db.session.query(InventoryTransaction).filter_by(item_id=resp.json["item"]["id"]).count() == 0

    def test_farm_id_in_body_is_ignored(self, client, farm, other_farm, editor_headers):
        resp = client.post(
            f"/api/farms/{farm.id}/inventory",
            json={"name": "Sal", "category": "mineral", "unit": "kg", "farmId": other_farm.id},
            headers=editor_headers,
        )
        assert resp.status_code == 201
        assert resp.json["item"]["farm_id"] == farm.id

    @pytest.mark.parametrize(
        "payload,message",
        [
            ({"name": "Sal", "category": "mineral"}, "Missing required fields: unit"),
            ({"name": "Sal", "category": "mineral", "unit": "kg", "color": "white"}, "Field not allowed: color"),
            ({"name": "  ", "category": "mineral", "unit": "kg"}, "name cannot be blank"),
            ({"name": "Sal", "category": "mineral", "unit": "kg", "minimumLevel": -1}, "minimum_level must be >= 0"),
            ({"name": "Sal", "category": "mineral", "unit": "kg", "quantity": -5}, "Initial quantity cannot be negative"),
            ({"name": "Sal", "category": "mineral", "unit": "kg", "quantity": "lots"}, "quantity must be a number"),
        ],
    )
    def test_invalid_payload(self, client, farm, editor_headers, payload, message):
        resp = client.post(f"/api/farms/{farm.id}/inventory", json=payload, headers=editor_headers)
        assert resp.status_code == 400
        assert resp.json["message"] == message

    def test_reader_cannot_create(self, client, farm, inventory_reader, login):
        resp = client.post(
            f"/api/farms/{farm.id}/inventory",
            json={"name": "Sal", "category": "mineral", "unit": "kg"},
            headers=login(inventory_reader),
        )
        assert resp.status_code == 403


class TestListAndUpdate:

    def test_list_with_category_filter(self, client, farm, feed_item, editor_headers):
        client.post(
            f"/api/farms/{farm.id}/inventory",
            json={"name": "Ivermectina", "category": "medicine", "unit": "ml"},
            headers=editor_headers,
        )
        resp = client.get(f"/api/farms/{farm.id}/inventory?category=medicine", headers=editor_headers)
        assert resp.status_code == 200
        assert [i["name"] for i in resp.json["items"]] == ["Ivermectina"]

    def test_patch_descriptive_fields(self, client, feed_item, editor_headers):
        resp = client.patch(
            f"/api/inventory/{feed_item.id}",
            json={"name": "Ração engorda", "minimumLevel": 150},
            headers=editor_headers,
        )
        assert resp.status_code == 200
        assert resp.json["item"]["name"] == "Ração engorda"
        assert resp.json["item"]["minimum_level"] == 150.0
        assert resp.json["item"]["quantity"] == 500.0

    @pytest.mark.parametrize("field", ["quantity", "_quantity", "version_id", "farm_id", "farmId"])
    def test_patch_rejects_protected_fields(self, client, feed_item, editor_headers, field):
        resp = client.patch(f"/api/inventory/{feed_item.id}", json={field: 9999}, headers=editor_headers)
        assert resp.status_code == 400
        db.session.expire_all()
        assert feed_item.quantity == 500

    def test_patch_cannot_move_item_between_farms(self, client, feed_item, editor_headers):
        resp = client.patch(f"/api/inventory/{feed_item.id}", json={"farm_id": 9999}, headers=editor_headers)
        assert resp.status_code == 400
        assert resp.json["message"] == "Field not allowed: farm_id"
        db.session.expire_all()
        assert db.session.get(InventoryItem, feed_item.id).farm_id == feed_item.farm_id

    def test_get_item(self, client, feed_item, editor_headers):
        resp = client.get(f"/api/inventory/{feed_item.id}", headers=editor_headers)
        assert resp.status_code == 200
        assert resp.json["item"]["name"] == "Ração"
        assert resp.json["item"]["is_critical"] is False


class TestLedgerEndpoints:

    def test_entry(self, client, feed_item, editor_headers):
        resp = client.post(
            f"/api/inventory/{feed_item.id}/entry",
            json={"quantity": 200, "unitPrice": 2.5, "documentNumber": "NF-77", "notes": "Compra"},
            headers=editor_headers,
        )
        assert resp.status_code == 201
        tx = resp.json["transaction"]
        assert tx["type"] == "IN"
        assert tx["quantity"] == 200.0
        assert tx["previous_balance"] == 500.0
        assert tx["new_balance"] == 700.0
        assert tx["total_price"] == 500.0
        assert tx["document_number"] == "NF-77"
        assert resp.json["inventory"]["quantity"] == 700.0

    def test_withdrawal_insufficient_stock(self, client, feed_item, editor_headers):
        resp = client.post(
            f"/api/inventory/{feed_item.id}/withdrawal",
            json={"quantity": 800},
            headers=editor_headers,
        )
        assert resp.status_code == 409
        assert resp.json["error"] == "INSUFFICIENT_STOCK"
        assert resp.json["item_id"] == feed_item.id
        assert resp.json["current_balance"] == 500.0
        assert resp.json["requested"] == 800.0
        assert db.session.query(InventoryTransaction).filter_by(item_id=feed_item.id).count() == 1

    def test_adjustment(self, client, feed_item, editor_headers):
        resp = client.post(
            f"/api/inventory/{feed_item.id}/adjustment",
            json={"newQuantity": 450},
            headers=editor_headers,
        )
        assert resp.status_code == 201
        assert resp.json["transaction"]["type"] == "ADJUST"
        assert resp.json["transaction"]["quantity"] == 50.0
        assert resp.json["transaction"]["notes"] == "Ajuste de estoque: -50 kg"
        assert resp.json["inventory"]["quantity"] == 450.0

    @pytest.mark.parametrize(
        "action,payload,message",
        [
            ("entry", {}, "quantity must be a number"),
            ("entry", {"quantity": 0}, "Quantity must be greater than zero"),
            ("withdrawal", {"quantity": "x"}, "quantity must be a number"),
            ("withdrawal", {"quantity": -1}, "Quantity must be greater than zero"),
            ("adjustment", {}, "new_quantity must be a number"),
            ("adjustment", {"newQuantity": -3}, "New quantity cannot be negative"),
        ],
    )
    def test_invalid_arguments(self, client, feed_item, editor_headers, action, payload, message):
        resp = client.post(f"/api/inventory/{feed_item.id}/{action}", json=payload, headers=editor_headers)
        assert resp.status_code == 400
        assert resp.json["message"] == message
        assert resp.json["error"] == "INVALID_ARGUMENT"

    def test_non_object_body(self, client, feed_item, editor_headers):
        resp = client.post(f"/api/inventory/{feed_item.id}/entry", json=[1, 2], headers=editor_headers)
        assert resp.status_code == 400

    def test_item_history_newest_first(self, client, feed_item, editor_headers):
        client.post(f"/api/inventory/{feed_item.id}/withdrawal", json={"quantity": 20}, headers=editor_headers)
        client.post(f"/api/inventory/{feed_item.id}/entry", json={"quantity": 5}, headers=editor_headers)

        resp = client.get(f"/api/inventory/{feed_item.id}/transactions", headers=editor_headers)
        assert resp.status_code == 200
        assert [t["type"] for t in resp.json["transactions"]] == ["IN", "OUT", "IN"]

        limited = client.get(f"/api/inventory/{feed_item.id}/transactions?limit=1", headers=editor_headers)
        assert limited.json["count"] == 1


class TestCriticalAndRanges:

    def test_critical_items(self, client, farm, feed_item, editor_headers):
        resp = client.get(f"/api/farms/{farm.id}/inventory/critical", headers=editor_headers)
        assert resp.json["count"] == 0

        client.post(f"/api/inventory/{feed_item.id}/withdrawal", json={"quantity": 400}, headers=editor_headers)

        resp = client.get(f"/api/farms/{farm.id}/inventory/critical", headers=editor_headers)
        assert resp.status_code == 200
        assert [i["id"] for i in resp.json["items"]] == [feed_item.id]
        assert resp.json["items"][0]["is_critical"] is True

    def test_farm_transactions_range(self, client, farm, feed_item, editor_headers):
        url = f"/api/farms/{farm.id}/inventory/transactions"

        resp = client.get(f"{url}?from=2000-01-01&to=2999-12-31", headers=editor_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1

        resp = client.get(f"{url}?from=2999-01-01", headers=editor_headers)
        assert resp.json["count"] == 0

        resp = client.get(f"{url}?to=2000-01-01", headers=editor_headers)
        assert resp.json["count"] == 0

    def test_farm_transactions_bad_range(self, client, farm, editor_headers):
        url = f"/api/farms/{farm.id}/inventory/transactions"

        resp = client.get(f"{url}?from=2024-05-01&to=2024-04-01", headers=editor_headers)
        assert resp.status_code == 400
        assert resp.json["message"] == "from must not be after to"

        resp = client.get(f"{url}?from=yesterday", headers=editor_headers)
        assert resp.status_code == 400

    def test_other_farm_transactions_hidden(self, client, other_farm, feed_item, editor_headers):
        resp = client.get(f"/api/farms/{other_farm.id}/inventory/transactions", headers=editor_headers)
        assert resp.status_code == 403
