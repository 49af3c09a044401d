# Overview: Pytest coverage for the JSON HTTP surface and its error-to-status mapping.

import pytest

from stockflow.ledger import serialization
from stockflow.models import LedgerSnapshot


def _url(org, path):
    return f"/api/orgs/{org.id}{path}"


@pytest.fixture
def widget_id(client, org_a):
    resp = client.post(_url(org_a, "/products"), json={"name": "Widget", "category": "Electronics"})
    assert resp.status_code == 201
    return resp.get_json()["id"]


@pytest.fixture
def stocked(client, org_a, store_a, widget_id):
    resp = client.post(_url(org_a, "/bills"), json={
        "type": "purchase",
        "store_id": store_a.id,
        "counterparty_name": "Acme Supplies",
        "items": [{"product_id": widget_id, "quantity": 10, "unit_cost_cents": 500, "unit_sell_price_cents": 800}],
    })
    assert resp.status_code == 201
    return resp.get_json()


class TestHealth:
    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"


class TestTenantContext:
    def test_unknown_org_is_404(self, client, db_session):
        resp = client.get("/api/orgs/999/products")
        assert resp.status_code == 404

    def test_inactive_org_is_404(self, client, db_session, org_a):
        org_a.is_active = False
        db_session.commit()
        assert client.get(_url(org_a, "/products")).status_code == 404

    def test_unloadable_ledger_is_503_and_kept(self, client, db_session, org_a, monkeypatch):
        payload = {"schema_version": 1, "products": [{"id": "p1", "name": "Widget"}]}
        db_session.add(LedgerSnapshot(org_id=org_a.id, schema_version=1, payload=payload))
        db_session.commit()

        def broken(raw, id_factory=None):
            raise RuntimeError("corrupt document")

        monkeypatch.setattr(serialization, "repair_state", broken)

        assert client.get(_url(org_a, "/products")).status_code == 503
        assert client.post(_url(org_a, "/categories"), json={"name": "Garden"}).status_code == 503
        db_session.expire_all()
        row = db_session.query(LedgerSnapshot).filter_by(org_id=org_a.id).first()
        assert row.payload == payload

    def test_foreign_store_is_403(self, client, org_a, store_b, widget_id):
        resp = client.post(_url(org_a, "/bills"), json={
            "type": "purchase",
            "store_id": store_b.id,
            "items": [{"product_id": widget_id, "quantity": 1, "unit_cost_cents": 100}],
        })
        assert resp.status_code == 403

    def test_unknown_store_is_404(self, client, org_a, widget_id):
        resp = client.get(_url(org_a, f"/products/{widget_id}?store_id=98765"))
        assert resp.status_code == 404


class TestStores:
    def test_create_and_list(self, client, org_a, org_b):
        resp = client.post(_url(org_a, "/stores"), json={"name": "Downtown", "code": "DT"})
        assert resp.status_code == 201
        assert resp.get_json()["org_id"] == org_a.id

        assert [s["name"] for s in client.get(_url(org_a, "/stores")).get_json()] == ["Downtown"]
        assert client.get(_url(org_b, "/stores")).get_json() == []

    def test_duplicate_name_is_400(self, client, org_a, store_a):
        resp = client.post(_url(org_a, "/stores"), json={"name": store_a.name})
        assert resp.status_code == 400


class TestProducts:
    def test_create_validates_payload(self, client, org_a):
        assert client.post(_url(org_a, "/products"), json={"category": "Toys"}).status_code == 400
        assert client.post(_url(org_a, "/products"), json={"name": "X", "price": 5}).status_code == 400
        assert client.post(_url(org_a, "/products"), json={"name": "X", "track_quantity": "maybe"}).status_code == 400

    def test_create_with_variants(self, client, org_a):
        resp = client.post(_url(org_a, "/products"), json={
            "name": "T-Shirt",
            "variants": [
                {"name": "Size", "options": ["S", "M"]},
                {"name": "Color", "options": [{"value": "Red"}, {"value": "Blue"}]},
            ],
        })
        assert resp.status_code == 201
        product = resp.get_json()
        assert [v["name"] for v in product["variants"]] == ["Size", "Color"]
        assert product["skus"] == []

        resp = client.post(
            _url(org_a, f"/products/{product['id']}/skus/resolve"),
            json={"option_values": {"Size": "M", "Color": "Red"}},
        )
        assert resp.status_code == 200
        assert resp.get_json()["identifier"] == "T-Shirt (Red, M)"

        resp = client.post(
            _url(org_a, f"/products/{product['id']}/skus/resolve"),
            json={"option_values": {"Size": "XL"}},
        )
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "invalid_input"

    def test_bill_must_choose_every_variant(self, client, org_a, store_a):
        product = client.post(_url(org_a, "/products"), json={
            "name": "T-Shirt",
            "variants": [{"name": "Size", "options": ["S", "M"]}, {"name": "Color", "options": ["Red"]}],
        }).get_json()

        resp = client.post(_url(org_a, "/bills"), json={
            "type": "purchase",
            "store_id": store_a.id,
            "items": [{
                "product_id": product["id"], "quantity": 2, "unit_cost_cents": 700,
                "option_values": {"Size": "M"},
            }],
        })
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["kind"] == "invalid_input"
        assert body["details"]["missing_variants"] == ["Color"]
        assert body["details"]["item_index"] == 0
        assert client.get(_url(org_a, f"/products/{product['id']}")).get_json()["skus"] == []

    def test_list_and_search(self, client, org_a, widget_id):
        client.post(_url(org_a, "/products"), json={"name": "Gadget"})
        assert len(client.get(_url(org_a, "/products")).get_json()) == 2
        found = client.get(_url(org_a, "/products?q=widg")).get_json()
        assert [p["id"] for p in found] == [widget_id]

    def test_detail_includes_sku_summaries(self, client, org_a, store_a, widget_id, stocked):
        resp = client.get(_url(org_a, f"/products/{widget_id}?store_id={store_a.id}"))
        assert resp.status_code == 200
        sku = resp.get_json()["skus"][0]
        assert sku["total_stock"] == 10
        assert sku["average_cost_cents"] == 500
        assert sku["current_sell_price_cents"] == 800
        assert sku["store_id"] == str(store_a.id)

    def test_patch(self, client, org_a, widget_id):
        resp = client.patch(_url(org_a, f"/products/{widget_id}"), json={"name": "Widget Pro", "description": ""})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["name"] == "Widget Pro"
        assert body["skus"][0]["identifier"] == "Widget Pro"

    def test_unknown_product_is_404(self, client, org_a):
        resp = client.get(_url(org_a, "/products/nope"))
        assert resp.status_code == 404
        assert resp.get_json()["kind"] == "not_found"

    def test_delete(self, client, org_a, widget_id, stocked):
        assert client.delete(_url(org_a, f"/products/{widget_id}")).status_code == 422

        resp = client.post(_url(org_a, "/products"), json={"name": "Gadget"})
        gadget_id = resp.get_json()["id"]
        resp = client.delete(_url(org_a, f"/products/{gadget_id}"))
        assert resp.status_code == 200
        assert resp.get_json() == {"deleted": gadget_id}

    def test_product_bills(self, client, org_a, widget_id, stocked):
        bills = client.get(_url(org_a, f"/products/{widget_id}/bills")).get_json()
        assert [b["id"] for b in bills] == [stocked["id"]]

    def test_standing_price(self, client, org_a, store_a, widget_id):
        resp = client.post(_url(org_a, "/products"), json={
            "name": "Gift Wrap", "track_quantity": False, "standing_sell_price_cents": 300,
        })
        product = resp.get_json()
        sku_id = product["skus"][0]["id"]

        resp = client.put(
            _url(org_a, f"/products/{product['id']}/skus/{sku_id}/standing-price"),
            json={"store_id": store_a.id, "sell_price_cents": 350},
        )
        assert resp.status_code == 200
        assert resp.get_json()["unit_sell_price_cents"] == 350

        resp = client.put(
            _url(org_a, f"/products/{widget_id}/skus/{sku_id}/standing-price"),
            json={"sell_price_cents": 350},
        )
        assert resp.status_code == 404

        resp = client.put(
            _url(org_a, f"/products/{product['id']}/skus/{sku_id}/standing-price"), json={},
        )
        assert resp.status_code == 400

    def test_categories(self, client, org_a):
        resp = client.post(_url(org_a, "/categories"), json={"name": "Garden"})
        assert resp.status_code == 201
        assert resp.get_json() == {"name": "Garden"}
        assert client.get(_url(org_a, "/categories?q=gard")).get_json() == ["Garden"]


class TestBills:
    def test_commit_purchase(self, client, stocked, store_a):
        assert stocked["id"] == "P-000001"
        assert stocked["type"] == "purchase"
        assert stocked["total_amount_cents"] == 5000
        assert stocked["store_id"] == str(store_a.id)

    def test_sale_then_insufficient_stock(self, client, org_a, store_a, widget_id, stocked):
        resp = client.post(_url(org_a, "/bills"), json={
            "type": "sale",
            "store_id": store_a.id,
            "payment_status": "PAID",
            "items": [{"product_id": widget_id, "quantity": 4}],
        })
        assert resp.status_code == 201
        sale = resp.get_json()
        assert sale["total_amount_cents"] == 3200
        assert sale["payment_status"] == "paid"

        resp = client.post(_url(org_a, "/bills"), json={
            "type": "sale",
            "store_id": store_a.id,
            "items": [{"product_id": widget_id, "quantity": 1}, {"product_id": widget_id, "quantity": 7}],
        })
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["kind"] == "insufficient_stock"
        assert body["details"]["item_index"] == 1
        assert body["details"]["available"] == 5

    def test_sale_in_other_store_has_no_stock(self, client, org_a, store_a2, widget_id, stocked):
        resp = client.post(_url(org_a, "/bills"), json={
            "type": "sale",
            "store_id": store_a2.id,
            "items": [{"product_id": widget_id, "quantity": 1}],
        })
        assert resp.status_code == 409

    @pytest.mark.parametrize("payload", [
        {"type": "sale", "items": []},
        {"type": "sale"},
        {"type": "sale", "items": [{"product_id": "x", "quantity": 1.5}]},
        {"type": "sale", "items": [{"product_id": "x", "quantity": 1, "discount": 3}]},
        {"type": "gift", "items": [{"product_id": "x", "quantity": 1}]},
    ])
    def test_invalid_payloads_are_400(self, client, org_a, payload):
        assert client.post(_url(org_a, "/bills"), json=payload).status_code == 400

    def test_purchase_of_non_tracked_is_422(self, client, org_a):
        resp = client.post(_url(org_a, "/products"), json={"name": "Consulting", "track_quantity": False})
        product_id = resp.get_json()["id"]
        resp = client.post(_url(org_a, "/bills"), json={
            "type": "purchase",
            "items": [{"product_id": product_id, "quantity": 1, "unit_cost_cents": 100}],
        })
        assert resp.status_code == 422
        assert resp.get_json()["kind"] == "unsupported_operation"

    def test_list_get_delete(self, client, org_a, stocked):
        listing = client.get(_url(org_a, "/bills?limit=5&type=purchase")).get_json()
        assert [b["id"] for b in listing] == [stocked["id"]]

        assert client.get(_url(org_a, f"/bills/{stocked['id']}")).status_code == 200
        assert client.get(_url(org_a, "/bills/P-999999")).status_code == 404

        resp = client.delete(_url(org_a, f"/bills/{stocked['id']}"))
        assert resp.status_code == 200
        assert resp.get_json() == {"deleted": stocked["id"]}
        assert client.get(_url(org_a, "/bills")).get_json() == []

    def test_bad_limit_is_400(self, client, org_a):
        assert client.get(_url(org_a, "/bills?limit=abc")).status_code == 400

    def test_orgs_do_not_share_bills(self, client, org_a, org_b, stocked):
        assert client.get(_url(org_b, f"/bills/{stocked['id']}")).status_code == 404


class TestInventory:
    def test_sku_summary_and_layers(self, client, org_a, store_a, widget_id, stocked):
        sku_id = stocked["items"][0]["sku_id"]
        summary = client.get(_url(org_a, f"/inventory/skus/{sku_id}")).get_json()
        assert summary["total_stock"] == 10
        assert summary["inventory_value_cents"] == 5000

        none_scope = client.get(_url(org_a, f"/inventory/skus/{sku_id}?store_id=none")).get_json()
        assert none_scope["total_stock"] == 0

        layers = client.get(_url(org_a, f"/inventory/skus/{sku_id}/layers?store_id={store_a.id}")).get_json()
        assert [(l["initial_quantity"], l["remaining_quantity"]) for l in layers] == [(10, 10)]
        assert layers[0]["bill_id"] == stocked["id"]

    def test_unknown_sku_is_404(self, client, org_a):
        assert client.get(_url(org_a, "/inventory/skus/nope")).status_code == 404


class TestReports:
    def test_reports(self, client, org_a, store_a, widget_id, stocked):
        client.post(_url(org_a, "/bills"), json={
            "type": "sale", "store_id": store_a.id, "items": [{"product_id": widget_id, "quantity": 4}],
        })

        low = client.get(_url(org_a, "/reports/low-stock?threshold=7")).get_json()
        assert low["count"] == 1
        assert low["items"][0]["total_stock"] == 6

        valuation = client.get(_url(org_a, "/reports/inventory-valuation")).get_json()
        assert valuation["total_value_cents"] == 3000

        summary = client.get(_url(org_a, "/reports/financial-summary")).get_json()
        assert summary["revenue_cents"] == 3200
        assert summary["cogs_cents"] == 2000
        assert summary["expenses_cents"] == 5000

        today = client.get(_url(org_a, "/reports/today")).get_json()
        assert today["transaction_count"] == 2

        daily = client.get(_url(org_a, "/reports/daily?days=3")).get_json()
        assert len(daily) == 3
        assert daily[-1]["sales_cents"] == 3200

        top = client.get(_url(org_a, "/reports/top-selling")).get_json()
        assert top == [{"name": "Widget", "revenue_cents": 3200}]

        profitable = client.get(_url(org_a, "/reports/top-profitable?limit=1")).get_json()
        assert profitable[0]["profit_cents"] == 1200

        coverage = client.get(_url(org_a, "/reports/expense-coverage")).get_json()
        assert coverage[0]["coverage_status"] == "covered"

        expenses = client.get(_url(org_a, "/reports/expense-summary")).get_json()
        assert expenses["covered_bill_count"] == 1

    def test_report_arguments_validated(self, client, org_a):
        assert client.get(_url(org_a, "/reports/daily?days=0")).status_code == 400
        assert client.get(_url(org_a, "/reports/top-selling?limit=1e3")).status_code == 400
