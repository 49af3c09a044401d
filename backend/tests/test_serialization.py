# Overview: Pytest coverage for ledger snapshots, the repair pass and legacy layout migration.

import json

import pytest

from stockflow.ledger import (
    SCHEMA_VERSION,
    BillItemRequest,
    BillMetadata,
    InventoryLedger,
    LayerKind,
    UnsupportedOperationError,
    load_state,
    repair_state,
)
from stockflow.ledger import serialization

LEGACY_DOCUMENT = {
    "products": [
        {
            "id": "p1",
            "name": "Widget",
            "category": "Electronics",
            "trackQuantity": True,
            "variants": [],
            "productSKUs": [
                {
                    "id": "s1",
                    "skuIdentifier": "Widget",
                    "optionValues": {},
                    "stockLayers": [
                        {
                            "id": "l1",
                            "purchaseBillId": "b1",
                            "purchaseDate": "2024-01-05T10:00:00.000Z",
                            "quantity": 6,
                            "initialQuantity": 10,
                            "costPrice": 5.0,
                            "sellPrice": 8.25,
                        }
                    ],
                }
            ],
        },
        {
            "id": "p2",
            "name": "Haircut",
            "trackQuantity": False,
            "costPriceForNonTracked": 3.5,
            "sellPriceForNonTracked": 12,
        },
    ],
    "bills": [
        {
            "id": "b1",
            "type": "buy",
            "date": "2024-01-05T10:00:00.000Z",
            "vendorOrCustomerName": "Acme Supplies",
            "items": [
                {"productId": "p1", "productName": "Widget", "quantity": 10, "costPrice": 5, "sellPrice": 8.25},
            ],
            "totalAmount": 50,
        },
        {
            "id": "b2",
            "type": "sell",
            "date": "2024-01-06T12:30:00.000Z",
            "items": [
                {"productId": "p1", "productName": "Widget", "quantity": 4, "costPrice": 5, "sellPrice": 8.25},
            ],
            "totalAmount": 33,
            "paymentStatus": "paid",
        },
    ],
}


@pytest.fixture
def busy_ledger(ledger, clock, widget, shirt, repair_service):
    ledger.commit_bill(
        "purchase",
        [
            BillItemRequest(product_id=widget.id, quantity=10, unit_cost_cents=500, unit_sell_price_cents=800),
            BillItemRequest(
                product_id=shirt.id, quantity=4, unit_cost_cents=900, unit_sell_price_cents=1500,
                option_values={"Size": "M", "Color": "Red"},
            ),
        ],
        BillMetadata(store_id="1", payment_status="paid"),
    )
    clock.advance(hours=2)
    ledger.commit_bill(
        "sale",
        [
            BillItemRequest(product_id=widget.id, quantity=3),
            BillItemRequest(product_id=repair_service.id, quantity=1),
        ],
        BillMetadata(store_id="1", counterparty_name="Walk-in"),
    )
    ledger.commit_bill("return", [BillItemRequest(product_id=widget.id, quantity=1)], BillMetadata(store_id="1"))
    ledger.set_standing_price(repair_service.skus[0].id, "1", sell_price_cents=5500)
    return ledger


class TestSnapshots:
    def test_snapshot_is_json_compatible(self, busy_ledger):
        data = busy_ledger.snapshot()
        assert data["schema_version"] == SCHEMA_VERSION
        assert json.loads(json.dumps(data)) == data
        assert data["sequences"] == {"purchase": 1, "sale": 1, "return": 1}

    def test_round_trip_needs_no_repair(self, busy_ledger):
        data = busy_ledger.snapshot()
        restored = InventoryLedger.from_snapshot(data)
        assert restored.last_repair.fixes == []
        assert not restored.last_repair.changed
        assert restored.snapshot() == data

    def test_round_trip_keeps_behaviour(self, busy_ledger, widget):
        restored = InventoryLedger.from_snapshot(busy_ledger.snapshot())
        sku_id = widget.skus[0].id
        assert restored.total_stock(sku_id, "1") == 8
        assert restored.average_cost_price(sku_id, "1") == 500
        bill = restored.commit_bill("sale", [BillItemRequest(product_id=widget.id, quantity=8)], BillMetadata(store_id="1"))
        assert bill.id == "S-000002"
        assert restored.total_stock(sku_id, "1") == 0

    def test_restore_replaces_state(self, busy_ledger, widget):
        before = busy_ledger.snapshot()
        busy_ledger.commit_bill("sale", [BillItemRequest(product_id=widget.id, quantity=2)], BillMetadata(store_id="1"))
        busy_ledger.restore(before)
        assert busy_ledger.snapshot() == before

    def test_live_repair_is_a_no_op(self, busy_ledger):
        report = busy_ledger.repair()
        assert report.fixes == []


class TestRepair:
    def test_layer_defaults(self):
        raw = {
            "schema_version": 1,
            "products": [
                {
                    "id": "p1",
                    "name": "Widget",
                    "track_quantity": True,
                    "variants": [],
                    "skus": [{"id": "s1", "option_values": {}, "layers": [{"id": "l1", "bill_id": "b1"}]}],
                }
            ],
        }
        data, report = repair_state(raw)
        layer = data["products"][0]["skus"][0]["layers"][0]
        assert layer["remaining_quantity"] == 0
        assert layer["initial_quantity"] == 0
        assert layer["unit_cost_cents"] == 0
        assert layer["unit_sell_price_cents"] == 0
        assert layer["received_at"] == "1970-01-01T00:00:00Z"
        assert layer["kind"] == LayerKind.RECEIPT.value
        assert report.changed
        assert data["products"][0]["skus"][0]["identifier"] == "Widget"

    def test_default_sku_synthesized(self):
        raw = {"schema_version": 1, "products": [{"id": "p1", "name": "Widget", "track_quantity": True}]}
        data, report = repair_state(raw, id_factory=lambda: "generated")
        skus = data["products"][0]["skus"]
        assert len(skus) == 1
        assert skus[0]["id"] == "generated"
        assert skus[0]["option_values"] == {}
        assert any("default SKU" in fix for fix in report.fixes)

    def test_non_tracked_gets_standing_layer(self):
        raw = {"schema_version": 1, "products": [{"id": "p1", "name": "Haircut", "track_quantity": False}]}
        data, _ = repair_state(raw)
        layers = data["products"][0]["skus"][0]["layers"]
        assert [l["kind"] for l in layers] == [LayerKind.STANDING_PRICE.value]

    def test_bad_entries_dropped_or_defaulted(self):
        raw = {
            "schema_version": 1,
            "products": [{"name": "No id"}, "junk"],
            "bills": [
                {"id": "X-1", "type": "transfer", "items": []},
                {
                    "id": "S-000007",
                    "type": "sale",
                    "created_at": "2024-02-01T00:00:00Z",
                    "items": [{"product_id": "p9", "quantity": "two", "unit_sell_price_cents": 100}],
                },
            ],
        }
        data, report = repair_state(raw)
        assert data["products"] == []
        assert [b["id"] for b in data["bills"]] == ["S-000007"]
        bill = data["bills"][0]
        assert bill["items"][0]["quantity"] == 1
        assert bill["total_amount_cents"] == 100
        assert data["sequences"]["sale"] == 7
        assert len(report.fixes) > 0

    def test_repair_is_idempotent(self):
        messy = {
            "schema_version": 1,
            "categories": ["Tools", "tools", ""],
            "products": [
                {"id": "p1", "name": "Widget", "skus": [{"layers": [{"quantity": 3}]}]},
                {"id": "p2", "name": "Haircut", "track_quantity": False},
            ],
            "bills": [{"type": "purchase", "items": [{"product_id": "p1", "quantity": 3}]}],
        }
        once, first = repair_state(messy)
        twice, second = repair_state(once)
        assert first.fixes
        assert second.fixes == []
        assert twice == once

    def test_input_not_modified(self):
        raw = {"schema_version": 1, "products": [{"id": "p1", "name": "Widget"}]}
        copy = json.loads(json.dumps(raw))
        repair_state(raw)
        assert raw == copy

    def test_non_object_state_discarded(self):
        data, report = repair_state(["not", "a", "ledger"])
        assert data["products"] == []
        assert report.fixes[0].startswith("state of type list")

    def test_newer_schema_refused(self):
        with pytest.raises(UnsupportedOperationError):
            repair_state({"schema_version": SCHEMA_VERSION + 1})
        with pytest.raises(UnsupportedOperationError):
            load_state({"schema_version": SCHEMA_VERSION + 1})

    def test_unrepairable_state_falls_back_to_empty(self, monkeypatch):
        def broken(raw, id_factory=None):
            raise RuntimeError("corrupt document")

        monkeypatch.setattr(serialization, "repair_state", broken)
        raw = {"schema_version": 1, "products": [{"id": "p1", "name": "Widget"}]}
        state, report = load_state(raw)
        assert report.fell_back_to_empty
        assert report.error == "corrupt document"
        assert report.changed
        assert state.catalog.products == {}
        assert state.bills == {}


class TestMalformedListFields:
    """List-valued fields holding scalars or objects are emptied, never fatal."""

    def _bill(self, **overrides):
        bill = {
            "id": "b1",
            "type": "purchase",
            "created_at": "2024-01-05T10:00:00+00:00",
            "items": [{"id": "i1", "product_id": "p1", "quantity": 2, "unit_cost_cents": 500}],
        }
        bill.update(overrides)
        return bill

    def _state(self, **overrides):
        raw = {"schema_version": 1, "products": [{"id": "p1", "name": "Widget"}], "bills": [self._bill()]}
        raw.update(overrides)
        return raw

    def test_scalar_bill_items(self):
        state, report = load_state(self._state(bills=[self._bill(items=7)]))
        assert not report.fell_back_to_empty
        assert state.bills["b1"].items == ()
        assert "p1" in state.catalog.products
        assert any("items of type int" in fix for fix in report.fixes)

    def test_non_text_bill_type_drops_only_that_bill(self):
        state, report = load_state(self._state(bills=[self._bill(type=["sale"]), self._bill(id="b2")]))
        assert not report.fell_back_to_empty
        assert list(state.bills) == ["b2"]
        assert "p1" in state.catalog.products
        assert any("non-text type" in fix for fix in report.fixes)

    def test_scalar_skus_get_a_default_sku(self):
        state, report = load_state(self._state(products=[{"id": "p1", "name": "Widget", "skus": 5}], bills=[]))
        assert not report.fell_back_to_empty
        assert len(state.catalog.products["p1"].skus) == 1
        assert any("skus of type int" in fix for fix in report.fixes)

    def test_text_layers(self):
        product = {"id": "p1", "name": "Widget", "skus": [{"id": "s1", "option_values": {}, "layers": "x"}]}
        state, report = load_state(self._state(products=[product], bills=[]))
        assert not report.fell_back_to_empty
        assert state.catalog.products["p1"].skus[0].layers == []
        assert any("layers of type str" in fix for fix in report.fixes)

    def test_scalar_layer_draws(self):
        item = {"id": "i1", "product_id": "p1", "quantity": 2, "unit_cost_cents": 500, "layer_draws": 3}
        state, report = load_state(self._state(bills=[self._bill(type="sale", items=[item])]))
        assert not report.fell_back_to_empty
        assert state.bills["b1"].items[0].layer_draws == ()
        assert any("layer_draws of type int" in fix for fix in report.fixes)

    @pytest.mark.parametrize("field, value", [("products", {}), ("bills", 5)])
    def test_top_level_lists(self, field, value):
        data, report = repair_state(self._state(**{field: value}))
        assert data[field] == []
        assert any(fix.startswith(f"{field} of type") for fix in report.fixes)


class TestLegacyMigration:
    def test_camel_case_layout_is_migrated(self):
        data, report = repair_state(LEGACY_DOCUMENT)
        assert report.legacy_migrated

        widget, haircut = data["products"]
        layer = widget["skus"][0]["layers"][0]
        assert widget["track_quantity"] is True
        assert layer["unit_cost_cents"] == 500
        assert layer["unit_sell_price_cents"] == 825
        assert layer["remaining_quantity"] == 6
        assert layer["initial_quantity"] == 10
        assert layer["kind"] == LayerKind.RECEIPT.value

        standing = haircut["skus"][0]["layers"][0]
        assert standing["kind"] == LayerKind.STANDING_PRICE.value
        assert standing["unit_cost_cents"] == 350
        assert standing["unit_sell_price_cents"] == 1200

        purchase, sale = data["bills"]
        assert purchase["type"] == "purchase"
        assert purchase["total_amount_cents"] == 5000
        assert purchase["counterparty_name"] == "Acme Supplies"
        assert purchase["items"][0]["sku_id"] == "s1"
        assert sale["type"] == "sale"
        assert sale["payment_status"] == "paid"
        assert sale["items"][0]["cogs_cents"] == 2000

    def test_migrated_ledger_is_usable(self):
        ledger = InventoryLedger.from_snapshot(LEGACY_DOCUMENT)
        assert ledger.last_repair.legacy_migrated
        assert ledger.total_stock("s1", None) == 6
        assert ledger.current_quoted_sell_price("s1", None) == 825
        assert ledger.find_product_by_name("haircut").track_quantity is False

        # legacy bill ids do not collide with new document numbers
        bill = ledger.commit_bill("sale", [BillItemRequest(product_id="p1", quantity=2)])
        assert bill.id == "S-000001"
        assert ledger.total_stock("s1", None) == 4

        again = InventoryLedger.from_snapshot(ledger.snapshot())
        assert again.last_repair.fixes == []
