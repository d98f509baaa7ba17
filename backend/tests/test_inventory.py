# Overview: Pytest coverage for stock rows, adjustments and the per-row audit log.

"""
Inventory Tests

Verifies:
- Stock rows are unique per (product, location) and start with an
  added_to_location event
- Adjustments never drive a row negative
- Folding a row's audit log from 0 reproduces its quantity
- Low / out-of-stock / expired views
- Row responses embed only the most recent events; the rest is paged
"""

import random
from datetime import timedelta
from decimal import Decimal

import pytest

from stockflow.errors import BadRequest, Conflict, InsufficientStock, NotFound
from stockflow.models import StockEvent, StockRow
from stockflow.services import purchase_service, sales_service, stock_service, transfer_service
from stockflow.services.purchase_service import PurchaseLineInput
from stockflow.services.sale_totals import SaleDraft, SaleDraftItem
from stockflow.time_utils import utcnow

from conftest import fold_events, quantity_of


class TestCreateStockRow:

    def test_create_row(self, client, db_session, manager_headers, location_1, product):
        resp = client.post(
            "/api/inventory",
            json={"product_id": product.id, "location_id": location_1.id, "initial_quantity": 12, "min_stock": 3},
            headers=manager_headers,
        )

        assert resp.status_code == 201, resp.json
        row = resp.json
        assert row["quantity"] == 12
        assert row["min_stock"] == 3
        assert row["notify_at"] == 3
        assert [(e["action"], e["adjustment"], e["new_quantity"]) for e in row["audit_log"]] == [
            ("added_to_location", 12, 12)
        ]

    def test_zero_quantity_row_still_logs_creation(self, db_session, admin, location_1, product):
        row = stock_service.create_stock_row(product.id, location_1.id, admin)
        events = db_session.query(StockEvent).filter_by(stock_row_id=row.id).all()
        assert [(e.action, e.adjustment) for e in events] == [("added_to_location", 0)]

    def test_duplicate_row_conflicts(self, client, db_session, admin_headers, location_1, product, make_row):
        make_row(product, location_1, 1)
        resp = client.post(
            "/api/inventory",
            json={"product_id": product.id, "location_id": location_1.id},
            headers=admin_headers,
        )
        assert resp.status_code == 409
        assert resp.json["error"] == "Conflict"

    def test_negative_initial_quantity(self, client, db_session, admin_headers, location_1, product):
        resp = client.post(
            "/api/inventory",
            json={"product_id": product.id, "location_id": location_1.id, "initial_quantity": -1},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_inactive_location(self, db_session, admin, location_1, product):
        location_1.is_active = False
        db_session.commit()
        with pytest.raises(NotFound):
            stock_service.create_stock_row(product.id, location_1.id, admin)

    def test_unknown_product(self, client, db_session, admin_headers, location_1):
        resp = client.post(
            "/api/inventory",
            json={"product_id": 424242, "location_id": location_1.id},
            headers=admin_headers,
        )
        assert resp.status_code == 404


class TestAdjustStock:

    def test_adjust(self, client, db_session, manager_headers, location_1, product, make_row):
        row = make_row(product, location_1, 10)

        resp = client.patch(
            f"/api/inventory/{row.id}/adjust",
            json={"adjustment": -4, "note": "shrinkage"},
            headers=manager_headers,
        )

        assert resp.status_code == 200, resp.json
        assert resp.json["quantity"] == 6
        assert resp.json["audit_log"][-1]["note"] == "shrinkage"
        assert fold_events(row.id) == 6

    def test_adjust_below_zero(self, client, db_session, manager_headers, location_1, product, make_row):
        row = make_row(product, location_1, 2)

        resp = client.patch(f"/api/inventory/{row.id}/adjust", json={"adjustment": -3}, headers=manager_headers)

        assert resp.status_code == 400
        assert resp.json["error"] == "InsufficientStock"
        assert resp.json["details"] == {
            "product_id": product.id,
            "location_id": location_1.id,
            "available": 2,
            "requested": 3,
        }
        assert quantity_of(product, location_1) == 2

    @pytest.mark.parametrize("value", [0, "1.5", True, None])
    def test_invalid_adjustment(self, client, db_session, manager_headers, location_1, product, make_row, value):
        row = make_row(product, location_1, 2)
        resp = client.patch(f"/api/inventory/{row.id}/adjust", json={"adjustment": value}, headers=manager_headers)
        assert resp.status_code == 400

    def test_adjust_missing_row(self, client, db_session, admin_headers):
        resp = client.patch("/api/inventory/9999/adjust", json={"adjustment": 1}, headers=admin_headers)
        assert resp.status_code == 404

    def test_settings_update(self, client, db_session, manager_headers, location_1, product, make_row):
        row = make_row(product, location_1, 10)

        resp = client.patch(
            f"/api/inventory/{row.id}/settings",
            json={"min_stock": 8, "notify_at": 12},
            headers=manager_headers,
        )

        assert resp.status_code == 200
        assert resp.json["notify_at"] == 12
        assert resp.json["quantity"] == 10
        assert resp.json["is_low_stock"] is True

    def test_settings_rejects_quantity(self, client, db_session, manager_headers, location_1, product, make_row):
        row = make_row(product, location_1, 10)
        resp = client.patch(f"/api/inventory/{row.id}/settings", json={"quantity": 99}, headers=manager_headers)
        assert resp.status_code == 400
        assert quantity_of(product, location_1) == 10


class TestStockInvariants:
    """No row goes negative; the audit fold always equals the quantity."""

    def test_random_operation_sequence(
        self, db_session, admin, location_1, location_2, warehouse, product, product_b
    ):
        rng = random.Random(1234)
        locations = [location_1, location_2, warehouse]
        products = [product, product_b]
        for location in locations:
            for p in products:
                stock_service.create_stock_row(p.id, location.id, admin, quantity=rng.randint(0, 5))

        for _ in range(60):
            p = rng.choice(products)
            location = rng.choice(locations)
            row = db_session.query(StockRow).filter_by(product_id=p.id, location_id=location.id).one()
            kind = rng.choice(["adjust", "sale", "transfer", "purchase"])
            try:
                if kind == "adjust":
                    delta = rng.choice([-7, -3, -1, 1, 2, 6])
                    stock_service.adjust_stock(row.id, delta, admin)
                elif kind == "sale":
                    sales_service.record_sale(
                        SaleDraft(
                            location_id=location.id,
                            items=(SaleDraftItem(p.id, rng.randint(1, 4), Decimal("4.00")),),
                        ),
                        admin,
                    )
                elif kind == "transfer":
                    other = rng.choice([loc for loc in locations if loc.id != location.id])
                    transfer = transfer_service.request_transfer(p.id, rng.randint(1, 3), location.id, other.id, admin)
                    transfer_service.ship_transfer(transfer.id, admin)
                    transfer_service.receive_transfer(transfer.id, admin)
                else:
                    purchase = purchase_service.create_purchase(
                        admin,
                        supplier_id=1,
                        warehouse_id=location.id,
                        items=[PurchaseLineInput(product_id=p.id, quantity=rng.randint(1, 4), unit_cost=Decimal("1.00"))],
                    )
                    purchase_service.receive_purchase(purchase.id, admin)
            except InsufficientStock:
                pass

            db_session.expire_all()
            for stock_row in db_session.query(StockRow).all():
                assert stock_row.quantity >= 0

        db_session.expire_all()
        for stock_row in db_session.query(StockRow).all():
            assert fold_events(stock_row.id) == stock_row.quantity

    def test_event_chain_is_monotone_record(self, db_session, admin, location_1, product, make_row):
        row = make_row(product, location_1, 5)
        for delta in (3, -2, -6, 4):
            stock_service.adjust_stock(row.id, delta, admin)

        events = db_session.query(StockEvent).filter_by(stock_row_id=row.id).order_by(StockEvent.id).all()
        assert [e.new_quantity for e in events] == [5, 8, 6, 0, 4]

    def test_zero_delta_rejected(self, db_session, admin, location_1, product, make_row):
        row = make_row(product, location_1, 5)
        with pytest.raises(BadRequest):
            stock_service.adjust_stock(row.id, 0, admin)

    def test_row_uniqueness_in_service(self, db_session, admin, location_1, product, make_row):
        make_row(product, location_1, 5)
        with pytest.raises(Conflict):
            stock_service.create_stock_row(product.id, location_1.id, admin)


class TestInventoryReads:

    def test_low_out_and_expired(
        self, client, db_session, admin, manager_headers, location_1, product, product_b, make_row
    ):
        low = make_row(product, location_1, 3, min_stock=5)
        empty = make_row(product_b, location_1, 1)
        stock_service.adjust_stock(empty.id, -1, admin)
        stock_service.update_stock_settings(
            low.id, admin, fields={"expiry_date": utcnow() - timedelta(days=1)},
        )

        resp = client.get("/api/inventory/low-stock", headers=manager_headers)
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json["items"]] == [low.id]

        resp = client.get("/api/inventory/out-of-stock", headers=manager_headers)
        assert [r["id"] for r in resp.json["items"]] == [empty.id]

        resp = client.get("/api/inventory/expired", headers=manager_headers)
        assert [r["id"] for r in resp.json["items"]] == [low.id]

    def test_list_filters(self, client, db_session, admin_headers, location_1, location_2, product, product_b, make_row):
        make_row(product, location_1, 10)
        make_row(product, location_2, 2)
        make_row(product_b, location_1, 3)

        resp = client.get(f"/api/inventory?product_id={product.id}", headers=admin_headers)
        assert resp.json["total"] == 2

        resp = client.get("/api/inventory?low_stock=true", headers=admin_headers)
        assert resp.json["total"] == 2

        resp = client.get("/api/inventory?search=gadg", headers=admin_headers)
        assert resp.json["total"] == 1

        resp = client.get("/api/inventory?limit=2&page=2", headers=admin_headers)
        assert resp.json["page"] == 2
        assert resp.json["pages"] == 2
        assert len(resp.json["items"]) == 1

    def test_audit_hot_tail_and_paged_history(self, app, client, db_session, admin, admin_headers, location_1, product, make_row):
        row = make_row(product, location_1, 0)
        for _ in range(6):
            stock_service.adjust_stock(row.id, 1, admin)

        tail = app.config["AUDIT_HOT_TAIL"]
        app.config["AUDIT_HOT_TAIL"] = 3
        try:
            resp = client.get(f"/api/inventory/{row.id}", headers=admin_headers)
        finally:
            app.config["AUDIT_HOT_TAIL"] = tail

        assert resp.status_code == 200
        assert [e["new_quantity"] for e in resp.json["audit_log"]] == [4, 5, 6]

        resp = client.get(f"/api/inventory/{row.id}/events?limit=5", headers=admin_headers)
        assert resp.json["total"] == 7
        assert [e["new_quantity"] for e in resp.json["items"]] == [0, 1, 2, 3, 4]

    def test_bad_pagination(self, client, db_session, admin_headers):
        assert client.get("/api/inventory?page=0", headers=admin_headers).status_code == 400
        assert client.get("/api/inventory?limit=abc", headers=admin_headers).status_code == 400
