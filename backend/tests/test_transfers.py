# Overview: Pytest coverage for the inter-location transfer lifecycle.

"""
Transfer Tests

Verifies:
- Pending -> Shipped -> Received moves stock from source to destination
- Cancelling a Pending transfer leaves stock unchanged
- Every other transition is rejected with InvalidState and no stock effect
- Destination rows are created on receipt
"""

import pytest

from stockflow.errors import Forbidden, InsufficientStock, InvalidState
from stockflow.models import StockEvent, StockRow
from stockflow.services import product_service, transfer_service

from conftest import fold_events, quantity_of


def request_body(product, quantity, source, destination):
    return {
        "product_id": product.id,
        "quantity": quantity,
        "from_location_id": source.id,
        "to_location_id": destination.id,
    }


class TestTransferLifecycle:

    def test_ship_and_receive_creates_destination_row(
        self, client, db_session, admin_headers, location_1, location_2, product, make_row
    ):
        """rowA=5 at L1, nothing at L2; transfer 2 -> rowA=3, rowB=2."""
        row_a = make_row(product, location_1, 5)

        resp = client.post(
            "/api/transfers",
            json=request_body(product, 2, location_1, location_2),
            headers=admin_headers,
        )
        assert resp.status_code == 201, resp.json
        transfer = resp.json
        assert transfer["status"] == "Pending"
        assert transfer["transfer_number"].startswith("TR-")
        assert quantity_of(product, location_1) == 5

        resp = client.patch(f"/api/transfers/{transfer['id']}/ship", headers=admin_headers)
        assert resp.status_code == 200, resp.json
        assert resp.json["status"] == "Shipped"
        assert quantity_of(product, location_1) == 3
        out = db_session.query(StockEvent).filter_by(stock_row_id=row_a.id, action="transfer_out").one()
        assert out.adjustment == -2
        assert out.related_transfer_id == transfer["id"]

        resp = client.patch(f"/api/transfers/{transfer['id']}/receive", headers=admin_headers)
        assert resp.status_code == 200, resp.json
        assert resp.json["status"] == "Received"
        assert quantity_of(product, location_2) == 2

        row_b = db_session.query(StockRow).filter_by(product_id=product.id, location_id=location_2.id).one()
        events_b = db_session.query(StockEvent).filter_by(stock_row_id=row_b.id).all()
        assert [(e.action, e.adjustment, e.new_quantity) for e in events_b] == [("transfer_in", 2, 2)]
        assert fold_events(row_a.id) == 3
        assert fold_events(row_b.id) == 2

    def test_round_trip_into_existing_row(self, db_session, admin, location_1, location_2, product, make_row):
        make_row(product, location_1, 9)
        make_row(product, location_2, 4)

        transfer = transfer_service.request_transfer(product.id, 5, location_1.id, location_2.id, admin)
        transfer_service.ship_transfer(transfer.id, admin)
        transfer_service.receive_transfer(transfer.id, admin)

        assert quantity_of(product, location_1) == 4
        assert quantity_of(product, location_2) == 9

    def test_receipt_completes_after_deactivation(self, db_session, admin, location_1, location_2, product, make_row):
        """Units already shipped still land when the product and destination are retired."""
        make_row(product, location_1, 5)
        transfer = transfer_service.request_transfer(product.id, 2, location_1.id, location_2.id, admin)
        transfer_service.ship_transfer(transfer.id, admin)

        product_service.deactivate_product(product_id=product.id, principal=admin)
        location_2.is_active = False
        db_session.commit()

        received = transfer_service.receive_transfer(transfer.id, admin)

        assert received.status == "Received"
        assert quantity_of(product, location_1) == 3
        assert quantity_of(product, location_2) == 2

    def test_cancel_pending_leaves_stock(self, client, db_session, admin, admin_headers, location_1, location_2, product, make_row):
        make_row(product, location_1, 9)
        make_row(product, location_2, 4)
        transfer = transfer_service.request_transfer(product.id, 5, location_1.id, location_2.id, admin)

        resp = client.patch(
            f"/api/transfers/{transfer.id}/cancel",
            json={"reason": "ordered by mistake"},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        assert resp.json["status"] == "Cancelled"
        assert resp.json["cancellation_reason"] == "ordered by mistake"
        assert quantity_of(product, location_1) == 9
        assert quantity_of(product, location_2) == 4


class TestTransferStateMachine:
    """Invalid transitions return InvalidState and never move stock."""

    @pytest.fixture
    def transfer_in(self, db_session, admin, location_1, location_2, product, make_row):
        make_row(product, location_1, 10)
        make_row(product, location_2, 10)

        def _at(status):
            transfer = transfer_service.request_transfer(product.id, 2, location_1.id, location_2.id, admin)
            if status in ("Shipped", "Received"):
                transfer_service.ship_transfer(transfer.id, admin)
            if status == "Received":
                transfer_service.receive_transfer(transfer.id, admin)
            if status == "Cancelled":
                transfer_service.cancel_transfer(transfer.id, admin)
            return transfer.id
        return _at

    @pytest.mark.parametrize(
        "status,operation",
        [
            ("Shipped", "ship"),
            ("Received", "ship"),
            ("Cancelled", "ship"),
            ("Pending", "receive"),
            ("Received", "receive"),
            ("Cancelled", "receive"),
            ("Shipped", "cancel"),
            ("Received", "cancel"),
            ("Cancelled", "cancel"),
        ],
    )
    def test_rejected_transitions(
        self, client, db_session, admin_headers, transfer_in, location_1, location_2, product, status, operation
    ):
        transfer_id = transfer_in(status)
        before = (quantity_of(product, location_1), quantity_of(product, location_2))

        resp = client.patch(f"/api/transfers/{transfer_id}/{operation}", headers=admin_headers)

        assert resp.status_code == 409
        assert resp.json["error"] == "InvalidState"
        assert (quantity_of(product, location_1), quantity_of(product, location_2)) == before

    def test_service_raises_invalid_state(self, db_session, admin, transfer_in):
        transfer_id = transfer_in("Received")
        with pytest.raises(InvalidState):
            transfer_service.receive_transfer(transfer_id, admin)


class TestTransferRules:

    def test_same_source_and_destination(self, client, db_session, admin_headers, location_1, product, make_row):
        make_row(product, location_1, 5)
        resp = client.post(
            "/api/transfers",
            json=request_body(product, 1, location_1, location_1),
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_request_more_than_available(self, client, db_session, admin_headers, location_1, location_2, product, make_row):
        make_row(product, location_1, 1)
        resp = client.post(
            "/api/transfers",
            json=request_body(product, 2, location_1, location_2),
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "InsufficientStock"

    def test_ship_rechecks_stock(self, db_session, admin, location_1, location_2, product, make_row):
        """Availability is not reserved at request time."""
        row = make_row(product, location_1, 3)
        transfer = transfer_service.request_transfer(product.id, 3, location_1.id, location_2.id, admin)

        from stockflow.services import stock_service
        stock_service.adjust_stock(row.id, -2, admin, note="damaged")

        with pytest.raises(InsufficientStock):
            transfer_service.ship_transfer(transfer.id, admin)
        assert quantity_of(product, location_1) == 1

    def test_staff_cannot_request(self, client, db_session, staff_headers, location_1, location_2, product, make_row):
        make_row(product, location_2, 5)
        resp = client.post(
            "/api/transfers",
            json=request_body(product, 1, location_2, location_1),
            headers=staff_headers,
        )
        assert resp.status_code == 403

    def test_manager_cannot_ship_from_foreign_location(
        self, db_session, admin, manager, location_1, location_2, product, make_row
    ):
        make_row(product, location_2, 5)
        transfer = transfer_service.request_transfer(product.id, 1, location_2.id, location_1.id, admin)

        with pytest.raises(Forbidden):
            transfer_service.ship_transfer(transfer.id, manager)
        assert quantity_of(product, location_2) == 5

    def test_manager_can_cancel_with_access_to_either_end(
        self, db_session, admin, manager, location_1, location_2, product, make_row
    ):
        make_row(product, location_2, 5)
        transfer = transfer_service.request_transfer(product.id, 1, location_2.id, location_1.id, admin)

        cancelled = transfer_service.cancel_transfer(transfer.id, manager)
        assert cancelled.status == "Cancelled"


class TestTransferReads:

    def test_list_scoped_to_either_end(
        self, client, db_session, admin, staff_headers, location_1, location_2, warehouse, product, make_row
    ):
        make_row(product, location_1, 10)
        make_row(product, warehouse, 10)
        transfer_service.request_transfer(product.id, 1, location_1.id, location_2.id, admin)
        transfer_service.request_transfer(product.id, 1, warehouse.id, location_1.id, admin)

        resp = client.get("/api/transfers", headers=staff_headers)

        assert resp.status_code == 200
        assert resp.json["total"] == 1
        assert resp.json["items"][0]["to_location_id"] == location_2.id

    def test_status_filter(self, client, db_session, admin, admin_headers, location_1, location_2, product, make_row):
        make_row(product, location_1, 10)
        first = transfer_service.request_transfer(product.id, 1, location_1.id, location_2.id, admin)
        transfer_service.request_transfer(product.id, 1, location_1.id, location_2.id, admin)
        transfer_service.ship_transfer(first.id, admin)

        resp = client.get("/api/transfers?status=Shipped", headers=admin_headers)
        assert resp.json["total"] == 1

        resp = client.get("/api/transfers?status=Lost", headers=admin_headers)
        assert resp.status_code == 400
