# Overview: Pytest coverage for the event bus and the SSE stream endpoint.

"""
Event Tests

Verifies:
- Room fan-out, single delivery across overlapping rooms, drop on full queue
- Committed stock changes publish deltas to the products and location rooms
- Failed operations publish nothing
- Stream room authorization
"""

import json

import pytest

from stockflow.events import EventBus, location_room, parse_location_room
from stockflow.extensions import event_bus
from stockflow.services import stock_service
from stockflow.errors import InsufficientStock


class TestEventBus:

    def test_room_fan_out(self):
        bus = EventBus()
        products = bus.subscribe(["products"])
        store = bus.subscribe([location_room(1)])
        other = bus.subscribe([location_room(2)])

        delivered = bus.publish("inventoryUpdate", ["products", location_room(1)], {"new_quantity": 3})

        assert delivered == 2
        assert products.get(timeout=0).payload["new_quantity"] == 3
        assert store.get(timeout=0).name == "inventoryUpdate"
        assert other.get(timeout=0) is None

    def test_single_delivery_across_rooms(self):
        bus = EventBus()
        sub = bus.subscribe(["products", location_room(1)])

        bus.publish("inventoryUpdate", ["products", location_room(1)], {})

        assert len(sub.drain()) == 1

    def test_full_queue_drops(self):
        bus = EventBus(queue_size=2)
        sub = bus.subscribe(["products"])

        for i in range(3):
            bus.publish("inventoryUpdate", ["products"], {"n": i})

        assert [e.payload["n"] for e in sub.drain()] == [0, 1]
        assert sub.dropped == 1

    def test_unsubscribe(self):
        bus = EventBus()
        sub = bus.subscribe(["products"])
        bus.unsubscribe(sub)

        assert bus.subscriber_count() == 0
        assert bus.publish("inventoryUpdate", ["products"], {}) == 0

    def test_timestamp_added(self):
        bus = EventBus()
        sub = bus.subscribe(["sales"])
        bus.publish("newSale", ["sales"], {"entity_id": 1})
        assert sub.get(timeout=0).payload["timestamp"].endswith("Z")

    def test_location_scoped_subscriber(self):
        bus = EventBus()
        scoped = bus.subscribe(["products"], location_ids=[2])
        unrestricted = bus.subscribe(["products"])

        bus.publish("inventoryUpdate", ["products"], {"location_ids": [1], "new_quantity": 7})
        bus.publish("inventoryUpdate", ["products"], {"location_ids": [2], "new_quantity": 4})
        bus.publish("productUpdated", ["products"], {"entity_id": 9})

        assert [e.payload.get("new_quantity") for e in scoped.drain()] == [4, None]
        assert len(unrestricted.drain()) == 3

    @pytest.mark.parametrize("room,expected", [
        ("location_12", 12),
        ("location_", None),
        ("location_x", None),
        ("products", None),
    ])
    def test_parse_location_room(self, room, expected):
        assert parse_location_room(room) == expected


class TestPublishedDeltas:

    @pytest.fixture
    def listener(self, location_1):
        sub = event_bus.subscribe(["products", location_room(location_1.id)])
        yield sub
        event_bus.unsubscribe(sub)

    def test_adjust_publishes_after_commit(self, db_session, admin, location_1, product, make_row, listener):
        row = make_row(product, location_1, 5)
        listener.drain()

        stock_service.adjust_stock(row.id, -2, admin, note="damaged")

        events = listener.drain()
        assert [e.name for e in events] == ["inventoryAdjusted", "inventoryUpdate"]
        payload = events[0].payload
        assert payload["new_quantity"] == 3
        assert payload["adjustment"] == -2
        assert payload["location_ids"] == [location_1.id]
        assert payload["note"] == "damaged"

    def test_failed_adjust_publishes_nothing(self, db_session, admin, location_1, product, make_row, listener):
        row = make_row(product, location_1, 1)
        listener.drain()

        with pytest.raises(InsufficientStock):
            stock_service.adjust_stock(row.id, -2, admin)

        assert listener.drain() == []

    def test_sale_reaches_sales_room(self, client, db_session, admin_headers, location_1, product, make_row):
        make_row(product, location_1, 5)
        sub = event_bus.subscribe(["sales"])
        try:
            resp = client.post(
                "/api/sales",
                json={
                    "location_id": location_1.id,
                    "items": [{"product_id": product.id, "quantity": 1, "unit_price": "4.00"}],
                },
                headers=admin_headers,
            )
            assert resp.status_code == 201
            names = [e.name for e in sub.drain()]
        finally:
            event_bus.unsubscribe(sub)

        assert "newSale" in names


class TestEventStream:

    def test_staff_denied_sales_room(self, client, db_session, staff_headers):
        resp = client.get("/api/events/stream?rooms=sales", headers=staff_headers)
        assert resp.status_code == 403

    def test_staff_denied_foreign_location_room(self, client, db_session, staff_headers, location_1):
        resp = client.get(f"/api/events/stream?rooms=location_{location_1.id}", headers=staff_headers)
        assert resp.status_code == 403

    @pytest.mark.parametrize("rooms", ["", "bogus", "products,location_abc"])
    def test_bad_rooms(self, client, db_session, staff_headers, rooms):
        resp = client.get(f"/api/events/stream?rooms={rooms}", headers=staff_headers)
        assert resp.status_code == 400

    def test_stream_opens_and_closes(self, client, db_session, staff_headers, location_2):
        before = event_bus.subscriber_count()

        resp = client.get(
            f"/api/events/stream?rooms=products,location_{location_2.id}",
            headers=staff_headers,
            buffered=False,
        )

        assert resp.status_code == 200
        assert resp.mimetype == "text/event-stream"
        first = next(iter(resp.response))
        first = first.decode() if isinstance(first, bytes) else first
        assert first.startswith("event: ready\n")
        data = json.loads(first.split("data: ", 1)[1])
        assert data["rooms"] == sorted(["products", f"location_{location_2.id}"])
        assert event_bus.subscriber_count() == before + 1

        resp.close()
        assert event_bus.subscriber_count() == before

    def test_products_room_filtered_to_caller_locations(
        self, client, db_session, staff_headers, location_1, location_2
    ):
        known = set(event_bus._subscriptions)
        resp = client.get("/api/events/stream?rooms=products", headers=staff_headers, buffered=False)
        try:
            next(iter(resp.response))
            (sub_id,) = set(event_bus._subscriptions) - known
            sub = event_bus._subscriptions[sub_id]
            assert sub.location_ids == frozenset({location_2.id})

            event_bus.publish(
                "inventoryAdjusted", ["products", location_room(location_1.id)],
                {"location_ids": [location_1.id], "new_quantity": 7},
            )
            assert sub.drain() == []

            event_bus.publish(
                "inventoryAdjusted", ["products", location_room(location_2.id)],
                {"location_ids": [location_2.id], "new_quantity": 4},
            )
            assert [e.payload["new_quantity"] for e in sub.drain()] == [4]
        finally:
            resp.close()
