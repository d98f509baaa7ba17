# Overview: Room-keyed in-process event bus for real-time inventory deltas.

"""
Event bus

Subscribers join one or more rooms and receive every event published to
any of those rooms. Delivery is best-effort and at-most-once:

- events are published only after the owning transaction commits
- an event reaches a subscriber at most once even when it was published
  to several rooms the subscriber joined
- a subscriber whose queue is full silently misses events; clients
  reconcile by polling the REST endpoints after reconnecting
- a location-scoped subscriber only sees events whose payload
  location_ids overlap its locations (events with no location_ids
  reach everyone in the room)

Rooms:
- location_{id}  deltas, sales and transfers touching that location
- products       inventoryUpdate payloads for cross-location views
- sales          sale creation/deletion across all locations
"""
from __future__ import annotations

import itertools
import queue
import threading
from dataclasses import dataclass, field
from typing import Iterable

from .time_utils import utcnow, to_utc_z


ROOM_PRODUCTS = "products"
ROOM_SALES = "sales"
LOCATION_ROOM_PREFIX = "location_"


def location_room(location_id: int) -> str:
    return f"{LOCATION_ROOM_PREFIX}{location_id}"


def parse_location_room(room: str) -> int | None:
    """Return the location id of a location_{id} room, else None."""
    if not room.startswith(LOCATION_ROOM_PREFIX):
        return None
    suffix = room[len(LOCATION_ROOM_PREFIX):]
    if not suffix.isdigit():
        return None
    return int(suffix)


@dataclass(frozen=True)
class Event:
    name: str
    rooms: tuple[str, ...]
    payload: dict

    def to_dict(self) -> dict:
        return {"event": self.name, "rooms": list(self.rooms), "data": self.payload}


@dataclass
class Subscription:
    id: int
    rooms: frozenset[str]
    queue: queue.Queue = field(repr=False)
    location_ids: frozenset[int] | None = None
    dropped: int = 0

    def accepts(self, event: Event) -> bool:
        if self.location_ids is None:
            return True
        event_locations = event.payload.get("location_ids")
        if not event_locations:
            return True
        return not self.location_ids.isdisjoint(event_locations)

    def get(self, timeout: float | None = None) -> Event | None:
        """Next event, or None when nothing arrived within timeout."""
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[Event]:
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events


class EventBus:
    def __init__(self, queue_size: int = 256):
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subscriptions: dict[int, Subscription] = {}

    def init_app(self, app) -> None:
        self.queue_size = app.config.get("EVENT_QUEUE_SIZE", self.queue_size)
        app.extensions["event_bus"] = self

    def subscribe(self, rooms: Iterable[str], location_ids: Iterable[int] | None = None) -> Subscription:
        """location_ids=None means unrestricted (admin)."""
        sub = Subscription(
            id=next(self._ids),
            rooms=frozenset(rooms),
            queue=queue.Queue(maxsize=self.queue_size),
            location_ids=None if location_ids is None else frozenset(location_ids),
        )
        with self._lock:
            self._subscriptions[sub.id] = sub
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(sub.id, None)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, name: str, rooms: Iterable[str], payload: dict) -> int:
        """
        Deliver an event to every subscriber of any of the rooms.

        Returns the number of subscribers the event was queued for.
        """
        rooms = tuple(dict.fromkeys(rooms))
        payload = dict(payload)
        payload.setdefault("timestamp", to_utc_z(utcnow()))
        event = Event(name=name, rooms=rooms, payload=payload)

        with self._lock:
            targets = [
                s for s in self._subscriptions.values()
                if s.rooms.intersection(rooms) and s.accepts(event)
            ]

        delivered = 0
        for sub in targets:
            try:
                sub.queue.put_nowait(event)
                delivered += 1
            except queue.Full:
                sub.dropped += 1
        return delivered

    def publish_all(self, events: Iterable[Event]) -> int:
        return sum(self.publish(e.name, e.rooms, e.payload) for e in events)
