"""In-process publish/subscribe bus for fare and vehicle domain events."""
from __future__ import annotations

import asyncio
import json
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Set

FARE_CACHE_CLEARED = "fare-cache-cleared"
TRIP_FARES_UPDATED = "trip-fares-updated"
LOCAL_FARES_UPDATED = "local-fares-updated"
AIRPORT_FARES_UPDATED = "airport-fares-updated"
VEHICLE_TABLES_SYNCED = "vehicle-tables-synced"

ALL_EVENTS = "*"


@dataclass
class DomainEvent:
    name: str
    vehicle_id: Optional[str] = None
    trip_type: Optional[str] = None
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name, "timestamp": self.timestamp}
        if self.vehicle_id is not None:
            payload["vehicleId"] = self.vehicle_id
        if self.trip_type is not None:
            payload["tripType"] = self.trip_type
        if self.details:
            payload.update(self.details)
        return payload


Subscriber = Callable[[DomainEvent], None]


class EventBus:
    """Synchronous fan-out to callbacks plus bounded queues for SSE clients."""

    def __init__(self, history_size: int = 200) -> None:
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._queues: Set[asyncio.Queue] = set()
        self.history: Deque[DomainEvent] = deque(maxlen=history_size)

    def subscribe(self, name: str, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.setdefault(name, []).append(callback)

        def _unsubscribe() -> None:
            callbacks = self._subscribers.get(name, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return _unsubscribe

    def publish(self, event: DomainEvent) -> None:
        self.history.append(event)
        callbacks = list(self._subscribers.get(event.name, []))
        callbacks += self._subscribers.get(ALL_EVENTS, [])
        for callback in callbacks:
            try:
                callback(event)
            except Exception as exc:
                print(f"[events] subscriber for {event.name} failed: {exc}")

        if not self._queues:
            return
        encoded = f"event: {event.name}\ndata: {json.dumps(event.to_dict())}\n\n"
        for q in list(self._queues):
            try:
                q.put_nowait(encoded)
            except asyncio.QueueFull:
                pass  # Drop update for slow clients

    def open_queue(self, maxsize: int = 10) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues.add(q)
        return q

    def close_queue(self, q: asyncio.Queue) -> None:
        self._queues.discard(q)


__all__ = [
    "DomainEvent",
    "EventBus",
    "ALL_EVENTS",
    "FARE_CACHE_CLEARED",
    "TRIP_FARES_UPDATED",
    "LOCAL_FARES_UPDATED",
    "AIRPORT_FARES_UPDATED",
    "VEHICLE_TABLES_SYNCED",
]
