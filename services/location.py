"""Live rider location relay over pub/sub.

Samples are published to ``order:{order_id}`` and fanned out to whoever is
subscribed at that moment. Nothing is stored, validated or smoothed; the
last sample a subscriber receives is the one it shows.
"""
import json
import queue
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

import redis

from core.config import settings

LOCATION_EVENT = "location_update"


class _MemoryPubSub:
    """Subset of ``redis.client.PubSub`` backed by a thread-safe queue."""

    def __init__(self, broker: "_MemoryBroker"):
        self._broker = broker
        self._queue: "queue.Queue[dict]" = queue.Queue()
        self.channels: set[str] = set()

    def subscribe(self, *channels: str) -> None:
        for channel in channels:
            self._broker._attach(channel, self)
            self.channels.add(channel)

    def unsubscribe(self, *channels: str) -> None:
        for channel in channels or tuple(self.channels):
            self._broker._detach(channel, self)
            self.channels.discard(channel)

    def get_message(self, ignore_subscribe_messages: bool = False, timeout: float = 0.0) -> Optional[dict]:
        try:
            if timeout:
                return self._queue.get(timeout=timeout)
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def _deliver(self, message: dict) -> None:
        self._queue.put(message)

    def close(self) -> None:
        self.unsubscribe()


class _MemoryBroker:
    """In-process stand-in for the Redis pub/sub commands the relay uses (tests)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, set[_MemoryPubSub]] = defaultdict(set)

    def _attach(self, channel: str, pubsub: _MemoryPubSub) -> None:
        with self._lock:
            self._subscribers[channel].add(pubsub)

    def _detach(self, channel: str, pubsub: _MemoryPubSub) -> None:
        with self._lock:
            self._subscribers[channel].discard(pubsub)
            if not self._subscribers[channel]:
                del self._subscribers[channel]

    def publish(self, channel: str, data: str) -> int:
        with self._lock:
            targets = list(self._subscribers.get(channel, ()))
        for target in targets:
            target._deliver({"type": "message", "channel": channel, "pattern": None, "data": data})
        return len(targets)

    def pubsub(self, ignore_subscribe_messages: bool = False) -> _MemoryPubSub:
        return _MemoryPubSub(self)


redis_client = _MemoryBroker() if settings.TESTING else redis.from_url(settings.REDIS_URL, decode_responses=True)


def channel_for(order_id: int) -> str:
    return f"order:{order_id}"


def _timestamp(value: Optional[datetime]) -> str:
    value = value or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class LocationSubscription:
    def __init__(self, pubsub, channel: str):
        self._pubsub = pubsub
        self.channel = channel
        self._closed = False

    def next_sample(self, timeout: float = 1.0) -> Optional[dict]:
        """Wait up to ``timeout`` seconds for the next ``location_update`` payload."""
        message = self._pubsub.get_message(ignore_subscribe_messages=True, timeout=timeout)
        if not message or message.get("type") != "message":
            return None
        try:
            envelope = json.loads(message["data"])
        except (TypeError, ValueError):
            return None
        if envelope.get("event") != LOCATION_EVENT:
            return None
        return envelope.get("payload")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pubsub.unsubscribe(self.channel)
        self._pubsub.close()


class LocationRelay:
    def __init__(self, client=None):
        self.client = client if client is not None else redis_client

    def publish(
        self,
        order_id: int,
        latitude: float,
        longitude: float,
        timestamp: Optional[datetime] = None,
    ) -> int:
        """Broadcast one sample. Returns how many subscribers received it."""
        envelope = {
            "event": LOCATION_EVENT,
            "payload": {
                "latitude": latitude,
                "longitude": longitude,
                "timestamp": _timestamp(timestamp),
            },
        }
        return int(self.client.publish(channel_for(order_id), json.dumps(envelope)))

    def subscribe(self, order_id: int) -> LocationSubscription:
        channel = channel_for(order_id)
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(channel)
        return LocationSubscription(pubsub, channel)


location_relay = LocationRelay()
