"""
Process-wide subscription registry for the real-time feed.

Topics:
    worker:<id>  session and schedule changes for one worker
    managers     every session/schedule change, for manager dashboards
    all          site registry changes, joined by every connection

Subscriptions live only in this process: they are added when a client
subscribes, purged when it disconnects, and lost on restart (clients
resubscribe after reconnecting). Each subscriber owns a FIFO queue drained
by its connection, so ordering holds per topic per connection.
"""

import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Iterable

from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)

MANAGERS_TOPIC = "managers"
ALL_TOPIC = "all"


def worker_topic(worker_id) -> str:
    return f"worker:{worker_id}"


class Subscriber:
    """Mailbox for one connection. deliver() is safe to call from any thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop, label: str = ""):
        self.loop = loop
        self.label = label
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def deliver(self, message: dict) -> bool:
        if self.closed:
            return False
        try:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, message)
        except RuntimeError:
            # Event loop already closed: the connection is gone
            self.closed = True
            return False
        return True

    def close(self) -> None:
        self.closed = True


class Broadcaster:

    def __init__(self):
        self._lock = threading.Lock()
        self._topics: dict[str, set] = defaultdict(set)

    def subscribe(self, topic: str, subscriber) -> None:
        with self._lock:
            self._topics[topic].add(subscriber)
        logger.debug("Subscriber %s joined %s", getattr(subscriber, "label", ""), topic)

    def unsubscribe(self, topic: str, subscriber) -> None:
        with self._lock:
            members = self._topics.get(topic)
            if members is None:
                return
            members.discard(subscriber)
            if not members:
                del self._topics[topic]

    def drop(self, subscriber) -> None:
        """Remove a subscriber from every topic (disconnect)."""
        with self._lock:
            for topic in list(self._topics):
                members = self._topics[topic]
                members.discard(subscriber)
                if not members:
                    del self._topics[topic]

    def topics_for(self, subscriber) -> list[str]:
        with self._lock:
            return sorted(topic for topic, members in self._topics.items() if subscriber in members)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._topics.get(topic, ()))

    def reset(self) -> None:
        with self._lock:
            self._topics.clear()

    def publish(self, topic: str, event: str, payload: Any) -> int:
        return self.publish_many([topic], event, payload)

    def publish_many(self, topics: Iterable[str], event: str, payload: Any) -> int:
        """
        Fan an event out to the subscribers of several topics. A subscriber
        on more than one of the topics gets the event once. Returns how many
        subscribers accepted it; never raises.
        """
        try:
            message = {"event": event, "data": jsonable_encoder(payload)}
        except Exception:
            logger.exception("Could not encode %s payload, event dropped", event)
            return 0

        with self._lock:
            targets = []
            seen = set()
            for topic in topics:
                for subscriber in self._topics.get(topic, ()):
                    if id(subscriber) not in seen:
                        seen.add(id(subscriber))
                        targets.append(subscriber)

        delivered = 0
        for subscriber in targets:
            try:
                accepted = subscriber.deliver(message)
            except Exception:
                logger.exception("Delivery of %s failed for %s", event, getattr(subscriber, "label", ""))
                accepted = False
            if accepted:
                delivered += 1
            else:
                self.drop(subscriber)

        logger.debug("Published %s to %d subscriber(s)", event, delivered)
        return delivered


broadcaster = Broadcaster()
