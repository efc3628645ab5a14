"""
Event bus for change notifications.

Lifecycle transitions publish events here so that listing views (and any
connected client) can refresh without holding references to each other.
Supports an in-memory bus for tests/local runs and Redis pub/sub for
production.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)

REQUESTS_CHANGED = "requests.changed"
APPLICATIONS_CHANGED = "applications.changed"
TICKETS_CHANGED = "tickets.changed"
SERVICES_CHANGED = "services.changed"
PROFILES_CHANGED = "profiles.changed"

Handler = Callable[[dict], None]


class EventBus(Protocol):
    """Minimal publish/subscribe interface."""

    def publish(self, topic: str, payload: dict) -> None:
        ...

    def subscribe(self, topic: str, handler: Handler) -> None:
        ...

    def close(self) -> None:
        ...


@dataclass
class InMemoryEventBus:
    """Synchronous bus; handlers run inside publish()."""

    handlers: dict[str, list[Handler]] = field(default_factory=dict)
    published: list[tuple[str, dict]] = field(default_factory=list)

    def publish(self, topic: str, payload: dict) -> None:
        self.published.append((topic, payload))
        for handler in self.handlers.get(topic, []):
            try:
                handler(payload)
            except Exception:
                logger.exception("Event handler failed for %s", topic)

    def subscribe(self, topic: str, handler: Handler) -> None:
        self.handlers.setdefault(topic, []).append(handler)

    def close(self) -> None:
        self.handlers.clear()


@dataclass
class RedisEventBus:
    """Redis pub/sub bus. Channels are named `<channel_prefix>:<topic>`."""

    url: str
    channel_prefix: str = "marketplace"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)
        self.handlers: dict[str, list[Handler]] = {}
        self._pubsub = None
        self._thread = None

    def _channel(self, topic: str) -> str:
        return f"{self.channel_prefix}:{topic}"

    def publish(self, topic: str, payload: dict) -> None:
        try:
            self.client.publish(self._channel(topic), json.dumps(payload))
        except redis_exceptions.ConnectionError as e:
            # Notifications are best effort; reconnect for the next publish.
            logger.warning("Dropped %s event: %s", topic, e)
            self.client.close()
            self.client = redis.Redis.from_url(self.url)

    def subscribe(self, topic: str, handler: Handler) -> None:
        first_for_topic = topic not in self.handlers
        self.handlers.setdefault(topic, []).append(handler)
        if not first_for_topic:
            return
        if self._pubsub is None:
            self._pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        self._pubsub.subscribe(**{self._channel(topic): self._make_listener(topic)})
        if self._thread is None:
            self._thread = self._pubsub.run_in_thread(sleep_time=0.5, daemon=True)

    def _make_listener(self, topic: str) -> Callable[[dict], None]:
        def listener(message: dict) -> None:
            try:
                payload = json.loads(message["data"])
            except (TypeError, ValueError):
                logger.warning("Ignoring malformed %s event", topic)
                return
            for handler in self.handlers.get(topic, []):
                try:
                    handler(payload)
                except Exception:
                    logger.exception("Event handler failed for %s", topic)

        return listener

    def close(self) -> None:
        if self._thread is not None:
            self._thread.stop()
            self._thread = None
        if self._pubsub is not None:
            self._pubsub.close()
            self._pubsub = None
        self.client.close()
