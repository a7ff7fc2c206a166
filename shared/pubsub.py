import os
import logging
from collections import defaultdict
from typing import Callable, List

import redis

from .events import Event, EventType

logger = logging.getLogger(__name__)

GLOBAL_CHANNEL = "global:announcements"
EVENT_LOG_SIZE = 1000


def coerce_event_type(event_type):
    if isinstance(event_type, EventType):
        return event_type
    try:
        return EventType(event_type)
    except ValueError:
        return event_type


class LocalEventBus:
    """
    In-process event bus.

    Handlers subscribe to an event type name or to "*" for every event.
    A failing handler is logged and never stops delivery to the others.
    """

    def __init__(self):
        self._handlers = defaultdict(list)
        self.published: List[Event] = []

    def subscribe(self, event_type, handler: Callable[[Event], None]):
        key = event_type.value if isinstance(event_type, EventType) else event_type
        self._handlers[key].append(handler)

    def subscribe_all(self, handler: Callable[[Event], None]):
        self.subscribe("*", handler)

    def publish(self, event_type, aggregate_id: str, payload: dict) -> Event:
        event = Event(type=coerce_event_type(event_type), aggregate_id=aggregate_id, data=payload)
        self.published.append(event)
        logger.info(f"Event published: {event.type_name} ({event.aggregate_type} {aggregate_id})")

        for handler in self._handlers.get(event.type_name, []) + self._handlers.get("*", []):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Error handling event {event.type_name}")
        return event

    def events_of(self, event_type) -> List[Event]:
        key = event_type.value if isinstance(event_type, EventType) else event_type
        return [e for e in self.published if e.type_name == key]

    def clear(self):
        self.published.clear()


class RedisEventBus:
    """Publishes event envelopes as JSON on Redis channels."""

    def __init__(self, redis_url: str = None, client: redis.Redis = None):
        self.redis_url = redis_url or os.getenv('REDIS_URL', 'redis://localhost:6379')
        self.redis = client or redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5
        )

    @staticmethod
    def channel_for(aggregate_type: str, aggregate_id: str) -> str:
        return f"{aggregate_type}:{aggregate_id}:events"

    def publish(self, event_type, aggregate_id: str, payload: dict) -> Event:
        event = Event(type=coerce_event_type(event_type), aggregate_id=aggregate_id, data=payload)
        message = event.to_json()

        self.redis.publish(self.channel_for(event.aggregate_type, aggregate_id), message)
        self.redis.publish(GLOBAL_CHANNEL, message)
        self.log_event(event)
        return event

    def log_event(self, event: Event):
        key = f"{event.aggregate_type}:{event.aggregate_id}:event_log"
        self.redis.lpush(key, event.to_json())
        self.redis.ltrim(key, 0, EVENT_LOG_SIZE - 1)

    def get_recent_events(self, aggregate_type: str, aggregate_id: str, count: int = 50) -> list:
        key = f"{aggregate_type}:{aggregate_id}:event_log"
        events_json = self.redis.lrange(key, 0, count - 1)
        return [Event.from_json(e) for e in events_json]
