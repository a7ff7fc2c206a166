import os
import logging
from typing import List

from google.cloud import pubsub_v1
from google.api_core import exceptions, retry

from shared.events import Event
from shared.pubsub import coerce_event_type

logger = logging.getLogger(__name__)


class GooglePubSubEventBus:
    """
    Publishes domain events to Google Cloud Pub/Sub.

    One topic per aggregate type (``match-events``, ``tournament-events``).
    The event type travels as a message attribute so subscribers can filter.
    In local mode nothing leaves the process; events are only logged.
    """

    def __init__(self, project_id: str = None, is_local: bool = None, publisher=None, subscriber=None):
        self.project_id = project_id or os.getenv('GCP_PROJECT_ID') or 'local-dev'
        self.is_local = (self.project_id == 'local-dev') if is_local is None else is_local
        self._known_topics = set()

        if not self.is_local:
            self.publisher = publisher or pubsub_v1.PublisherClient()
            self.subscriber = subscriber or pubsub_v1.SubscriberClient()
        else:
            self.publisher = None
            self.subscriber = None
            logger.info("GooglePubSubEventBus running in local development mode (no actual Pub/Sub)")

    @staticmethod
    def topic_name(aggregate_type: str) -> str:
        return f"{aggregate_type}-events"

    def get_topic_path(self, aggregate_type: str) -> str:
        if self.is_local:
            return f"local-topic-{self.topic_name(aggregate_type)}"
        return self.publisher.topic_path(self.project_id, self.topic_name(aggregate_type))

    def get_subscription_path(self, aggregate_type: str, subscriber_id: str = 'default') -> str:
        if self.is_local:
            return f"local-sub-{aggregate_type}-{subscriber_id}"
        return self.subscriber.subscription_path(
            self.project_id,
            f"{self.topic_name(aggregate_type)}-{subscriber_id}"
        )

    def ensure_topic_exists(self, aggregate_type: str):
        if self.is_local or aggregate_type in self._known_topics:
            return

        topic_path = self.get_topic_path(aggregate_type)
        try:
            self.publisher.get_topic(request={"topic": topic_path})
        except exceptions.NotFound:
            self.publisher.create_topic(request={"name": topic_path})
            logger.info(f"Created topic: {topic_path}")
        self._known_topics.add(aggregate_type)

    def ensure_subscription_exists(self, aggregate_type: str, subscriber_id: str = 'default'):
        if self.is_local:
            return

        subscription_path = self.get_subscription_path(aggregate_type, subscriber_id)
        try:
            self.subscriber.get_subscription(request={"subscription": subscription_path})
        except exceptions.NotFound:
            self.ensure_topic_exists(aggregate_type)
            self.subscriber.create_subscription(
                request={
                    "name": subscription_path,
                    "topic": self.get_topic_path(aggregate_type),
                    "ack_deadline_seconds": 60,
                    "message_retention_duration": {"seconds": 86400}  # 24 hours
                }
            )
            logger.info(f"Created subscription: {subscription_path}")

    def publish(self, event_type, aggregate_id: str, payload: dict) -> Event:
        event = Event(type=coerce_event_type(event_type), aggregate_id=aggregate_id, data=payload)

        if self.is_local:
            logger.info(f"Local mode: Published {event.type_name} for {aggregate_id}: {payload}")
            return event

        self.ensure_topic_exists(event.aggregate_type)
        future = self.publisher.publish(
            self.get_topic_path(event.aggregate_type),
            event.to_json().encode('utf-8'),
            event_type=event.type_name,
            aggregate_id=aggregate_id
        )
        message_id = future.result(timeout=5.0)
        logger.info(f"Published {event.type_name} to {event.aggregate_type}: {message_id}")
        return event

    def pull_events(self, aggregate_type: str, max_messages: int = 10,
                    subscriber_id: str = 'default') -> List[Event]:
        if self.is_local:
            return []

        subscription_path = self.get_subscription_path(aggregate_type, subscriber_id)
        response = self.subscriber.pull(
            request={
                "subscription": subscription_path,
                "max_messages": max_messages,
            },
            retry=retry.Retry(deadline=5.0),
        )

        events = []
        ack_ids = []
        for received_message in response.received_messages:
            try:
                events.append(Event.from_json(received_message.message.data.decode('utf-8')))
            except (ValueError, KeyError) as e:
                logger.error(f"Failed to parse message: {e}")
            ack_ids.append(received_message.ack_id)

        if ack_ids:
            self.subscriber.acknowledge(
                request={
                    "subscription": subscription_path,
                    "ack_ids": ack_ids,
                }
            )
        return events
