"""
Lifecycle event hub.

Fans lifecycle events out to subscribers (dashboard websockets, tests) through
per-subscriber queues. Publishing never awaits a subscriber: a full queue
drops the event for that subscriber only.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class LifecycleEvent(BaseModel):
    """Notification emitted after a lifecycle transition commits."""

    event: str  # "question_submitted", "clarification_completed", "question_ready", ...
    user_id: str
    question_id: str
    status: str
    weights: dict[str, float]
    intent: Optional[dict[str, Any]] = None
    weights_updated: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Subscription:
    """A subscriber's queue; iterate it to receive events."""

    def __init__(self, hub: "EventHub", user_id: Optional[str], maxsize: int):
        self.id = str(uuid.uuid4())
        self.user_id = user_id
        self._hub = hub
        self._queue: asyncio.Queue[LifecycleEvent | None] = asyncio.Queue(maxsize=maxsize)

    def wants(self, event: LifecycleEvent) -> bool:
        return self.user_id is None or self.user_id == event.user_id

    def offer(self, event: LifecycleEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    async def get(self) -> LifecycleEvent | None:
        return await self._queue.get()

    def close(self) -> None:
        """Detach from the hub and wake any pending reader."""
        self._hub.unsubscribe(self)
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    async def __aiter__(self) -> AsyncIterator[LifecycleEvent]:
        while True:
            item = await self._queue.get()
            if item is None:
                break
            yield item


class EventHub:
    """In-process fan-out of lifecycle events."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscriptions: dict[str, Subscription] = {}

    def subscribe(self, user_id: Optional[str] = None) -> Subscription:
        """Subscribe to one user's events, or to everything when user_id is None."""
        subscription = Subscription(self, user_id, self.queue_size)
        self._subscriptions[subscription.id] = subscription
        logger.debug("Event subscriber added", subscription_id=subscription.id, user_id=user_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: LifecycleEvent) -> int:
        """Deliver an event to every interested subscriber. Returns the delivery count."""
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if not subscription.wants(event):
                continue
            if subscription.offer(event):
                delivered += 1
            else:
                logger.warning(
                    "Subscriber queue full, event dropped",
                    subscription_id=subscription.id,
                    event_name=event.event,
                    question_id=event.question_id,
                )
        logger.debug("Lifecycle event published", event_name=event.event, delivered=delivered)
        return delivered


# Global event hub
event_hub = EventHub()
