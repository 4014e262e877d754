"""
Lifecycle event hub tests.
"""

import asyncio

import pytest

from insight_engine.services.event_hub import EventHub, LifecycleEvent
from insight_engine.services.question_service import QuestionService


def event(user_id: str = "u1", name: str = "question_submitted") -> LifecycleEvent:
    return LifecycleEvent(
        event=name,
        user_id=user_id,
        question_id="q1",
        status="queued",
        weights={"retention": 0.575},
    )


@pytest.mark.asyncio
async def test_subscriber_receives_only_its_users_events():
    hub = EventHub()
    mine = hub.subscribe(user_id="u1")
    everything = hub.subscribe()

    assert hub.publish(event("u1")) == 2
    assert hub.publish(event("u2")) == 1

    received = await asyncio.wait_for(mine.get(), timeout=1)
    assert received.user_id == "u1"
    assert mine._queue.empty()
    assert everything._queue.qsize() == 2


@pytest.mark.asyncio
async def test_full_queue_drops_without_blocking_others():
    hub = EventHub(queue_size=1)
    slow = hub.subscribe()
    fast = hub.subscribe()

    hub.publish(event())
    await fast.get()
    delivered = hub.publish(event(name="question_ready"))

    assert delivered == 1
    assert (await fast.get()).event == "question_ready"
    assert (await slow.get()).event == "question_submitted"


@pytest.mark.asyncio
async def test_closed_subscription_ends_iteration():
    hub = EventHub()
    subscription = hub.subscribe()
    hub.publish(event())
    subscription.close()

    received = [e async for e in subscription]

    assert [e.event for e in received] == ["question_submitted"]
    assert hub.subscriber_count == 0
    assert hub.publish(event()) == 0


@pytest.mark.asyncio
async def test_service_transitions_reach_live_subscribers(adapter, weight_store, session_factory, mock_user_id):
    hub = EventHub(queue_size=1)
    service = QuestionService(adapter=adapter, weight_store=weight_store, hub=hub, session_factory=session_factory)
    dashboard = hub.subscribe(user_id=mock_user_id)
    stalled = hub.subscribe()

    record = await service.submit(mock_user_id, "How is retention trending?")

    submitted = await asyncio.wait_for(dashboard.get(), timeout=1)
    assert submitted.event == "question_submitted"
    assert submitted.question_id == record.id
    assert submitted.weights_updated is True

    # The stalled subscriber's queue is full; the transition still succeeds
    cancelled = await service.cancel(record.id)
    assert cancelled.status == "cancelled"
    assert (await asyncio.wait_for(dashboard.get(), timeout=1)).event == "question_cancelled"
    assert stalled._queue.qsize() == 1
