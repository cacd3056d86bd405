"""Unit tests for InMemoryQueueService: visibility timeout, redelivery and stale tokens."""
from __future__ import annotations

import asyncio

import pytest

from queue_consumer.app.domain.errors import PollError, QueueResolutionError, SendError
from queue_consumer.app.domain.models import PollRequest, QueueHandle
from queue_consumer.app.infrastructure.messaging.inmemory.in_memory_queue_service import InMemoryQueueService


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_resolve_unknown_queue_raises():
    service = InMemoryQueueService(queue_names=["orders"])
    with pytest.raises(QueueResolutionError, match="missing"):
        await service.resolve_queue("missing")


@pytest.mark.asyncio
async def test_send_receive_acknowledge():
    service = InMemoryQueueService(queue_names=["orders"])
    queue = await service.resolve_queue("orders")

    message_id = await service.send(queue, "hello")
    messages = await service.poll(PollRequest(queue=queue))

    assert [(m.message_id, m.body) for m in messages] == [(message_id, "hello")]
    assert messages[0].attributes["ApproximateReceiveCount"] == "1"

    await service.acknowledge(queue, messages[0].ack_token)
    assert service.approximate_number_of_messages("orders") == 0


@pytest.mark.asyncio
async def test_received_message_is_hidden_until_visibility_timeout():
    clock = FakeClock()
    service = InMemoryQueueService(visibility_timeout_seconds=30, queue_names=["orders"], clock=clock)
    queue = await service.resolve_queue("orders")
    await service.send(queue, "hello")

    first = await service.poll(PollRequest(queue=queue))
    assert len(first) == 1
    assert await service.poll(PollRequest(queue=queue)) == []

    clock.now += 31
    second = await service.poll(PollRequest(queue=queue))

    assert len(second) == 1
    assert second[0].message_id == first[0].message_id
    assert second[0].ack_token != first[0].ack_token
    assert second[0].attributes["ApproximateReceiveCount"] == "2"


@pytest.mark.asyncio
async def test_stale_token_is_a_no_op():
    clock = FakeClock()
    service = InMemoryQueueService(visibility_timeout_seconds=5, queue_names=["orders"], clock=clock)
    queue = await service.resolve_queue("orders")
    await service.send(queue, "hello")

    stale = (await service.poll(PollRequest(queue=queue)))[0]
    clock.now += 6
    current = (await service.poll(PollRequest(queue=queue)))[0]

    await service.acknowledge(queue, stale.ack_token)
    assert service.approximate_number_of_messages("orders") == 1

    await service.acknowledge(queue, current.ack_token)
    await service.acknowledge(queue, current.ack_token)
    assert service.approximate_number_of_messages("orders") == 0


@pytest.mark.asyncio
async def test_poll_returns_at_most_max_messages_in_send_order():
    service = InMemoryQueueService(queue_names=["orders"])
    queue = await service.resolve_queue("orders")
    for n in range(5):
        await service.send(queue, f"body-{n}")

    batch = await service.poll(PollRequest(queue=queue, max_messages=3))

    assert [m.body for m in batch] == ["body-0", "body-1", "body-2"]


@pytest.mark.asyncio
async def test_long_poll_returns_when_a_message_arrives():
    service = InMemoryQueueService(queue_names=["orders"])
    queue = await service.resolve_queue("orders")

    pending = asyncio.create_task(service.poll(PollRequest(queue=queue, wait_time_seconds=5)))
    await asyncio.sleep(0.01)
    assert not pending.done()
    await service.send(queue, "late")

    messages = await asyncio.wait_for(pending, timeout=1)
    assert [m.body for m in messages] == ["late"]


@pytest.mark.asyncio
async def test_long_poll_times_out_with_empty_result():
    ticks = iter(range(0, 100))
    service = InMemoryQueueService(queue_names=["orders"], clock=lambda: float(next(ticks)))
    queue = await service.resolve_queue("orders")

    messages = await asyncio.wait_for(
        service.poll(PollRequest(queue=queue, wait_time_seconds=3)),
        timeout=1,
    )

    assert messages == []


@pytest.mark.asyncio
async def test_poll_and_send_on_unknown_queue_fail():
    service = InMemoryQueueService()
    missing = QueueHandle(name="missing", url="memory://missing")

    with pytest.raises(PollError):
        await service.poll(PollRequest(queue=missing))
    with pytest.raises(SendError):
        await service.send(missing, "x")
