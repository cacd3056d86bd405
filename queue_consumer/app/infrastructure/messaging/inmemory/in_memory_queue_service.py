"""In-memory queue service for tests and local runs.

Behaves like SQS where the consumer loop can tell: a received message is hidden
for the visibility timeout, becomes visible again if it is not acknowledged in
time, and every delivery gets a fresh ack token. Only the latest token of a
message deletes it; older tokens are ignored.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from loguru import logger

from queue_consumer.app.core import SERVICE_NAME
from queue_consumer.app.domain.errors import PollError, QueueResolutionError, SendError
from queue_consumer.app.domain.models import Message, PollRequest, QueueHandle

# Long polls re-check for expired visibility at least this often.
_RECHECK_INTERVAL_SECONDS = 0.05


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    visible_at: float = 0.0
    receive_count: int = 0
    ack_token: str | None = None


class InMemoryQueueService:
    def __init__(
        self,
        *,
        visibility_timeout_seconds: float = 30.0,
        queue_names: Iterable[str] = (),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._visibility_timeout_seconds = visibility_timeout_seconds
        self._clock = clock
        self._queues: dict[str, list[_StoredMessage]] = {}
        self._arrivals: dict[str, asyncio.Event] = {}
        self._deliveries: dict[str, tuple[str, _StoredMessage]] = {}
        for name in queue_names:
            self.create_queue(name)

    def create_queue(self, name: str) -> QueueHandle:
        self._queues.setdefault(name, [])
        return QueueHandle(name=name, url=f"memory://{name}")

    def approximate_number_of_messages(self, name: str) -> int:
        """Messages not yet deleted, visible or not."""
        return len(self._queues.get(name, []))

    async def connect(self) -> None:
        return

    async def resolve_queue(self, name: str) -> QueueHandle:
        if name not in self._queues:
            raise QueueResolutionError(name)
        return QueueHandle(name=name, url=f"memory://{name}")

    async def send(self, queue: QueueHandle, body: str) -> str:
        stored = self._queues.get(queue.name)
        if stored is None:
            raise SendError(f"queue {queue.name} does not exist")
        message_id = str(uuid.uuid4())
        stored.append(_StoredMessage(message_id=message_id, body=body))
        self._arrival_event(queue.name).set()
        return message_id

    async def poll(self, request: PollRequest) -> list[Message]:
        await asyncio.sleep(0)
        deadline = self._clock() + request.wait_time_seconds
        while True:
            batch = self._receive_visible(request.queue.name, request.max_messages)
            if batch or not request.long_poll:
                return batch
            remaining = deadline - self._clock()
            if remaining <= 0:
                return []
            arrival = self._arrival_event(request.queue.name)
            arrival.clear()
            try:
                await asyncio.wait_for(arrival.wait(), timeout=min(remaining, _RECHECK_INTERVAL_SECONDS))
            except asyncio.TimeoutError:
                pass

    async def acknowledge(self, queue: QueueHandle, ack_token: str) -> None:
        delivery = self._deliveries.pop(ack_token, None)
        if delivery is None:
            _log("acknowledge_stale_token", queue=queue.name)
            return
        name, stored = delivery
        messages = self._queues.get(name, [])
        if stored in messages:
            messages.remove(stored)

    async def close(self) -> None:
        return

    def _arrival_event(self, name: str) -> asyncio.Event:
        event = self._arrivals.get(name)
        if event is None:
            event = self._arrivals[name] = asyncio.Event()
        return event

    def _receive_visible(self, name: str, max_messages: int) -> list[Message]:
        stored_messages = self._queues.get(name)
        if stored_messages is None:
            raise PollError(f"queue {name} does not exist")
        now = self._clock()
        batch: list[Message] = []
        for stored in stored_messages:
            if len(batch) >= max_messages:
                break
            if stored.visible_at > now:
                continue
            if stored.ack_token is not None:
                self._deliveries.pop(stored.ack_token, None)
            stored.ack_token = uuid.uuid4().hex
            stored.receive_count += 1
            stored.visible_at = now + self._visibility_timeout_seconds
            self._deliveries[stored.ack_token] = (name, stored)
            batch.append(
                Message(
                    message_id=stored.message_id,
                    body=stored.body,
                    ack_token=stored.ack_token,
                    attributes={"ApproximateReceiveCount": str(stored.receive_count)},
                )
            )
        return batch
