from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Callable, Iterable

import pytest

from queue_consumer.app.config.settings import Settings
from queue_consumer.app.domain.errors import HandlerError
from queue_consumer.app.domain.models import Message, PollRequest, QueueHandle

QUEUE = QueueHandle(name="orders", url="https://sqs.us-east-1.amazonaws.com/123456789012/orders")


def make_message(n: int, *, message_id: str | None = None, token: str | None = None) -> Message:
    return Message(
        message_id=message_id or f"m{n}",
        body=f"body-{n}",
        ack_token=token or f"t{n}",
    )


class FakeQueueService:
    """Implements QueueService for tests.

    Each poll takes the next scripted entry: a list of messages (trimmed to the
    request's max_messages, the rest is kept for the next poll) or an exception to
    raise. Once the script is used up, polls return []. Every call is appended to
    `events` so tests can assert ordering.
    """

    def __init__(
        self,
        polls: Iterable[Any] = (),
        *,
        ack_errors: dict[str, Exception] | None = None,
        on_poll: Callable[[int], None] | None = None,
    ) -> None:
        self._script: deque[Any] = deque(polls)
        self._ack_errors = dict(ack_errors or {})
        self.on_poll = on_poll
        self.events: list[tuple[str, str]] = []
        self.poll_requests: list[PollRequest] = []
        self.acknowledged: list[str] = []
        self.sent: list[str] = []
        self.connected = False
        self.closed = False

    async def connect(self) -> None:
        self.connected = True

    async def resolve_queue(self, name: str) -> QueueHandle:
        return QueueHandle(name=name, url=f"https://example.invalid/{name}")

    async def poll(self, request: PollRequest) -> list[Message]:
        self.poll_requests.append(request)
        self.events.append(("poll", str(len(self.poll_requests))))
        if self.on_poll is not None:
            self.on_poll(len(self.poll_requests))
        await asyncio.sleep(0)
        if not self._script:
            return []
        entry = self._script.popleft()
        if isinstance(entry, BaseException):
            raise entry
        batch = list(entry)
        if len(batch) > request.max_messages:
            self._script.appendleft(batch[request.max_messages:])
            batch = batch[: request.max_messages]
        return batch

    async def send(self, queue: QueueHandle, body: str) -> str:
        self.sent.append(body)
        return f"sent-{len(self.sent)}"

    async def acknowledge(self, queue: QueueHandle, ack_token: str) -> None:
        self.events.append(("ack", ack_token))
        error = self._ack_errors.get(ack_token)
        if error is not None:
            raise error
        self.acknowledged.append(ack_token)

    async def close(self) -> None:
        self.closed = True


class RecordingHandler:
    """Async handler that records each call into the queue service's event log."""

    def __init__(
        self,
        events: list[tuple[str, str]],
        *,
        fail_on: Iterable[str] = (),
        error: Exception | None = None,
    ) -> None:
        self._events = events
        self._fail_on = set(fail_on)
        self._error = error
        self.handled: list[Message] = []

    async def __call__(self, message: Message) -> None:
        self._events.append(("handle", message.message_id))
        self.handled.append(message)
        if message.message_id in self._fail_on:
            raise self._error or HandlerError(f"cannot process {message.message_id}")


class ErrorRecorder:
    def __init__(self) -> None:
        self.calls: list[tuple[Exception, Message | None]] = []

    def __call__(self, error: Exception, message: Message | None) -> None:
        self.calls.append((error, message))


def stop_after(cancellation: asyncio.Event, polls: int) -> Callable[[int], None]:
    """on_poll hook that sets `cancellation` while poll number `polls` is in flight."""

    def hook(count: int) -> None:
        if count >= polls:
            cancellation.set()

    return hook


@pytest.fixture()
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    for name in ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "SQS_ENDPOINT_URL", "QUEUE_BACKEND"):
        monkeypatch.delenv(name, raising=False)
    return Settings(
        queue_name="orders",
        aws_region="us-east-1",
        initial_backoff_seconds=0.0,
        max_backoff_seconds=0.0,
        max_connection_attempts=1,
        idle_poll_interval_seconds=0.0,
    )
