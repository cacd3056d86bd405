"""Port: per-message handler and error callback used by the consumer loop."""
from __future__ import annotations

from typing import Awaitable, Protocol

from queue_consumer.app.domain.models import Message


class MessageHandler(Protocol):
    """Processes one message. Returning normally acknowledges it; raising leaves it on the queue.

    Sync and async callables are both accepted. Since delivery is at-least-once, a
    handler must tolerate being called more than once for the same message.
    """

    def __call__(self, message: Message) -> Awaitable[None] | None: ...


class ErrorCallback(Protocol):
    """Receives poll, handler and acknowledge failures. Raising from it stops the loop."""

    def __call__(self, error: Exception, message: Message | None) -> None: ...
