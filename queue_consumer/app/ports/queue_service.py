"""Port: queue service (send / poll / acknowledge). Implementations live in infrastructure.

Delivery is at-least-once: a message may be returned more than once, out of order,
and an empty poll does not mean the queue is empty.
"""
from __future__ import annotations

from typing import Protocol

from queue_consumer.app.domain.models import Message, PollRequest, QueueHandle


class QueueService(Protocol):
    async def connect(self) -> None: ...

    async def resolve_queue(self, name: str) -> QueueHandle:
        """Return the handle for `name`; raise QueueResolutionError if it does not exist."""
        ...

    async def poll(self, request: PollRequest) -> list[Message]:
        """Receive up to request.max_messages, blocking up to request.wait_time_seconds. Raise PollError."""
        ...

    async def send(self, queue: QueueHandle, body: str) -> str:
        """Enqueue `body`; return the message id. Raise SendError."""
        ...

    async def acknowledge(self, queue: QueueHandle, ack_token: str) -> None:
        """Delete the delivery identified by `ack_token`.

        An already acknowledged or expired token is a no-op. Other failures raise AcknowledgeError.
        Must be safe to call concurrently for different tokens.
        """
        ...

    async def close(self) -> None:
        """Release resources. No-op allowed if nothing to close."""
        ...
