"""Errors raised across the queue service port and by message handlers."""
from __future__ import annotations


class QueueServiceError(Exception):
    """Base for queue service failures (network, service, permissions)."""


class QueueResolutionError(QueueServiceError):
    """Raised when a queue name does not resolve to a queue."""

    def __init__(self, queue_name: str, reason: str = "queue does not exist") -> None:
        super().__init__(f"{queue_name}: {reason}")
        self.queue_name = queue_name


class PollError(QueueServiceError):
    """Raised when a receive call fails. Usually transient."""


class SendError(QueueServiceError):
    """Raised when a message could not be enqueued."""


class AcknowledgeError(QueueServiceError):
    """Raised when a delivery could not be deleted. The message may be redelivered."""


class HandlerError(Exception):
    """Raised by a message handler to reject a message without a stack trace.

    The message is left unacknowledged and becomes visible again once the
    queue's visibility timeout elapses.
    """
