"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field

from queue_consumer.app.constants import MAX_MESSAGES_PER_POLL, MAX_WAIT_TIME_SECONDS


@dataclass(frozen=True)
class QueueHandle:
    """A resolved queue. `url` is what the broker addresses the queue by."""

    name: str
    url: str


@dataclass(frozen=True)
class Message:
    """One delivery of a queued message.

    `message_id` identifies the message; a redelivery carries the same id but a new
    `ack_token`. Only the token of the current delivery removes the message.
    """

    message_id: str
    body: str
    ack_token: str
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PollRequest:
    """A single receive call. wait_time_seconds == 0 is a short poll."""

    queue: QueueHandle
    wait_time_seconds: int = 0
    max_messages: int = MAX_MESSAGES_PER_POLL

    def __post_init__(self) -> None:
        if isinstance(self.wait_time_seconds, bool) or not isinstance(self.wait_time_seconds, int):
            raise TypeError("wait_time_seconds must be an int")
        if not 0 <= self.wait_time_seconds <= MAX_WAIT_TIME_SECONDS:
            raise ValueError(f"wait_time_seconds must be between 0 and {MAX_WAIT_TIME_SECONDS}")
        if isinstance(self.max_messages, bool) or not isinstance(self.max_messages, int):
            raise TypeError("max_messages must be an int")
        if not 1 <= self.max_messages <= MAX_MESSAGES_PER_POLL:
            raise ValueError(f"max_messages must be between 1 and {MAX_MESSAGES_PER_POLL}")

    @property
    def long_poll(self) -> bool:
        return self.wait_time_seconds > 0


@dataclass
class ConsumerStats:
    """Counters collected by a consumer loop run."""

    polls: int = 0
    poll_failures: int = 0
    received: int = 0
    acknowledged: int = 0
    handler_failures: int = 0
    acknowledge_failures: int = 0
