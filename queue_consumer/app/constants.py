"""Consumer-level constants shared across modules."""
from __future__ import annotations

from enum import Enum

# Service-side caps of a single ReceiveMessage call.
MAX_WAIT_TIME_SECONDS = 20
MAX_MESSAGES_PER_POLL = 10


class DispatchMode(str, Enum):
    SEQUENTIAL = "SEQUENTIAL"
    CONCURRENT = "CONCURRENT"


class DeliveryOutcome(str, Enum):
    ACKNOWLEDGED = "ACKNOWLEDGED"
    UNACKNOWLEDGED = "UNACKNOWLEDGED"
