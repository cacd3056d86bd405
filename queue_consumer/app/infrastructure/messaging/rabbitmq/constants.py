"""RabbitMQ queue service lifecycle states and tuning."""
from enum import Enum

# basic.get has no server-side wait; an empty long poll re-checks at this interval.
GET_RETRY_INTERVAL_SECONDS = 0.2


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    READY = "READY"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"
