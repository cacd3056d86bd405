"""Message handlers used by the sample programs."""
from __future__ import annotations

import threading
from typing import Any

from loguru import logger

from queue_consumer.app.core import SERVICE_NAME
from queue_consumer.app.domain.models import Message


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class LoggingMessageHandler:
    """Logs every message it is given. Idempotent, so redeliveries are harmless.

    With include_thread=True the id of the thread running the handler is logged
    too, which shows the worker pool at work in concurrent mode.
    """

    def __init__(self, *, include_thread: bool = False) -> None:
        self._include_thread = include_thread
        self.handled = 0

    def __call__(self, message: Message) -> None:
        fields: dict[str, Any] = {"message_id": message.message_id, "body": message.body}
        receive_count = message.attributes.get("ApproximateReceiveCount")
        if receive_count is not None:
            fields["receive_count"] = receive_count
        if self._include_thread:
            fields["thread_id"] = threading.get_ident()
        _log("message_handled", **fields)
        self.handled += 1
