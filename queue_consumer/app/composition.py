"""Consumer composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle. The queue service and queue handle are passed on
explicitly; nothing here is process-wide state.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from queue_consumer.app.application.consumer_loop import ConsumerLoop
from queue_consumer.app.config.settings import Settings
from queue_consumer.app.constants import DispatchMode
from queue_consumer.app.core import SERVICE_NAME
from queue_consumer.app.domain.models import QueueHandle
from queue_consumer.app.infrastructure.credentials.static_credentials_provider import (
    create_credentials_provider,
)
from queue_consumer.app.infrastructure.messaging.factory import create_queue_service
from queue_consumer.app.ports.message_handler import ErrorCallback
from queue_consumer.app.ports.queue_service import QueueService


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ConsumerDependencies:
    """Holds wired consumer dependencies and their lifecycle."""

    def __init__(self, *, settings: Settings, queue_service: QueueService | None = None) -> None:
        self._settings = settings
        self._queue_service = queue_service
        self._queue: QueueHandle | None = None
        self._connected = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def queue_service(self) -> QueueService:
        if self._queue_service is None:
            raise RuntimeError("queue_service is not initialized")
        return self._queue_service

    @property
    def queue(self) -> QueueHandle:
        if self._queue is None:
            raise RuntimeError("queue is not resolved")
        return self._queue

    async def connect(self) -> None:
        if self._queue_service is None:
            self._queue_service = create_queue_service(
                self._settings,
                create_credentials_provider(self._settings),
            )
        await self._queue_service.connect()
        _log("queue_service_connected", backend=self._settings.queue_backend)
        self._queue = await self._queue_service.resolve_queue(self._settings.queue_name)
        self._connected = True

    def build_consumer_loop(
        self,
        mode: DispatchMode,
        *,
        on_error: ErrorCallback | None = None,
    ) -> ConsumerLoop:
        settings = self._settings
        return ConsumerLoop(
            self.queue_service,
            mode=mode,
            max_workers=settings.max_workers if mode is DispatchMode.CONCURRENT else 1,
            max_messages=settings.max_messages,
            initial_backoff_seconds=settings.initial_backoff_seconds,
            max_backoff_seconds=settings.max_backoff_seconds,
            backoff_multiplier=settings.backoff_multiplier,
            max_consecutive_poll_failures=settings.max_consecutive_poll_failures,
            idle_poll_interval_seconds=settings.idle_poll_interval_seconds,
            on_error=on_error,
        )

    async def close(self) -> None:
        if self._queue_service is not None:
            try:
                await self._queue_service.close()
            except Exception as exc:
                logger.warning("queue service close failed: {}", exc)
        self._queue = None
        self._connected = False


def create_consumer_dependencies(settings: Settings | None = None) -> ConsumerDependencies:
    return ConsumerDependencies(settings=settings or Settings())
