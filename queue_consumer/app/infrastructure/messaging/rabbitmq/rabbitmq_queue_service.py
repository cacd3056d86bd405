"""
RabbitMQ queue service: aio-pika behind the QueueService port.

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> CONNECTED -> READY (channel open).
  On close: READY -> CLOSING -> nack pending deliveries, close channel/connection -> CLOSED.
  connect_robust restores the connection after a broker disconnect.

Polling uses basic.get, so a long poll is emulated by re-checking the queue until a
message arrives or the wait time is used up.

RabbitMQ has no visibility timeout: an unacked delivery stays with this channel.
Each delivery therefore gets a timer; if it is not acknowledged within
visibility_timeout_seconds it is nacked with requeue=True and becomes available
again, which matches what SQS does with an unacknowledged message. Ack tokens are
random per delivery; an unknown or expired token is a no-op.
"""
from __future__ import annotations

import asyncio
import uuid
from typing import Any

import aio_pika
from loguru import logger

from queue_consumer.app.config.settings import Settings
from queue_consumer.app.core import SERVICE_NAME
from queue_consumer.app.core.backoff import exponential_backoff
from queue_consumer.app.domain.errors import AcknowledgeError, PollError, QueueResolutionError, SendError
from queue_consumer.app.domain.models import Message, PollRequest, QueueHandle
from queue_consumer.app.infrastructure.messaging.rabbitmq.constants import (
    GET_RETRY_INTERVAL_SECONDS,
    ConnectionState,
)


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQQueueService:
    """QueueService implementation for a RabbitMQ broker."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = ConnectionState.DISCONNECTED
        self._connection: aio_pika.abc.AbstractRobustConnection | None = None
        self._channel: aio_pika.abc.AbstractChannel | None = None
        self._queues: dict[str, aio_pika.abc.AbstractQueue] = {}
        self._pending: dict[str, aio_pika.abc.AbstractIncomingMessage] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._releases: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> ConnectionState:
        return self._state

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state

    def _build_amqp_url(self) -> str:
        return (
            f"amqp://{self._settings.broker_user}:{self._settings.broker_password}"
            f"@{self._settings.broker_host}:{self._settings.broker_port}/"
        )

    def _require_channel(self) -> aio_pika.abc.AbstractChannel:
        if self._channel is None:
            raise RuntimeError("queue service not connected")
        return self._channel

    async def connect(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        _log("rmq_connecting")
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            attempt += 1
            _log("rmq_connect_attempt", attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect_robust(self._build_amqp_url())
                break
            except Exception as e:
                logger.warning("rmq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", attempt=attempt)
                    self._set_state(ConnectionState.DISCONNECTED)
                    raise
        self._set_state(ConnectionState.CONNECTED)
        _log("rmq_connected")
        self._channel = await self._connection.channel()
        self._set_state(ConnectionState.READY)

    async def resolve_queue(self, name: str) -> QueueHandle:
        channel = self._require_channel()
        try:
            queue = await channel.declare_queue(name, passive=True)
        except Exception as exc:
            # A failed passive declare closes the channel on the broker side.
            if self._connection is not None:
                self._channel = await self._connection.channel()
                self._queues.clear()
            raise QueueResolutionError(name, str(exc) or "queue does not exist") from exc
        self._queues[name] = queue
        _log("queue_found", queue=name)
        return QueueHandle(name=name, url=name)

    async def _get_queue(self, queue: QueueHandle) -> aio_pika.abc.AbstractQueue:
        declared = self._queues.get(queue.name)
        if declared is None:
            await self.resolve_queue(queue.name)
            declared = self._queues[queue.name]
        return declared

    async def poll(self, request: PollRequest) -> list[Message]:
        self._require_channel()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + request.wait_time_seconds
        messages: list[Message] = []
        try:
            queue = await self._get_queue(request.queue)
            while len(messages) < request.max_messages:
                incoming = await queue.get(no_ack=False, fail=False)
                if incoming is not None:
                    messages.append(self._track(incoming))
                    continue
                remaining = deadline - loop.time()
                if messages or remaining <= 0:
                    break
                await asyncio.sleep(min(GET_RETRY_INTERVAL_SECONDS, remaining))
        except QueueResolutionError as exc:
            raise PollError(str(exc)) from exc
        except Exception as exc:
            raise PollError(f"receive from {request.queue.name} failed: {exc}") from exc
        return messages

    def _track(self, incoming: aio_pika.abc.AbstractIncomingMessage) -> Message:
        token = uuid.uuid4().hex
        self._pending[token] = incoming
        loop = asyncio.get_running_loop()
        self._timers[token] = loop.call_later(
            self._settings.visibility_timeout_seconds,
            self._schedule_release,
            token,
        )
        return Message(
            message_id=incoming.message_id or token,
            body=incoming.body.decode("utf-8", errors="replace"),
            ack_token=token,
        )

    def _forget(self, token: str) -> aio_pika.abc.AbstractIncomingMessage | None:
        timer = self._timers.pop(token, None)
        if timer is not None:
            timer.cancel()
        return self._pending.pop(token, None)

    def _schedule_release(self, token: str) -> None:
        task = asyncio.create_task(self._release(token))
        self._releases.add(task)
        task.add_done_callback(self._releases.discard)

    async def _release(self, token: str) -> None:
        incoming = self._forget(token)
        if incoming is None:
            return
        _log("delivery_expired", message_id=incoming.message_id)
        try:
            await incoming.nack(requeue=True)
        except Exception as e:
            logger.warning("requeue of expired delivery failed: {}", e)

    async def send(self, queue: QueueHandle, body: str) -> str:
        channel = self._require_channel()
        message_id = uuid.uuid4().hex
        try:
            await channel.default_exchange.publish(
                aio_pika.Message(
                    body=body.encode(),
                    message_id=message_id,
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                ),
                routing_key=queue.url,
            )
        except Exception as exc:
            raise SendError(f"send to {queue.name} failed: {exc}") from exc
        _log("message_sent", queue=queue.name, message_id=message_id)
        return message_id

    async def acknowledge(self, queue: QueueHandle, ack_token: str) -> None:
        incoming = self._forget(ack_token)
        if incoming is None:
            _log("acknowledge_stale_token", queue=queue.name)
            return
        try:
            await incoming.ack()
        except Exception as exc:
            raise AcknowledgeError(f"ack on {queue.name} failed: {exc}") from exc

    async def close(self) -> None:
        self._set_state(ConnectionState.CLOSING)
        _log("rmq_closing", pending=len(self._pending))
        for token in list(self._pending):
            await self._release(token)
        if self._releases:
            await asyncio.gather(*list(self._releases), return_exceptions=True)
        self._queues.clear()
        if self._channel is not None:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
            self._channel = None
        if self._connection is not None:
            try:
                await self._connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
            self._connection = None
        self._set_state(ConnectionState.CLOSED)
