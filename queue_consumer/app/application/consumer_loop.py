"""
Consumer loop: poll the queue, hand each message to a handler, acknowledge on success.

Delivery is at-least-once. A message is acknowledged only after its handler returns
without raising; a failing handler leaves the delivery unacknowledged and the queue
makes it visible again once its visibility timeout elapses. The loop does not
deduplicate, so handlers must tolerate repeated deliveries of the same message.

Scheduling:
  SEQUENTIAL: poll -> handle -> acknowledge in the calling task. Sync handlers run
  inline; the poll is the only long suspension point.
  CONCURRENT: the calling task polls; each message runs in its own worker task, at
  most max_workers at a time. A poll requests only as many messages as there are
  free workers and waits for one when all are busy. Each worker acknowledges its own
  message as soon as its handler returns. Sync handlers are moved to a thread.

Cancellation:
  Cooperative. The event is checked before every poll. An in-flight poll is never
  interrupted and its messages are fully processed; running handlers always finish
  and run() waits for all workers before returning.
"""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import asdict
from typing import Any

from loguru import logger

from queue_consumer.app.constants import MAX_MESSAGES_PER_POLL, DeliveryOutcome, DispatchMode
from queue_consumer.app.core import SERVICE_NAME
from queue_consumer.app.core.backoff import backoff_delay
from queue_consumer.app.domain.errors import AcknowledgeError, HandlerError, PollError
from queue_consumer.app.domain.models import ConsumerStats, Message, PollRequest, QueueHandle
from queue_consumer.app.ports.message_handler import ErrorCallback, MessageHandler
from queue_consumer.app.ports.queue_service import QueueService


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _is_async_handler(handler: MessageHandler) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )


def _chain(error: Exception, cause: Exception) -> Exception:
    error.__cause__ = cause
    return error


class ConsumerLoop:
    """Polls a queue and acknowledges each message after its handler succeeds."""

    def __init__(
        self,
        queue_service: QueueService,
        *,
        mode: DispatchMode = DispatchMode.SEQUENTIAL,
        max_workers: int = 1,
        max_messages: int = MAX_MESSAGES_PER_POLL,
        initial_backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 30.0,
        backoff_multiplier: float = 2.0,
        max_consecutive_poll_failures: int | None = None,
        idle_poll_interval_seconds: float = 0.0,
        on_error: ErrorCallback | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if not 1 <= max_messages <= MAX_MESSAGES_PER_POLL:
            raise ValueError(f"max_messages must be between 1 and {MAX_MESSAGES_PER_POLL}")
        if max_consecutive_poll_failures is not None and max_consecutive_poll_failures < 1:
            raise ValueError("max_consecutive_poll_failures must be at least 1")
        self._queue_service = queue_service
        self._mode = DispatchMode(mode)
        self._max_workers = max_workers
        self._max_messages = max_messages
        self._initial_backoff_seconds = initial_backoff_seconds
        self._max_backoff_seconds = max_backoff_seconds
        self._backoff_multiplier = backoff_multiplier
        self._max_consecutive_poll_failures = max_consecutive_poll_failures
        self._idle_poll_interval_seconds = idle_poll_interval_seconds
        self._on_error = on_error
        self._stats = ConsumerStats()
        self._in_flight: set[asyncio.Task[DeliveryOutcome]] = set()
        self._worker_error: BaseException | None = None

    @property
    def mode(self) -> DispatchMode:
        return self._mode

    @property
    def stats(self) -> ConsumerStats:
        return self._stats

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def run(
        self,
        queue: QueueHandle,
        handler: MessageHandler,
        wait_time_seconds: int,
        cancellation: asyncio.Event,
    ) -> ConsumerStats:
        """Consume until `cancellation` is set; return the counters of this loop."""
        # Rejects a wait time outside 0..20 before the first poll.
        request = PollRequest(queue=queue, wait_time_seconds=wait_time_seconds)
        _log(
            "consumer_started",
            queue=queue.name,
            mode=self._mode.value,
            wait_time_seconds=request.wait_time_seconds,
            long_poll=request.long_poll,
            max_workers=self._max_workers,
        )
        consecutive_failures = 0
        try:
            while not cancellation.is_set():
                self._raise_worker_error()
                if self._mode is DispatchMode.CONCURRENT:
                    await self._wait_for_free_worker(cancellation)
                    self._raise_worker_error()
                    if cancellation.is_set():
                        break

                try:
                    messages = await self._poll(queue, wait_time_seconds, self._poll_size())
                except PollError:
                    consecutive_failures += 1
                    limit = self._max_consecutive_poll_failures
                    if limit is not None and consecutive_failures >= limit:
                        _log("poll_failures_exhausted", queue=queue.name, attempts=consecutive_failures)
                        raise
                    delay = backoff_delay(
                        consecutive_failures,
                        self._initial_backoff_seconds,
                        self._max_backoff_seconds,
                        self._backoff_multiplier,
                    )
                    _log("poll_backoff", queue=queue.name, attempt=consecutive_failures, delay=delay)
                    await self._sleep(delay, cancellation)
                    continue

                consecutive_failures = 0
                await self._dispatch(queue, handler, messages)
                if not messages and not request.long_poll:
                    await self._sleep(self._idle_poll_interval_seconds, cancellation)
        finally:
            await self._drain()
        self._raise_worker_error()
        _log("consumer_stopped", queue=queue.name, **asdict(self._stats))
        return self._stats

    async def poll_once(
        self,
        queue: QueueHandle,
        handler: MessageHandler,
        wait_time_seconds: int = 0,
    ) -> list[DeliveryOutcome]:
        """Run a single poll -> handle -> acknowledge cycle. PollError propagates to the caller."""
        size = self._max_messages
        if self._mode is DispatchMode.CONCURRENT:
            size = min(size, self._max_workers)
        messages = await self._poll(queue, wait_time_seconds, size)
        if self._mode is DispatchMode.SEQUENTIAL:
            return [await self.process_message(queue, handler, message) for message in messages]
        outcomes = await asyncio.gather(
            *(self.process_message(queue, handler, message) for message in messages)
        )
        return list(outcomes)

    async def process_message(
        self,
        queue: QueueHandle,
        handler: MessageHandler,
        message: Message,
    ) -> DeliveryOutcome:
        """Handle one delivery, then acknowledge it if the handler succeeded."""
        _log("message_received", queue=queue.name, message_id=message.message_id)
        try:
            await self._invoke(handler, message)
        except HandlerError as exc:
            self._stats.handler_failures += 1
            logger.warning("handler rejected message {}: {}", message.message_id, exc)
            self._report(exc, message)
            return DeliveryOutcome.UNACKNOWLEDGED
        except Exception as exc:
            self._stats.handler_failures += 1
            logger.exception("handler failed for message {}: {}", message.message_id, exc)
            self._report(exc, message)
            return DeliveryOutcome.UNACKNOWLEDGED

        try:
            await self._queue_service.acknowledge(queue, message.ack_token)
        except Exception as exc:
            self._stats.acknowledge_failures += 1
            error = exc if isinstance(exc, AcknowledgeError) else _chain(AcknowledgeError(str(exc)), exc)
            logger.warning("acknowledge failed for message {}: {}", message.message_id, error)
            self._report(error, message)
            return DeliveryOutcome.UNACKNOWLEDGED

        self._stats.acknowledged += 1
        _log("message_acknowledged", queue=queue.name, message_id=message.message_id)
        return DeliveryOutcome.ACKNOWLEDGED

    async def _poll(self, queue: QueueHandle, wait_time_seconds: int, max_messages: int) -> list[Message]:
        request = PollRequest(queue=queue, wait_time_seconds=wait_time_seconds, max_messages=max_messages)
        self._stats.polls += 1
        try:
            messages = await self._queue_service.poll(request)
        except PollError as exc:
            self._stats.poll_failures += 1
            logger.warning("poll failed on {}: {}", queue.name, exc)
            self._report(exc, None)
            raise
        except Exception as exc:
            self._stats.poll_failures += 1
            logger.exception("poll failed on {}: {}", queue.name, exc)
            error = _chain(PollError(str(exc)), exc)
            self._report(error, None)
            raise error
        self._stats.received += len(messages)
        _log("poll_completed", queue=queue.name, count=len(messages), long_poll=request.long_poll)
        return messages

    async def _dispatch(self, queue: QueueHandle, handler: MessageHandler, messages: list[Message]) -> None:
        if self._mode is DispatchMode.SEQUENTIAL:
            for message in messages:
                await self.process_message(queue, handler, message)
            return
        for message in messages:
            task = asyncio.create_task(
                self.process_message(queue, handler, message),
                name=f"consume-{message.message_id}",
            )
            self._in_flight.add(task)
            task.add_done_callback(self._on_worker_done)

    async def _invoke(self, handler: MessageHandler, message: Message) -> None:
        if _is_async_handler(handler):
            await handler(message)
            return
        if self._mode is DispatchMode.CONCURRENT:
            result = await asyncio.to_thread(handler, message)
        else:
            result = handler(message)
        if inspect.isawaitable(result):
            await result

    def _report(self, error: Exception, message: Message | None) -> None:
        if self._on_error is not None:
            self._on_error(error, message)

    def _poll_size(self) -> int:
        if self._mode is DispatchMode.SEQUENTIAL:
            return self._max_messages
        return max(1, min(self._max_messages, self._max_workers - len(self._in_flight)))

    def _on_worker_done(self, task: asyncio.Task[DeliveryOutcome]) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None and self._worker_error is None:
            self._worker_error = error

    def _raise_worker_error(self) -> None:
        # Only an error callback that raises can fail a worker.
        if self._worker_error is not None:
            error, self._worker_error = self._worker_error, None
            raise error

    async def _wait_for_free_worker(self, cancellation: asyncio.Event) -> None:
        while not cancellation.is_set():
            self._in_flight = {task for task in self._in_flight if not task.done()}
            if len(self._in_flight) < self._max_workers:
                return
            cancelled = asyncio.create_task(cancellation.wait())
            try:
                await asyncio.wait({cancelled, *self._in_flight}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                cancelled.cancel()

    async def _drain(self) -> None:
        if not self._in_flight:
            return
        _log("consumer_draining", in_flight=len(self._in_flight))
        await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def _sleep(self, delay: float, cancellation: asyncio.Event) -> None:
        if cancellation.is_set():
            return
        if delay <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(cancellation.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
