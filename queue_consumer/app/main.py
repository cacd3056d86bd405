import asyncio
import signal
from typing import Any

from loguru import logger

from queue_consumer.app.application.handlers import LoggingMessageHandler
from queue_consumer.app.composition import ConsumerDependencies, create_consumer_dependencies
from queue_consumer.app.config.settings import Settings
from queue_consumer.app.constants import DeliveryOutcome, DispatchMode
from queue_consumer.app.core import SERVICE_NAME
from queue_consumer.app.core.logging import configure_logging
from queue_consumer.app.domain.models import ConsumerStats

SEND_RECEIVE_BODY = "Test SQS send and receive."


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _install_signal_handlers(shutdown: asyncio.Event) -> None:
    def request_shutdown() -> None:
        if not shutdown.is_set():
            _log("shutdown_signal")
            shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except (NotImplementedError, RuntimeError):
            pass


async def run_consumer(
    settings: Settings,
    *,
    mode: DispatchMode = DispatchMode.SEQUENTIAL,
    shutdown: asyncio.Event | None = None,
    dependencies: ConsumerDependencies | None = None,
) -> ConsumerStats:
    """Consume from settings.queue_name until SIGINT/SIGTERM (or `shutdown`) is set."""
    deps = dependencies or create_consumer_dependencies(settings)
    if shutdown is None:
        shutdown = asyncio.Event()
        _install_signal_handlers(shutdown)
    try:
        await deps.connect()
        consumer = deps.build_consumer_loop(mode)
        handler = LoggingMessageHandler(include_thread=mode is DispatchMode.CONCURRENT)
        _log("consumer_listening", queue=deps.queue.name, mode=mode.value)
        return await consumer.run(deps.queue, handler, settings.wait_time_seconds, shutdown)
    finally:
        await deps.close()


async def send_and_receive(
    settings: Settings,
    *,
    dependencies: ConsumerDependencies | None = None,
) -> list[DeliveryOutcome]:
    """Send one message, then short-poll once and acknowledge what comes back.

    A short poll may return nothing even though the message was sent: the
    answering server may not have a copy yet. That is not an error.
    """
    deps = dependencies or create_consumer_dependencies(settings)
    try:
        await deps.connect()
        message_id = await deps.queue_service.send(deps.queue, SEND_RECEIVE_BODY)
        _log("message_sent", queue=deps.queue.name, message_id=message_id)
        consumer = deps.build_consumer_loop(DispatchMode.SEQUENTIAL)
        outcomes = await consumer.poll_once(deps.queue, LoggingMessageHandler(), wait_time_seconds=0)
        _log("send_receive_completed", sent=message_id, received=len(outcomes))
        return outcomes
    finally:
        await deps.close()


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    try:
        asyncio.run(run_consumer(settings))
    except KeyboardInterrupt:
        _log("consumer_interrupted")
    except Exception as e:
        logger.exception("consumer failed: {}", e)
        raise


if __name__ == "__main__":
    main()
