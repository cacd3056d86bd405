"""Queue service factory: selects implementation from config. Only place that imports concrete adapters."""
from __future__ import annotations

from queue_consumer.app.config.settings import Settings
from queue_consumer.app.infrastructure.messaging.inmemory.in_memory_queue_service import InMemoryQueueService
from queue_consumer.app.infrastructure.messaging.rabbitmq.rabbitmq_queue_service import RabbitMQQueueService
from queue_consumer.app.infrastructure.messaging.sqs.sqs_queue_service import SqsQueueService
from queue_consumer.app.ports.credentials_provider import CredentialsProvider
from queue_consumer.app.ports.queue_service import QueueService


def create_queue_service(
    settings: Settings,
    credentials_provider: CredentialsProvider | None = None,
) -> QueueService:
    backend = settings.queue_backend.strip().lower()

    if backend == "sqs":
        return SqsQueueService(settings, credentials_provider=credentials_provider)

    if backend == "rabbitmq":
        return RabbitMQQueueService(settings)

    if backend == "inmemory":
        return InMemoryQueueService(
            visibility_timeout_seconds=settings.visibility_timeout_seconds,
            queue_names=[settings.queue_name],
        )

    raise ValueError(f"Unsupported queue backend: {backend}")
