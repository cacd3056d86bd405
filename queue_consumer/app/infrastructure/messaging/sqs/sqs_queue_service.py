"""
SQS queue service: boto3 client behind the QueueService port.

boto3 calls block, so each one runs in a thread via asyncio.to_thread. A long poll
therefore never stalls the event loop, and workers in concurrent mode keep
acknowledging while the next receive is open. boto3 clients are thread-safe, one
client is shared by all calls.

Receipt handles are the ack tokens. Deleting with a handle SQS reports as invalid or expired
is treated as a no-op: the delivery is already gone or will be redelivered.
"""
from __future__ import annotations

import asyncio
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from queue_consumer.app.config.settings import Settings
from queue_consumer.app.core import SERVICE_NAME
from queue_consumer.app.domain.errors import (
    AcknowledgeError,
    PollError,
    QueueResolutionError,
    QueueServiceError,
    SendError,
)
from queue_consumer.app.domain.models import Message, PollRequest, QueueHandle
from queue_consumer.app.infrastructure.messaging.sqs.constants import (
    EXPIRED_RECEIPT_HANDLE_CODE,
    EXPIRED_RECEIPT_HANDLE_MARKER,
    QUEUE_NOT_FOUND_CODES,
    STALE_RECEIPT_HANDLE_CODES,
)
from queue_consumer.app.ports.credentials_provider import CredentialsProvider


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _is_stale_receipt_handle(exc: ClientError) -> bool:
    code = _error_code(exc)
    if code in STALE_RECEIPT_HANDLE_CODES:
        return True
    message = str(exc.response.get("Error", {}).get("Message", "")).lower()
    return code == EXPIRED_RECEIPT_HANDLE_CODE and EXPIRED_RECEIPT_HANDLE_MARKER in message


class SqsQueueService:
    """QueueService implementation for Amazon SQS (or an SQS-compatible endpoint)."""

    def __init__(
        self,
        settings: Settings,
        *,
        credentials_provider: CredentialsProvider | None = None,
        client: Any | None = None,
    ) -> None:
        self._settings = settings
        self._credentials_provider = credentials_provider
        self._client = client

    def _build_client(self) -> Any:
        session_kwargs: dict[str, Any] = {"region_name": self._settings.aws_region}
        if self._credentials_provider is not None:
            credentials = self._credentials_provider.get_credentials()
            session_kwargs["aws_access_key_id"] = credentials.access_key_id
            session_kwargs["aws_secret_access_key"] = credentials.secret_access_key
        session = boto3.session.Session(**session_kwargs)
        return session.client("sqs", endpoint_url=self._settings.sqs_endpoint_url)

    def _require_client(self) -> Any:
        if self._client is None:
            raise RuntimeError("queue service not connected")
        return self._client

    async def connect(self) -> None:
        if self._client is not None:
            return
        try:
            self._client = self._build_client()
        except BotoCoreError as exc:
            raise QueueServiceError(f"could not create SQS client: {exc}") from exc
        _log("sqs_client_created", region=self._settings.aws_region, endpoint=self._settings.sqs_endpoint_url)

    async def resolve_queue(self, name: str) -> QueueHandle:
        client = self._require_client()
        try:
            response = await asyncio.to_thread(client.get_queue_url, QueueName=name)
        except ClientError as exc:
            if _error_code(exc) in QUEUE_NOT_FOUND_CODES:
                raise QueueResolutionError(name) from exc
            raise QueueResolutionError(name, str(exc)) from exc
        except BotoCoreError as exc:
            raise QueueResolutionError(name, str(exc)) from exc
        queue = QueueHandle(name=name, url=response["QueueUrl"])
        _log("queue_found", queue=name, url=queue.url)
        return queue

    async def poll(self, request: PollRequest) -> list[Message]:
        client = self._require_client()
        try:
            response = await asyncio.to_thread(
                client.receive_message,
                QueueUrl=request.queue.url,
                MaxNumberOfMessages=request.max_messages,
                WaitTimeSeconds=request.wait_time_seconds,
                AttributeNames=["All"],
                MessageAttributeNames=["All"],
            )
        except (ClientError, BotoCoreError) as exc:
            raise PollError(f"receive from {request.queue.name} failed: {exc}") from exc
        return [
            Message(
                message_id=raw["MessageId"],
                body=raw.get("Body", ""),
                ack_token=raw["ReceiptHandle"],
                attributes={str(k): str(v) for k, v in raw.get("Attributes", {}).items()},
            )
            for raw in response.get("Messages", [])
        ]

    async def send(self, queue: QueueHandle, body: str) -> str:
        client = self._require_client()
        try:
            response = await asyncio.to_thread(client.send_message, QueueUrl=queue.url, MessageBody=body)
        except (ClientError, BotoCoreError) as exc:
            raise SendError(f"send to {queue.name} failed: {exc}") from exc
        message_id = response["MessageId"]
        _log("message_sent", queue=queue.name, message_id=message_id)
        return message_id

    async def acknowledge(self, queue: QueueHandle, ack_token: str) -> None:
        client = self._require_client()
        try:
            await asyncio.to_thread(client.delete_message, QueueUrl=queue.url, ReceiptHandle=ack_token)
        except ClientError as exc:
            if _is_stale_receipt_handle(exc):
                _log("acknowledge_stale_token", queue=queue.name)
                return
            raise AcknowledgeError(f"delete from {queue.name} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise AcknowledgeError(f"delete from {queue.name} failed: {exc}") from exc

    async def close(self) -> None:
        if self._client is None:
            return
        close = getattr(self._client, "close", None)
        if callable(close):
            try:
                close()
            except Exception as e:
                logger.warning("sqs client close failed: {}", e)
        self._client = None
