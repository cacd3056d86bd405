"""Credentials provider that always returns the same key pair."""
from __future__ import annotations

from queue_consumer.app.config.settings import Settings
from queue_consumer.app.ports.credentials_provider import Credentials


class StaticCredentialsProvider:
    """Implements CredentialsProvider for a fixed access key. refresh() has nothing to reload."""

    def __init__(self, credentials: Credentials) -> None:
        self._credentials = credentials

    def get_credentials(self) -> Credentials:
        return self._credentials

    def refresh(self) -> None:
        return


def create_credentials_provider(settings: Settings) -> StaticCredentialsProvider | None:
    """Static provider when both key parts are configured; None leaves boto3 on its default chain."""
    if not settings.aws_access_key_id or settings.aws_secret_access_key is None:
        return None
    return StaticCredentialsProvider(
        Credentials(
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key.get_secret_value(),
        )
    )
