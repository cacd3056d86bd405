from pydantic import SecretStr

from queue_consumer.app.infrastructure.credentials.static_credentials_provider import (
    StaticCredentialsProvider,
    create_credentials_provider,
)
from queue_consumer.app.ports.credentials_provider import Credentials


def test_returns_the_same_credentials_after_refresh():
    credentials = Credentials(access_key_id="AKIAEXAMPLE", secret_access_key="secret")
    provider = StaticCredentialsProvider(credentials)

    provider.refresh()

    assert provider.get_credentials() is credentials
    assert "secret" not in repr(credentials)


def test_factory_needs_both_key_parts(settings):
    assert create_credentials_provider(settings) is None
    assert create_credentials_provider(settings.model_copy(update={"aws_access_key_id": "AKIAEXAMPLE"})) is None


def test_factory_builds_static_provider(settings):
    configured = settings.model_copy(
        update={"aws_access_key_id": "AKIAEXAMPLE", "aws_secret_access_key": SecretStr("secret")}
    )

    provider = create_credentials_provider(configured)

    assert provider.get_credentials() == Credentials(access_key_id="AKIAEXAMPLE", secret_access_key="secret")
