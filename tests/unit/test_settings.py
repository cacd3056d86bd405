import pytest
from pydantic import ValidationError

from queue_consumer.app.config.settings import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "QUEUE_NAME",
        "QUEUE_BACKEND",
        "AWS_REGION",
        "AWS_ACCESS_KEY_ID",
        "AWS_SECRET_ACCESS_KEY",
        "WAIT_TIME_SECONDS",
        "MAX_WORKERS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings(queue_name="orders")

    assert settings.queue_backend == "sqs"
    assert settings.wait_time_seconds == 20
    assert settings.max_messages == 10
    assert settings.max_workers == 20
    assert settings.max_consecutive_poll_failures is None


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("QUEUE_NAME", "invoices")
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    monkeypatch.setenv("WAIT_TIME_SECONDS", "5")
    monkeypatch.setenv("MAX_WORKERS", "3")

    settings = Settings()

    assert settings.queue_name == "invoices"
    assert settings.aws_region == "eu-west-1"
    assert settings.wait_time_seconds == 5
    assert settings.max_workers == 3


def test_queue_name_is_required():
    with pytest.raises(ValidationError):
        Settings()


@pytest.mark.parametrize(
    "field,value",
    [("wait_time_seconds", 21), ("wait_time_seconds", -1), ("max_messages", 11), ("max_workers", 0)],
)
def test_out_of_range_values_are_rejected(field, value):
    with pytest.raises(ValidationError):
        Settings(queue_name="orders", **{field: value})


def test_secret_key_is_not_rendered():
    settings = Settings(queue_name="orders", aws_secret_access_key="very-secret")

    assert "very-secret" not in repr(settings)
    assert settings.aws_secret_access_key.get_secret_value() == "very-secret"
