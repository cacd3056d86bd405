from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    queue_backend: str = Field("sqs", validation_alias="QUEUE_BACKEND")
    queue_name: str = Field(..., min_length=1, validation_alias="QUEUE_NAME")

    aws_region: str | None = Field(None, validation_alias="AWS_REGION")
    aws_access_key_id: str | None = Field(None, validation_alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: SecretStr | None = Field(None, validation_alias="AWS_SECRET_ACCESS_KEY")
    sqs_endpoint_url: str | None = Field(None, validation_alias="SQS_ENDPOINT_URL")

    broker_host: str = Field("localhost", validation_alias="BROKER_HOST")
    broker_port: int = Field(5672, validation_alias="BROKER_PORT")
    broker_user: str = Field("guest", validation_alias="BROKER_USER")
    broker_password: str = Field("guest", validation_alias="BROKER_PASSWORD")

    # 0 is a short poll; SQS caps long polls at 20 seconds.
    wait_time_seconds: int = Field(20, ge=0, le=20, validation_alias="WAIT_TIME_SECONDS")
    max_messages: int = Field(10, ge=1, le=10, validation_alias="MAX_MESSAGES")
    max_workers: int = Field(20, ge=1, validation_alias="MAX_WORKERS")
    idle_poll_interval_seconds: float = Field(1.0, ge=0, validation_alias="IDLE_POLL_INTERVAL_SECONDS")
    # Used by the brokers that have no server-side visibility timeout (inmemory, rabbitmq).
    visibility_timeout_seconds: float = Field(30.0, gt=0, validation_alias="VISIBILITY_TIMEOUT_SECONDS")

    initial_backoff_seconds: float = Field(1.0, ge=0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, ge=0, validation_alias="MAX_BACKOFF_SECONDS")
    backoff_multiplier: float = Field(2.0, ge=1, validation_alias="BACKOFF_MULTIPLIER")
    max_connection_attempts: int = Field(5, ge=1, validation_alias="MAX_CONNECTION_ATTEMPTS")
    max_consecutive_poll_failures: int | None = Field(
        None,
        ge=1,
        validation_alias="MAX_CONSECUTIVE_POLL_FAILURES",
    )

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
