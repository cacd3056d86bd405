"""Command line entry points for the send/receive programs.

Each program takes the access key, region and queue name as flags; anything not
given falls back to the environment (see Settings). Malformed arguments print the
usage and exit with status 2.
"""
from __future__ import annotations

import argparse
import asyncio
from typing import Any, Callable, Sequence

from loguru import logger
from pydantic import ValidationError

from queue_consumer.app.config.settings import Settings
from queue_consumer.app.constants import MAX_WAIT_TIME_SECONDS, DispatchMode
from queue_consumer.app.core import SERVICE_NAME
from queue_consumer.app.core.logging import configure_logging
from queue_consumer.app.main import run_consumer, send_and_receive

# Flag dest -> Settings field.
_OVERRIDES = {
    "access_key": "aws_access_key_id",
    "secret_key": "aws_secret_access_key",
    "aws_region": "aws_region",
    "queue_name": "queue_name",
    "endpoint_url": "sqs_endpoint_url",
    "backend": "queue_backend",
    "wait_time": "wait_time_seconds",
    "workers": "max_workers",
}


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _wait_time(value: str) -> int:
    try:
        seconds = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid wait time: {value!r}") from None
    if not 0 <= seconds <= MAX_WAIT_TIME_SECONDS:
        raise argparse.ArgumentTypeError(f"wait time must be between 0 and {MAX_WAIT_TIME_SECONDS}")
    return seconds


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser(prog: str, *, wait_time: bool = False, workers: bool = False) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog)
    parser.add_argument("-a", "--access-key", help="AWS access key id")
    parser.add_argument("-s", "--secret-key", help="AWS secret access key")
    parser.add_argument("-r", "--aws-region", help="AWS region of the queue")
    parser.add_argument("-q", "--queue-name", help="queue name")
    parser.add_argument("--endpoint-url", help="SQS endpoint override, e.g. a local emulator")
    parser.add_argument("--backend", choices=["sqs", "rabbitmq", "inmemory"], help="queue backend")
    if wait_time:
        parser.add_argument(
            "-t",
            "--wait-time",
            type=_wait_time,
            help=f"seconds to keep each receive open (0-{MAX_WAIT_TIME_SECONDS}, default 20)",
        )
    if workers:
        parser.add_argument("-w", "--workers", type=_positive_int, help="handler workers (default 20)")
    return parser


def load_settings(parser: argparse.ArgumentParser, argv: Sequence[str] | None = None) -> Settings:
    """Parse argv and merge it over environment settings. Exits with status 2 on bad input."""
    args = parser.parse_args(argv)
    overrides = {
        field: getattr(args, dest)
        for dest, field in _OVERRIDES.items()
        if getattr(args, dest, None) is not None
    }
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        parser.error(problems)


def _run(settings: Settings, program: Callable[[Settings], Any]) -> int:
    configure_logging(settings.log_level)
    _log("arguments_parsed", queue=settings.queue_name, backend=settings.queue_backend)
    try:
        asyncio.run(program(settings))
    except KeyboardInterrupt:
        _log("program_interrupted")
        return 0
    except Exception as e:
        logger.exception("program failed: {}", e)
        return 1
    _log("program_completed")
    return 0


def send_receive_main(argv: Sequence[str] | None = None) -> int:
    settings = load_settings(build_parser("send-receive"), argv)
    return _run(settings, send_and_receive)


def receive_long_polling_main(argv: Sequence[str] | None = None) -> int:
    settings = load_settings(build_parser("receive-long-polling", wait_time=True), argv)
    return _run(settings, lambda s: run_consumer(s, mode=DispatchMode.SEQUENTIAL))


def receive_async_main(argv: Sequence[str] | None = None) -> int:
    settings = load_settings(build_parser("receive-async", wait_time=True, workers=True), argv)
    return _run(settings, lambda s: run_consumer(s, mode=DispatchMode.CONCURRENT))
