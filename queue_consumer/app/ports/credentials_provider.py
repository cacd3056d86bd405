"""Port: access credentials for the queue service."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class Credentials:
    access_key_id: str
    secret_access_key: str = field(repr=False)


class CredentialsProvider(Protocol):
    def get_credentials(self) -> Credentials: ...

    def refresh(self) -> None: ...
