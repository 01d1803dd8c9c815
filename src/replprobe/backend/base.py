from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from replprobe.config import SecretLocation


@dataclass(frozen=True, slots=True)
class ReplicationStatus:
    mode: str
    state: str

    @property
    def is_performance_secondary(self) -> bool:
        return self.mode == "secondary"


class KVBackend(Protocol):
    """Key-value store the prober writes to and reads from.

    ``put`` and ``preflight`` raise ``BackendError`` on failure, ``get``
    returns ``None`` when the key does not exist and raises ``BackendError``
    for any other error.
    """

    address: str

    async def preflight(self) -> None:
        ...

    async def put(self, location: SecretLocation, value: str) -> None:
        ...

    async def get(self, location: SecretLocation) -> str | None:
        ...

    async def replication_status(self) -> ReplicationStatus | None:
        ...
