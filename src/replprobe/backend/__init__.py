from __future__ import annotations

from replprobe.backend.base import KVBackend, ReplicationStatus
from replprobe.backend.http import VaultHTTP
from replprobe.backend.vault import VaultKVBackend

__all__ = ["KVBackend", "ReplicationStatus", "VaultHTTP", "VaultKVBackend"]
