from __future__ import annotations

import logging

import httpx

from replprobe.backend.base import ReplicationStatus
from replprobe.backend.http import VaultHTTP, data_field, raise_for_status, response_json
from replprobe.config import EndpointConfig, KVVersion, RetryConfig, SecretLocation
from replprobe.errors import BackendError

logger = logging.getLogger(__name__)

VALUE_FIELD = "value"


class VaultKVBackend:
    """KV secrets engine access over the Vault HTTP API.

    Values are stored under a single ``value`` field, matching
    ``vault kv put <mount>/<path> value=...``.
    """

    def __init__(
        self,
        endpoint: EndpointConfig,
        kv_version: KVVersion = KVVersion.V2,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.kv_version = kv_version
        self.http = VaultHTTP(endpoint, retry, transport)

    @property
    def address(self) -> str:
        return self.http.address

    async def __aenter__(self) -> VaultKVBackend:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    async def preflight(self) -> None:
        response = await self.http.request("GET", "sys/seal-status")
        raise_for_status(response, "seal status")
        if response_json(response).get("sealed", False):
            raise BackendError(f"{self.address} is sealed")
        response = await self.http.request("GET", "auth/token/lookup-self")
        raise_for_status(response, "token lookup")

    async def put(self, location: SecretLocation, value: str) -> None:
        payload: dict[str, object] = {VALUE_FIELD: value}
        if self.kv_version is KVVersion.V2:
            payload = {"data": payload}
        response = await self.http.request(
            "POST",
            self._data_path(location),
            namespace=location.namespace,
            json=payload,
        )
        raise_for_status(response, f"write {location.display()}")

    async def get(self, location: SecretLocation) -> str | None:
        response = await self.http.request(
            "GET",
            self._data_path(location),
            namespace=location.namespace,
        )
        if response.status_code == 404:
            return None
        action = f"read {location.display()}"
        raise_for_status(response, action)
        data = data_field(response_json(response), action)
        if data is not None and self.kv_version is KVVersion.V2:
            data = data_field(data, action)
        if data is None:
            return None
        value = data.get(VALUE_FIELD)
        return None if value is None else str(value)

    async def replication_status(self) -> ReplicationStatus | None:
        try:
            response = await self.http.request("GET", "sys/replication/status")
        except BackendError as exc:
            logger.debug("replication status unavailable on %s: %s", self.address, exc)
            return None
        if not response.is_success:
            logger.debug(
                "replication status unavailable on %s: HTTP %s",
                self.address,
                response.status_code,
            )
            return None
        try:
            data = data_field(response_json(response), "replication status") or {}
            performance = data_field(data, "replication status", "performance") or {}
        except BackendError as exc:
            logger.debug("replication status unreadable on %s: %s", self.address, exc)
            return None
        return ReplicationStatus(
            mode=str(performance.get("mode") or "unknown"),
            state=str(performance.get("state") or "unknown"),
        )

    def _data_path(self, location: SecretLocation) -> str:
        mount = location.mount.strip("/")
        path = location.path.strip("/")
        if self.kv_version is KVVersion.V2:
            return f"{mount}/data/{path}"
        return f"{mount}/{path}"
