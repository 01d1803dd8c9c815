from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from replprobe.config import EndpointConfig, RetryConfig
from replprobe.errors import BackendError

logger = logging.getLogger(__name__)


class VaultHTTP:
    """Thin async HTTP session bound to one Vault address and token."""

    def __init__(
        self,
        endpoint: EndpointConfig,
        retry: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        token: str | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.retry = retry or RetryConfig()
        self._token = endpoint.token if token is None else token
        self._transport = transport
        self._client = httpx.AsyncClient(
            base_url=endpoint.address,
            timeout=endpoint.timeout_sec,
            verify=endpoint.verify,
            transport=transport,
        )

    @property
    def address(self) -> str:
        return self.endpoint.address

    async def __aenter__(self) -> VaultHTTP:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def with_token(self, token: str) -> VaultHTTP:
        """Return a session for the same address authenticated with another token."""
        return VaultHTTP(self.endpoint, self.retry, self._transport, token=token)

    async def request(
        self,
        method: str,
        path: str,
        namespace: str = "",
        json: Any = None,
    ) -> httpx.Response:
        """Send one API call, retrying transport failures per ``RetryConfig``.

        HTTP error statuses are returned as-is; only connection level
        failures are retried and finally raised as ``BackendError``.
        """
        headers = {"X-Vault-Request": "true"}
        if self._token:
            headers["X-Vault-Token"] = self._token
        if namespace:
            headers["X-Vault-Namespace"] = namespace
        url = f"/v1/{path.lstrip('/')}"
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._client.request(method, url, headers=headers, json=json)
            except httpx.TimeoutException as exc:
                err = BackendError(f"timeout calling {method} {url}", details={"error": str(exc)})
            except httpx.ConnectError as exc:
                err = BackendError(f"cannot connect to {self.address}", details={"error": str(exc)})
            except httpx.HTTPError as exc:
                err = BackendError(f"{method} {url} failed: {exc}", details={"error": str(exc)})
            if not self.retry.enabled or attempt > self.retry.max_retries:
                raise err
            delay = min(self.retry.max_delay_sec, self.retry.base_delay_sec * (2 ** (attempt - 1)))
            logger.debug("retrying %s %s in %.2fs after: %s", method, url, delay, err)
            await asyncio.sleep(delay)


def raise_for_status(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    errors: list[str] = []
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        errors = [str(e) for e in body.get("errors") or []]
    message = f"{action} failed"
    if errors:
        message = f"{message}: {'; '.join(errors)}"
    raise BackendError(message, status_code=response.status_code, details={"errors": errors})


def response_json(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        msg = f"unexpected non-JSON response from {response.request.url}"
        raise BackendError(msg, status_code=response.status_code) from exc
    if not isinstance(body, dict):
        msg = f"unexpected response body from {response.request.url}"
        raise BackendError(msg, status_code=response.status_code)
    return body


def data_field(body: dict[str, Any], action: str, key: str = "data") -> dict[str, Any] | None:
    """Return ``body[key]`` when it is an object; ``None`` when absent or null."""
    value = body.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        msg = f"{action}: unexpected response shape, '{key}' is {type(value).__name__}"
        raise BackendError(msg, details={key: value})
    return value
