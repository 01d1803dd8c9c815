"""Control Group helpers: wait for a request to be approved, then unwrap it.

Vault answers a Control Group protected request with a wrapping token and
accessor. Approvers authorize the accessor; once ``sys/control-group/request``
reports ``approved: true`` the requester can unwrap the original response.
"""

from __future__ import annotations

import logging
from typing import Any

from replprobe.backend.http import VaultHTTP, data_field, raise_for_status, response_json
from replprobe.errors import ApprovalTimeoutError, BackendError
from replprobe.probe.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

APPROVAL_ATTEMPTS = 60
APPROVAL_INTERVAL_SEC = 0.5
UNWRAP_ATTEMPTS = 8
UNWRAP_INTERVAL_SEC = 0.4


class ControlGroupClient:
    def __init__(self, http: VaultHTTP, namespace: str = "", clock: Clock | None = None) -> None:
        self.http = http
        self.namespace = namespace
        self.clock = clock or SystemClock()

    async def request_status(self, accessor: str) -> dict[str, Any]:
        response = await self.http.request(
            "POST",
            "sys/control-group/request",
            namespace=self.namespace,
            json={"accessor": accessor},
        )
        raise_for_status(response, "control group status")
        return data_field(response_json(response), "control group status") or {}

    async def authorize(self, accessor: str) -> None:
        response = await self.http.request(
            "POST",
            "sys/control-group/authorize",
            namespace=self.namespace,
            json={"accessor": accessor},
        )
        raise_for_status(response, "control group authorize")
        logger.info("authorized control group request %s", accessor)

    async def is_approved(self, accessor: str) -> bool:
        """False while the request is pending or the check hit a transient error.

        Client errors other than 404 (bad approver token, unknown accessor)
        will not resolve by waiting and are raised.
        """
        try:
            status = await self.request_status(accessor)
        except BackendError as exc:
            if _is_permanent(exc):
                raise
            logger.debug("approval check for %s failed: %s", accessor, exc)
            return False
        return status.get("approved") is True

    async def wait_for_approval(
        self,
        accessor: str,
        attempts: int = APPROVAL_ATTEMPTS,
        interval_sec: float = APPROVAL_INTERVAL_SEC,
    ) -> int:
        """Poll until approved; returns the number of checks it took."""
        for attempt in range(1, attempts + 1):
            if await self.is_approved(accessor):
                logger.info("request %s approved after %d checks", accessor, attempt)
                return attempt
            if attempt < attempts:
                await self.clock.sleep(interval_sec)
        raise ApprovalTimeoutError(accessor, attempts)


async def unwrap_with_retries(
    http: VaultHTTP,
    wrap_token: str,
    namespace: str = "",
    attempts: int = UNWRAP_ATTEMPTS,
    interval_sec: float = UNWRAP_INTERVAL_SEC,
    clock: Clock | None = None,
) -> dict[str, Any]:
    """Unwrap ``wrap_token`` with the requester session in ``http``.

    Approval can take a moment to propagate, so failed unwraps are retried.
    """
    clock = clock or SystemClock()
    last_error: BackendError | None = None
    for attempt in range(1, attempts + 1):
        try:
            response = await http.request(
                "POST",
                "sys/wrapping/unwrap",
                namespace=namespace,
                json={"token": wrap_token},
            )
            raise_for_status(response, "unwrap")
            return data_field(response_json(response), "unwrap") or {}
        except BackendError as exc:
            last_error = exc
            logger.debug("unwrap attempt %d/%d failed: %s", attempt, attempts, exc)
        if attempt < attempts:
            await clock.sleep(interval_sec)
    msg = f"unwrap failed after {attempts} attempts: {last_error}"
    raise BackendError(msg, status_code=last_error.status_code if last_error else None)


def _is_permanent(exc: BackendError) -> bool:
    code = exc.status_code
    return code is not None and 400 <= code < 500 and code != 404
