"""Instance API gateway: get/start/stop one Compute Engine instance.

The Compute Engine client is synchronous and start/stop wait for the
long-running operation (up to operation_timeout_seconds), so every call runs
off the event loop using anyio.to_thread.run_sync(). Cancelling a call abandons
the worker thread; the operation itself still completes on the Google side.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog
from anyio import to_thread
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import compute_v1

from compute.exceptions import InstanceApiError
from compute.types import InstanceRef, InstanceStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from google.api_core.extended_operation import ExtendedOperation

    from lifecycle.settings import ControllerSettings

logger = structlog.get_logger()

# Errors raised by the client, its credentials, or an operation that did not
# finish in time (ExtendedOperation.result raises the builtin TimeoutError).
_API_ERRORS = (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, TimeoutError)


@runtime_checkable
class InstanceGateway(Protocol):
    """Power operations for the single instance a controller manages."""

    @property
    def instance(self) -> InstanceRef: ...

    async def get_status(self) -> InstanceStatus: ...

    async def start(self) -> None:
        """Start the instance and wait until the operation completes."""
        ...

    async def stop(self) -> None:
        """Stop the instance and wait until the operation completes."""
        ...


class ComputeEngineGateway:
    """Production gateway backed by google-cloud-compute."""

    def __init__(
        self,
        instance: InstanceRef,
        client: compute_v1.InstancesClient,
        *,
        operation_timeout_seconds: float = 120.0,
        request_timeout_seconds: float = 10.0,
    ) -> None:
        self._instance = instance
        self._client = client
        self._operation_timeout = operation_timeout_seconds
        self._request_timeout = request_timeout_seconds

    @classmethod
    def from_settings(cls, settings: ControllerSettings) -> ComputeEngineGateway:
        """Build a gateway, using a service account file when one is configured."""
        try:
            if settings.credentials_path:
                client = compute_v1.InstancesClient.from_service_account_file(settings.credentials_path)
            else:
                client = compute_v1.InstancesClient()
        except (auth_exceptions.GoogleAuthError, OSError, ValueError) as exc:
            instance = InstanceRef(project=settings.project_id, zone=settings.zone, name=settings.instance_name)
            raise InstanceApiError("create client for", instance, exc) from exc

        return cls(
            InstanceRef(project=settings.project_id, zone=settings.zone, name=settings.instance_name),
            client,
            operation_timeout_seconds=settings.operation_timeout_seconds,
            request_timeout_seconds=settings.request_timeout_seconds,
        )

    @property
    def instance(self) -> InstanceRef:
        return self._instance

    async def get_status(self) -> InstanceStatus:
        def fetch() -> str:
            response = self._client.get(
                project=self._instance.project,
                zone=self._instance.zone,
                instance=self._instance.name,
                timeout=self._request_timeout,
            )
            return response.status

        try:
            raw_status = await to_thread.run_sync(fetch, abandon_on_cancel=True)
        except _API_ERRORS as exc:
            raise InstanceApiError("get", self._instance, exc) from exc

        status = InstanceStatus.from_compute_status(raw_status)
        logger.debug("instance status", instance=str(self._instance), raw_status=raw_status, status=status)
        return status

    async def start(self) -> None:
        await self._run_operation("start", self._client.start)

    async def stop(self) -> None:
        await self._run_operation("stop", self._client.stop)

    async def _run_operation(self, name: str, method: Callable[..., ExtendedOperation]) -> None:
        def run() -> None:
            operation = method(
                project=self._instance.project,
                zone=self._instance.zone,
                instance=self._instance.name,
                timeout=self._request_timeout,
            )
            operation.result(timeout=self._operation_timeout)

        logger.info("instance operation submitted", operation=name, instance=str(self._instance))
        try:
            await to_thread.run_sync(run, abandon_on_cancel=True)
        except _API_ERRORS as exc:
            raise InstanceApiError(name, self._instance, exc) from exc
        logger.info("instance operation completed", operation=name, instance=str(self._instance))
