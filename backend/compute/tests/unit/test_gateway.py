"""Tests for ComputeEngineGateway against a mocked InstancesClient."""

import asyncio
import threading
from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions

from compute.exceptions import InstanceApiError
from compute.gateway import ComputeEngineGateway, InstanceGateway
from compute.types import InstanceRef, InstanceStatus
from lifecycle.settings import ControllerSettings

INSTANCE = InstanceRef(project="test-project", zone="europe-west1-b", name="mc-test")
EXPECTED_CALL = {"project": "test-project", "zone": "europe-west1-b", "instance": "mc-test", "timeout": 5.0}


def _gateway(client: MagicMock) -> ComputeEngineGateway:
    return ComputeEngineGateway(INSTANCE, client, operation_timeout_seconds=30.0, request_timeout_seconds=5.0)


class TestGetStatus:
    async def test_maps_compute_status(self):
        client = MagicMock()
        client.get.return_value = MagicMock(status="TERMINATED")

        status = await _gateway(client).get_status()

        assert status is InstanceStatus.STOPPED
        client.get.assert_called_once_with(**EXPECTED_CALL)

    async def test_running(self):
        client = MagicMock()
        client.get.return_value = MagicMock(status="RUNNING")

        assert await _gateway(client).get_status() is InstanceStatus.RUNNING

    async def test_api_error_wrapped(self):
        client = MagicMock()
        client.get.side_effect = google_exceptions.NotFound("instance not found")

        with pytest.raises(InstanceApiError) as exc_info:
            await _gateway(client).get_status()

        assert exc_info.value.operation == "get"
        assert exc_info.value.instance == INSTANCE
        assert isinstance(exc_info.value.cause, google_exceptions.NotFound)

    async def test_credentials_error_wrapped(self):
        client = MagicMock()
        client.get.side_effect = auth_exceptions.RefreshError("token expired")

        with pytest.raises(InstanceApiError, match="Failed to get instance test-project/europe-west1-b/mc-test"):
            await _gateway(client).get_status()


class TestPowerOperations:
    async def test_start_waits_for_operation(self):
        client = MagicMock()
        operation = client.start.return_value

        await _gateway(client).start()

        client.start.assert_called_once_with(**EXPECTED_CALL)
        operation.result.assert_called_once_with(timeout=30.0)

    async def test_stop_waits_for_operation(self):
        client = MagicMock()
        operation = client.stop.return_value

        await _gateway(client).stop()

        client.stop.assert_called_once_with(**EXPECTED_CALL)
        operation.result.assert_called_once_with(timeout=30.0)

    async def test_cancel_abandons_blocked_operation(self):
        release = threading.Event()
        client = MagicMock()
        client.start.return_value.result.side_effect = lambda timeout: release.wait(timeout)

        task = asyncio.create_task(_gateway(client).start())
        await asyncio.sleep(0.05)
        task.cancel()
        try:
            with pytest.raises(asyncio.CancelledError):
                await asyncio.wait_for(task, timeout=1)
        finally:
            release.set()

    async def test_operation_timeout_wrapped(self):
        client = MagicMock()
        client.start.return_value.result.side_effect = TimeoutError()

        with pytest.raises(InstanceApiError) as exc_info:
            await _gateway(client).start()

        assert exc_info.value.operation == "start"

    async def test_stop_api_error_wrapped(self):
        client = MagicMock()
        client.stop.side_effect = google_exceptions.Forbidden("missing compute.instances.stop")

        with pytest.raises(InstanceApiError, match="Failed to stop instance"):
            await _gateway(client).stop()

    async def test_unrelated_errors_propagate(self):
        client = MagicMock()
        client.start.side_effect = KeyError("bug")

        with pytest.raises(KeyError):
            await _gateway(client).start()


class TestFromSettings:
    def test_uses_default_credentials(self):
        with patch("compute.gateway.compute_v1.InstancesClient") as client_cls:
            gateway = ComputeEngineGateway.from_settings(ControllerSettings())

        client_cls.assert_called_once_with()
        assert gateway.instance == INSTANCE
        assert isinstance(gateway, InstanceGateway)

    def test_uses_service_account_file(self):
        settings = ControllerSettings(credentials_path="/etc/wakegate/sa.json")
        with patch("compute.gateway.compute_v1.InstancesClient") as client_cls:
            ComputeEngineGateway.from_settings(settings)

        client_cls.from_service_account_file.assert_called_once_with("/etc/wakegate/sa.json")

    def test_missing_credentials_raise_instance_api_error(self):
        with patch("compute.gateway.compute_v1.InstancesClient") as client_cls:
            client_cls.side_effect = auth_exceptions.DefaultCredentialsError("no credentials")
            with pytest.raises(InstanceApiError) as exc_info:
                ComputeEngineGateway.from_settings(ControllerSettings())

        assert exc_info.value.operation == "create client for"
