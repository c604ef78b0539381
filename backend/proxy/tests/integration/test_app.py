"""End-to-end tests of the HTTP adapter with a fake instance and prober."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from starlette.testclient import TestClient

from access.settings import AllowListSettings
from compute.types import InstanceStatus
from lifecycle.settings import ControllerSettings
from lifecycle.tests.mocks import FakeInstanceGateway, StaticProber
from proxy.app import create_app
from proxy.settings import ServerSettings

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from starlette.applications import Starlette

API_KEY = "test-proxy-key"
HEADERS = {"X-API-Key": API_KEY}
STARTING_MESSAGE = "Server is starting, try again soon."

OPERATOR = {"uuid": "069a79f4-44e9-4726-a5be-fca90e38aaf5", "username": "Alice", "ping_ms": 35}
STRANGER = {"uuid": "853c80ef-3c37-49fd-aa49-938b674adae6", "username": "Mallory"}
SURVIVAL = {"name": "survival", "address": "10.0.0.5:25565"}
LOBBY = {"name": "lobby", "address": "10.0.0.9:25565"}


def _build_app(
    tmp_path: Path,
    gateway: FakeInstanceGateway,
    prober: StaticProber,
    *,
    whitelist_enabled: bool = True,
) -> Starlette:
    whitelist_file = tmp_path / "whitelist.json"
    whitelist_file.write_text(json.dumps([{"uuid": OPERATOR["uuid"], "name": "Alice"}]))
    return create_app(
        settings=ServerSettings(api_key=API_KEY, ping_cooldown_seconds=30),
        controller_settings=ControllerSettings(starting_message=STARTING_MESSAGE),
        allowlist_settings=AllowListSettings(
            enabled=whitelist_enabled,
            file=str(whitelist_file),
            operators=[OPERATOR["uuid"]],
        ),
        gateway=gateway,
        prober=prober,
    )


@pytest.fixture
def gateway() -> FakeInstanceGateway:
    return FakeInstanceGateway()


@pytest.fixture
def prober() -> StaticProber:
    return StaticProber(reachable=False)


@pytest.fixture
def app(tmp_path, gateway, prober) -> Starlette:
    return _build_app(tmp_path, gateway, prober)


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    with TestClient(app) as client:
        yield client


def _settle(client: TestClient, app: Starlette) -> None:
    """Wait for background start requests on the app's event loop."""
    client.portal.call(app.state.controller.wait_pending_operations)


class TestHealthAndStatus:
    def test_health_is_public(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_status_requires_api_key(self, client):
        assert client.get("/status").status_code == 401
        assert client.get("/status", headers={"X-API-Key": "wrong"}).status_code == 401

    def test_status_reports_lifecycle(self, client):
        response = client.get("/status", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["online_players"] == 0
        assert data["whitelist_enabled"] is True
        assert data["lifecycle"]["managed_server"] == "survival"
        assert data["lifecycle"]["instance"] == "test-project/europe-west1-b/mc-test"
        assert data["lifecycle"]["player_count"] == 0


class TestConnectionAttempt:
    def test_requires_api_key(self, client, gateway):
        response = client.post("/events/connection-attempt", json={"player": OPERATOR, "target": SURVIVAL})

        assert response.status_code == 401
        assert gateway.get_status_calls == 0

    def test_unlisted_player_denied_before_start(self, client, gateway, prober):
        response = client.post(
            "/events/connection-attempt",
            json={"player": STRANGER, "target": SURVIVAL},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {
            "allowed": False,
            "message": {"content": "You are not whitelisted on this server!", "color": "red", "bold": False},
        }
        assert prober.probed == []
        assert gateway.start_calls == 0

    def test_unreachable_server_starts_instance(self, app, client, gateway):
        response = client.post(
            "/events/connection-attempt",
            json={"player": OPERATOR, "target": SURVIVAL},
            headers=HEADERS,
        )
        _settle(client, app)

        assert response.json()["allowed"] is False
        assert response.json()["message"]["content"] == STARTING_MESSAGE
        assert gateway.start_calls == 1
        assert gateway.status is InstanceStatus.RUNNING

        status = client.get("/status", headers=HEADERS).json()
        assert status["lifecycle"]["is_starting"] is True

    def test_repeated_attempts_start_once(self, app, client, gateway):
        for _ in range(3):
            client.post(
                "/events/connection-attempt",
                json={"player": OPERATOR, "target": SURVIVAL},
                headers=HEADERS,
            )
        _settle(client, app)

        assert gateway.start_calls == 1

    def test_reachable_server_allowed(self, client, gateway, prober):
        prober.reachable = True

        response = client.post(
            "/events/connection-attempt",
            json={"player": OPERATOR, "target": SURVIVAL},
            headers=HEADERS,
        )

        assert response.json() == {"allowed": True, "message": None}
        assert prober.probed == ["10.0.0.5:25565"]
        assert gateway.start_calls == 0

    def test_other_server_allowed_without_probe(self, client, prober):
        response = client.post(
            "/events/connection-attempt",
            json={"player": OPERATOR, "target": {"name": "lobby", "address": "10.0.0.9:25565"}},
            headers=HEADERS,
        )

        assert response.json()["allowed"] is True
        assert prober.probed == []

    def test_whitelist_disabled_lets_anyone_wake_server(self, tmp_path, gateway, prober):
        app = _build_app(tmp_path, gateway, prober, whitelist_enabled=False)
        with TestClient(app) as client:
            response = client.post(
                "/events/connection-attempt",
                json={"player": STRANGER, "target": SURVIVAL},
                headers=HEADERS,
            )
            _settle(client, app)

        assert response.json()["message"]["content"] == STARTING_MESSAGE
        assert gateway.start_calls == 1


class TestJoinAndDisconnect:
    def test_join_and_disconnect_update_counts(self, client):
        joined = client.post("/events/joined", json={"player": OPERATOR, "server": SURVIVAL}, headers=HEADERS)
        assert joined.status_code == 204

        status = client.get("/status", headers=HEADERS).json()
        assert status["online_players"] == 1
        assert status["lifecycle"]["player_count"] == 1

        left = client.post("/events/disconnected", json={"player": OPERATOR, "server": SURVIVAL}, headers=HEADERS)
        assert left.status_code == 204

        status = client.get("/status", headers=HEADERS).json()
        assert status["online_players"] == 0
        assert status["lifecycle"]["player_count"] == 0
        assert status["lifecycle"]["idle_shutdown_in_seconds"] is not None

    def test_switch_to_other_server_leaves_managed_server(self, client):
        client.post("/events/joined", json={"player": OPERATOR, "server": SURVIVAL}, headers=HEADERS)

        switched = client.post(
            "/events/joined",
            json={"player": OPERATOR, "server": LOBBY, "previous_server": SURVIVAL},
            headers=HEADERS,
        )
        assert switched.status_code == 204

        status = client.get("/status", headers=HEADERS).json()
        assert status["online_players"] == 1
        assert status["lifecycle"]["player_count"] == 0
        assert status["lifecycle"]["idle_shutdown_in_seconds"] is not None

    def test_disconnect_without_server(self, client):
        response = client.post("/events/disconnected", json={"player": OPERATOR}, headers=HEADERS)
        assert response.status_code == 204


class TestRequestValidation:
    def test_malformed_json(self, client):
        response = client.post(
            "/events/joined",
            content="{not json",
            headers={**HEADERS, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body"}

    def test_missing_fields(self, client):
        response = client.post("/events/connection-attempt", json={"player": OPERATOR}, headers=HEADERS)
        assert response.status_code == 400

    def test_target_without_address(self, client, gateway, prober):
        gateway.status = InstanceStatus.RUNNING

        response = client.post(
            "/events/connection-attempt",
            json={"player": OPERATOR, "target": {"name": "survival"}},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert prober.probed == []
        assert gateway.get_status_calls == 0

    def test_body_too_large(self, client):
        response = client.post(
            "/commands",
            json={"command": "ping", "padding": "x" * 20_000},
            headers=HEADERS,
        )
        assert response.status_code == 413


class TestCommands:
    def test_ping(self, client):
        response = client.post("/commands", json={"source": OPERATOR, "command": "ping"}, headers=HEADERS)

        assert response.status_code == 200
        replies = response.json()["replies"]
        assert "".join(r["content"] for r in replies) == "Your ping: 35ms - Excellent"

    def test_whitelist_list_for_operator(self, client):
        response = client.post("/commands", json={"source": OPERATOR, "command": "/whitelist list"}, headers=HEADERS)

        replies = response.json()["replies"]
        assert replies[0] == {"content": "Whitelisted players (1):", "color": "gold", "bold": True}

    def test_whitelist_refused_for_stranger(self, client):
        response = client.post("/commands", json={"source": STRANGER, "command": "whitelist list"}, headers=HEADERS)
        assert response.json()["replies"][0]["content"] == "You're not permitted to use this command."

    def test_whitelist_command_absent_when_disabled(self, tmp_path, gateway, prober):
        app = _build_app(tmp_path, gateway, prober, whitelist_enabled=False)
        with TestClient(app) as client:
            response = client.post("/commands", json={"source": OPERATOR, "command": "whitelist list"}, headers=HEADERS)

        assert response.json()["replies"][0]["content"] == "Unknown command 'whitelist'."


class TestLifespan:
    def test_startup_creates_missing_whitelist_file(self, tmp_path, gateway, prober):
        app = create_app(
            settings=ServerSettings(),
            controller_settings=ControllerSettings(),
            allowlist_settings=AllowListSettings(file=str(tmp_path / "new" / "whitelist.json")),
            gateway=gateway,
            prober=prober,
        )
        with TestClient(app) as client:
            # no API key configured: event routes are open
            assert client.get("/status").status_code == 200

        assert json.loads((tmp_path / "new" / "whitelist.json").read_text()) == []

    def test_malformed_whitelist_file_fails_startup(self, tmp_path, gateway, prober):
        whitelist_file = tmp_path / "whitelist.json"
        whitelist_file.write_text("{broken")
        app = create_app(
            settings=ServerSettings(),
            controller_settings=ControllerSettings(),
            allowlist_settings=AllowListSettings(file=str(whitelist_file)),
            gateway=gateway,
            prober=prober,
        )

        with pytest.raises(OSError, match="Failed to load allow-list"), TestClient(app):
            pass
        assert whitelist_file.read_text() == "{broken"

    def test_shutdown_disarms_timers(self, app, gateway):
        with TestClient(app) as client:
            client.post("/events/joined", json={"player": OPERATOR, "server": SURVIVAL}, headers=HEADERS)
            client.post("/events/disconnected", json={"player": OPERATOR, "server": SURVIVAL}, headers=HEADERS)
            controller = app.state.controller

        assert controller._state.idle_timer.remaining_seconds is None
        assert gateway.stop_calls == 0
