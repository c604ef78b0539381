from __future__ import annotations

import contextlib
import json
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from access.manager import AllowListManager
from access.profiles import MojangProfileClient
from access.settings import AllowListSettings
from access.store import FileAllowListStore
from commands.allowlist import AllowListCommand
from commands.ping import PingCommand
from commands.router import CommandRouter
from compute.gateway import ComputeEngineGateway
from lifecycle.controller import LifecycleController
from lifecycle.prober import TcpReachabilityProber
from lifecycle.settings import ControllerSettings
from lifecycle.state import LifecycleConfig
from proxy.directory import PlayerDirectory
from proxy.gate import ACCESS_CONTROL_PRIORITY, ConnectionGate
from proxy.middleware import ApiKeyMiddleware
from proxy.settings import ServerSettings
from proxy.types import (
    CommandRequest,
    CommandResponse,
    ConnectionAttemptEvent,
    DisconnectedEvent,
    JoinedEvent,
)
from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.config import load_settings
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

    from compute.gateway import InstanceGateway
    from lifecycle.prober import ReachabilityProber

_MAX_REQUEST_BODY_SIZE = 16 * 1024


async def _read_body[ModelT: BaseModel](request: Request, model_cls: type[ModelT]) -> ModelT | JSONResponse:
    """Parse a JSON request body into model_cls, or return the error response to send."""
    try:
        raw_body = await request.body()
        if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
            return JSONResponse({"error": "Request body too large"}, status_code=413)
        body = json.loads(raw_body)
        return model_cls.model_validate(body)
    except (ValueError, TypeError, json.JSONDecodeError, UnicodeDecodeError, ValidationError):  # fmt: skip
        return JSONResponse({"error": "Invalid request body"}, status_code=400)


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


async def status(request: Request) -> JSONResponse:
    controller: LifecycleController = request.app.state.controller
    directory: PlayerDirectory = request.app.state.directory
    allowlist: AllowListManager = request.app.state.allowlist
    snapshot = await controller.snapshot()
    return JSONResponse(
        {
            "status": "ok",
            "version": APP_VERSION,
            "commit": GIT_COMMIT,
            "online_players": directory.online_count,
            "whitelist_enabled": allowlist.enabled,
            "lifecycle": snapshot.model_dump(mode="json"),
        },
    )


async def connection_attempt(request: Request) -> JSONResponse:
    gate: ConnectionGate = request.app.state.gate
    event = await _read_body(request, ConnectionAttemptEvent)
    if isinstance(event, JSONResponse):
        return event

    decision = await gate.connection_attempt(event)
    return JSONResponse(decision.model_dump(mode="json"))


async def player_joined(request: Request) -> Response:
    gate: ConnectionGate = request.app.state.gate
    event = await _read_body(request, JoinedEvent)
    if isinstance(event, JSONResponse):
        return event

    await gate.joined(event)
    return Response(status_code=204)


async def player_disconnected(request: Request) -> Response:
    gate: ConnectionGate = request.app.state.gate
    event = await _read_body(request, DisconnectedEvent)
    if isinstance(event, JSONResponse):
        return event

    await gate.disconnected(event)
    return Response(status_code=204)


async def run_command(request: Request) -> JSONResponse:
    commands: CommandRouter = request.app.state.commands
    command = await _read_body(request, CommandRequest)
    if isinstance(command, JSONResponse):
        return command

    replies = await commands.dispatch(command)
    return JSONResponse(CommandResponse(replies=replies).model_dump(mode="json"))


def create_app(
    settings: ServerSettings | None = None,
    controller_settings: ControllerSettings | None = None,
    allowlist_settings: AllowListSettings | None = None,
    gateway: InstanceGateway | None = None,
    prober: ReachabilityProber | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = ServerSettings()
    if controller_settings is None:  # pragma: no cover
        controller_settings = ControllerSettings()  # ty: ignore[missing-argument]
    if allowlist_settings is None:  # pragma: no cover
        allowlist_settings = AllowListSettings()

    if gateway is None:  # pragma: no cover
        gateway = ComputeEngineGateway.from_settings(controller_settings)
    if prober is None:
        prober = TcpReachabilityProber(timeout_seconds=controller_settings.probe_timeout_seconds)

    directory = PlayerDirectory()
    allowlist = AllowListManager(
        FileAllowListStore(allowlist_settings.file),
        allowlist_settings,
        MojangProfileClient(allowlist_settings.profile_api_url, allowlist_settings.lookup_timeout_seconds),
        directory,
    )
    controller = LifecycleController(gateway, prober, LifecycleConfig.from_settings(controller_settings))

    gate = ConnectionGate()
    if allowlist.enabled:
        gate.on_connection_attempt(allowlist.check_connection, priority=ACCESS_CONTROL_PRIORITY)
    gate.on_connection_attempt(controller.on_connection_attempt)
    gate.on_joined(directory.record_join)
    gate.on_joined(controller.on_joined)
    gate.on_disconnected(directory.record_disconnect)
    gate.on_disconnected(controller.on_disconnected)

    commands = CommandRouter()
    if allowlist.enabled:
        commands.register("whitelist", AllowListCommand(allowlist))
    commands.register("ping", PingCommand(cooldown_seconds=settings.ping_cooldown_seconds))

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/events/connection-attempt", connection_attempt, methods=["POST"]),
        Route("/events/joined", player_joined, methods=["POST"]),
        Route("/events/disconnected", player_disconnected, methods=["POST"]),
        Route("/commands", run_command, methods=["POST"]),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        if allowlist.enabled:
            await allowlist.load()
        yield
        await controller.aclose()

    app = Starlette(routes=routes, lifespan=lifespan)
    if settings.api_key:
        app.add_middleware(ApiKeyMiddleware, api_key=settings.api_key)  # type: ignore[arg-type]
    else:
        logger.warning("WAKEGATE_API_KEY is not set, event endpoints are unauthenticated")

    app.state.settings = settings
    app.state.directory = directory
    app.state.allowlist = allowlist
    app.state.controller = controller
    app.state.gate = gate
    app.state.commands = commands

    logger.info(
        "wakegate ready",
        server=controller_settings.server_name,
        instance=str(gateway.instance),
        whitelist_enabled=allowlist.enabled,
        commands=commands.command_names,
    )
    return app


def get_app() -> Starlette:  # pragma: no cover  # deadcode: ignore
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    settings = load_settings(ServerSettings)
    setup_logging(log_dir=settings.log_dir)
    return create_app(
        settings=settings,
        controller_settings=load_settings(ControllerSettings),
        allowlist_settings=load_settings(AllowListSettings),
    )
