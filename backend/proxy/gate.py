"""Connection gate: fan proxy events out to subscribers in priority order."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from proxy.types import ConnectionDecision

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from proxy.types import ConnectionAttemptEvent, DisconnectedEvent, JoinedEvent

    # None means "no objection"; a denied decision ends the chain.
    ConnectionAttemptHandler = Callable[[ConnectionAttemptEvent], Awaitable[ConnectionDecision | None]]
    JoinedHandler = Callable[[JoinedEvent], Awaitable[None]]
    DisconnectedHandler = Callable[[DisconnectedEvent], Awaitable[None]]

logger = structlog.get_logger()

# Access control must reject a player before anything spends effort on them.
ACCESS_CONTROL_PRIORITY = 100
DEFAULT_PRIORITY = 0


@dataclass(order=True)
class _Subscription[HandlerT]:
    sort_key: tuple[int, int]
    handler: HandlerT = field(compare=False)


class ConnectionGate:
    """Deliver proxy events to subscribers, higher priority first.

    Connection attempts stop at the first denial, so a lower-priority consumer
    never sees a connection that was already rejected. Join and disconnect
    notifications reach every subscriber; one failing subscriber is logged and
    does not starve the rest.
    """

    def __init__(self) -> None:
        self._sequence = 0
        self._attempt_handlers: list[_Subscription[ConnectionAttemptHandler]] = []
        self._joined_handlers: list[_Subscription[JoinedHandler]] = []
        self._disconnected_handlers: list[_Subscription[DisconnectedHandler]] = []

    def _key(self, priority: int) -> tuple[int, int]:
        # equal priorities keep subscription order
        self._sequence += 1
        return (-priority, self._sequence)

    def on_connection_attempt(self, handler: ConnectionAttemptHandler, priority: int = DEFAULT_PRIORITY) -> None:
        self._attempt_handlers.append(_Subscription(self._key(priority), handler))
        self._attempt_handlers.sort()

    def on_joined(self, handler: JoinedHandler, priority: int = DEFAULT_PRIORITY) -> None:
        self._joined_handlers.append(_Subscription(self._key(priority), handler))
        self._joined_handlers.sort()

    def on_disconnected(self, handler: DisconnectedHandler, priority: int = DEFAULT_PRIORITY) -> None:
        self._disconnected_handlers.append(_Subscription(self._key(priority), handler))
        self._disconnected_handlers.sort()

    async def connection_attempt(self, event: ConnectionAttemptEvent) -> ConnectionDecision:
        for subscription in self._attempt_handlers:
            decision = await subscription.handler(event)
            if decision is not None and not decision.allowed:
                logger.info(
                    "connection denied",
                    player=event.player.username,
                    server=event.target.name,
                )
                return decision
        return ConnectionDecision.allow()

    async def joined(self, event: JoinedEvent) -> None:
        for subscription in self._joined_handlers:
            try:
                await subscription.handler(event)
            except Exception:
                logger.exception("join handler failed", player=event.player.username, server=event.server.name)

    async def disconnected(self, event: DisconnectedEvent) -> None:
        server = event.server.name if event.server is not None else None
        for subscription in self._disconnected_handlers:
            try:
                await subscription.handler(event)
            except Exception:
                logger.exception("disconnect handler failed", player=event.player.username, server=server)
