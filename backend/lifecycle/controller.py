"""Start the managed instance on demand and stop it when nobody uses it.

All state lives in one LifecycleState guarded by one asyncio.Lock. The lock is
never held across prober or gateway calls: start/stop decisions are committed
under the lock (start_in_flight / stop_in_flight), the slow call runs outside
it, and the outcome is applied after re-acquiring the lock and re-checking
whatever may have changed in between.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from compute.exceptions import InstanceApiError
from compute.types import InstanceStatus
from lifecycle.state import LifecycleSnapshot, LifecycleState, ShutdownReason
from proxy.types import ConnectionDecision

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from typing import Any

    from compute.gateway import InstanceGateway
    from lifecycle.prober import ReachabilityProber
    from lifecycle.state import LifecycleConfig
    from proxy.types import ConnectionAttemptEvent, DisconnectedEvent, JoinedEvent, PlayerInfo, ServerInfo

logger = structlog.get_logger()


@dataclass(frozen=True)
class _StartReservation:
    """A committed start decision; remembers what to restore if no start happens."""

    previous_request_at: float | None


class LifecycleController:
    """Lifecycle of one managed instance, driven by proxy events and timers.

    - connection attempt to an unreachable server: start (throttled), deny with
      the starting message, arm the no-join safety timer once started
    - join: count the player, cancel both timers
    - disconnect or switch to another backend: uncount the player, arm the
      idle timer at zero players
    - idle / no-join timer: stop the instance if it is still unused
    """

    def __init__(
        self,
        gateway: InstanceGateway,
        prober: ReachabilityProber,
        config: LifecycleConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._prober = prober
        self._config = config
        self._clock = clock
        self._state = LifecycleState(last_activity_at=clock())
        self._lock = asyncio.Lock()
        self._background: set[asyncio.Task[Any]] = set()
        self._log = logger.bind(server=config.managed_server, instance=str(gateway.instance))

    @property
    def config(self) -> LifecycleConfig:
        return self._config

    def _is_managed(self, server: ServerInfo | None) -> bool:
        return server is not None and server.name == self._config.managed_server

    async def on_connection_attempt(self, event: ConnectionAttemptEvent) -> ConnectionDecision | None:
        """Allow if the managed server answers; otherwise request a start and deny.

        Returns None for other servers. The start runs in the background, but
        the throttle/duplicate check has been committed before this returns.
        """
        if not self._is_managed(event.target):
            return None

        log = self._log.bind(player=event.player.username)
        if await self._prober.is_reachable(event.target.address):
            log.debug("managed server reachable, allowing connection")
            return ConnectionDecision.allow()

        log.info("managed server unreachable, requesting instance start")
        reservation = await self._reserve_start()
        if reservation is not None:
            self._spawn(self._perform_start(reservation))
        return ConnectionDecision.deny(self._config.starting_message)

    async def on_joined(self, event: JoinedEvent) -> None:
        joined_managed = self._is_managed(event.server)
        left_managed = self._is_managed(event.previous_server)
        if joined_managed == left_managed:
            # unrelated servers, or a reconnect to the managed one
            return
        if left_managed:
            # switched away without leaving the proxy
            await self._record_leave(event.player)
            return

        async with self._lock:
            state = self._state
            state.record_join(self._clock())
            if state.safety_timer.cancel():
                self._log.info("first player joined, cancelled no-join shutdown", player=event.player.username)
            state.is_starting = False
            if state.idle_timer.cancel():
                self._log.info(
                    "cancelled scheduled idle shutdown due to player join",
                    player=event.player.username,
                    player_count=state.player_count,
                )
            self._log.debug(
                "player connected to managed server",
                player=event.player.username,
                player_count=state.player_count,
            )

    async def on_disconnected(self, event: DisconnectedEvent) -> None:
        if not self._is_managed(event.server):
            return
        await self._record_leave(event.player)

    async def _record_leave(self, player: PlayerInfo) -> None:
        async with self._lock:
            state = self._state
            state.record_leave(self._clock())
            self._log.debug(
                "player left managed server",
                player=player.username,
                player_count=state.player_count,
            )
            if state.player_count == 0:
                state.idle_timer.arm(self._config.idle_timeout_seconds, self._on_idle_timeout)
                self._log.info("scheduled idle shutdown", idle_timeout_seconds=self._config.idle_timeout_seconds)

    async def try_start(self) -> bool:
        """Start the instance unless throttled, in flight, or not stopped. Returns True if started."""
        reservation = await self._reserve_start()
        if reservation is None:
            return False
        return await self._perform_start(reservation)

    async def try_stop(self, reason: ShutdownReason) -> bool:
        """Stop the instance if it is running and unused. Returns True if stopped."""
        async with self._lock:
            if self._state.stop_in_flight:
                self._log.info("instance stop already in progress", reason=reason)
                return False
            self._state.stop_in_flight = True

        try:
            return await self._perform_stop(reason)
        except InstanceApiError as e:
            self._log.error("failed to stop instance", reason=reason, operation=e.operation, error=str(e.cause or e))
            return False
        finally:
            async with self._lock:
                self._state.stop_in_flight = False

    async def snapshot(self) -> LifecycleSnapshot:
        async with self._lock:
            state = self._state
            now = self._clock()
            return LifecycleSnapshot(
                managed_server=self._config.managed_server,
                instance=str(self._gateway.instance),
                player_count=state.player_count,
                is_starting=state.is_starting,
                start_in_flight=state.start_in_flight,
                stop_in_flight=state.stop_in_flight,
                idle_shutdown_in_seconds=state.idle_timer.remaining_seconds,
                no_join_shutdown_in_seconds=state.safety_timer.remaining_seconds,
                seconds_since_last_start=(
                    None if state.last_start_requested_at is None else now - state.last_start_requested_at
                ),
                seconds_since_last_activity=now - state.last_activity_at,
            )

    async def wait_pending_operations(self) -> None:
        """Wait for background start requests spawned by connection attempts."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel background work and timers at shutdown."""
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)
        # not under the lock: a firing timer callback may be waiting for it
        await self._state.idle_timer.aclose()
        await self._state.safety_timer.aclose()

    async def _reserve_start(self) -> _StartReservation | None:
        async with self._lock:
            state = self._state
            if state.start_in_flight:
                self._log.info("instance start already in progress, skipping start request")
                return None

            now = self._clock()
            last = state.last_start_requested_at
            threshold = self._config.startup_threshold_seconds
            if last is not None and now - last < threshold:
                self._log.info(
                    "within startup threshold, skipping start request",
                    seconds_since_last_start=round(now - last, 1),
                    threshold_seconds=threshold,
                )
                return None

            state.start_in_flight = True
            state.last_start_requested_at = now
            return _StartReservation(previous_request_at=last)

    async def _perform_start(self, reservation: _StartReservation) -> bool:
        started = False
        try:
            status = await self._gateway.get_status()
            if status is not InstanceStatus.STOPPED:
                self._log.info("instance is not stopped, skipping start", status=status)
                return False

            self._log.info("starting instance")
            await self._gateway.start()
            started = True
        except InstanceApiError as e:
            self._log.error("failed to start instance", operation=e.operation, error=str(e.cause or e))
            return False
        finally:
            await self._finish_start(reservation, started=started)
        return True

    async def _finish_start(self, reservation: _StartReservation, *, started: bool) -> None:
        async with self._lock:
            state = self._state
            state.start_in_flight = False
            if not started:
                # as if never attempted: the next attempt is throttled by the previous start only
                state.last_start_requested_at = reservation.previous_request_at
                return

            state.last_start_requested_at = self._clock()
            if state.player_count > 0:
                self._log.info("instance started, players already joined", player_count=state.player_count)
                return
            state.is_starting = True
            state.safety_timer.arm(self._config.no_join_timeout_seconds, self._on_no_join_timeout)
            self._log.info(
                "instance started, waiting for first join",
                no_join_timeout_seconds=self._config.no_join_timeout_seconds,
            )

    async def _perform_stop(self, reason: ShutdownReason) -> bool:
        status = await self._gateway.get_status()
        if status is not InstanceStatus.RUNNING:
            self._log.info("instance is not running, skipping stop", status=status, reason=reason)
            return False

        async with self._lock:
            if self._state.player_count > 0:
                self._log.info("player joined during shutdown check, cancelling stop", reason=reason)
                return False

        self._log.info("stopping instance", reason=reason)
        await self._gateway.stop()
        self._log.info("instance stopped", reason=reason)
        return True

    async def _on_idle_timeout(self, generation: int) -> None:
        async with self._lock:
            state = self._state
            if not state.idle_timer.is_current(generation):
                return
            if state.player_count > 0:
                self._log.info("players online, cancelling idle shutdown", player_count=state.player_count)
                return

        self._log.info("idle timeout reached", idle_timeout_seconds=self._config.idle_timeout_seconds)
        await self.try_stop(ShutdownReason.IDLE)

    async def _on_no_join_timeout(self, generation: int) -> None:
        async with self._lock:
            state = self._state
            if not state.safety_timer.is_current(generation):
                return
            if state.player_count > 0 or not state.is_starting:
                return
            state.is_starting = False

        self._log.info("nobody joined after start", no_join_timeout_seconds=self._config.no_join_timeout_seconds)
        await self.try_stop(ShutdownReason.NO_JOIN)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log.error("background instance operation failed", exc_info=exc)
