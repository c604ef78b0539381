from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from lifecycle.timer import DeferredAction

if TYPE_CHECKING:
    from lifecycle.settings import ControllerSettings


class ShutdownReason(StrEnum):
    IDLE = "idle"
    NO_JOIN = "no_join"


class LifecycleConfig(BaseModel):
    """Immutable controller configuration for one managed server."""

    model_config = ConfigDict(frozen=True)

    managed_server: str = Field(min_length=1)
    idle_timeout_seconds: float = Field(default=1800, gt=0)
    startup_threshold_seconds: float = Field(default=300, ge=0)
    no_join_timeout_seconds: float = Field(default=300, gt=0)
    starting_message: str = "Server is starting up! Please wait 30-60 seconds and try again."

    @classmethod
    def from_settings(cls, settings: ControllerSettings) -> LifecycleConfig:
        return cls(
            managed_server=settings.server_name,
            idle_timeout_seconds=settings.idle_timeout_seconds,
            startup_threshold_seconds=settings.startup_threshold_seconds,
            no_join_timeout_seconds=settings.no_join_timeout_seconds,
            starting_message=settings.starting_message,
        )


@dataclass
class LifecycleState:
    """Authoritative in-memory record for the managed instance.

    Only LifecycleController touches this, and only while holding its lock.
    Timestamps are time.monotonic() values.

    Conceptual states:
    - Idle: player_count == 0, not starting, no timers
    - AwaitingJoin: is_starting, safety_timer armed
    - Active: player_count >= 1, timers disarmed
    - Draining: player_count == 0 after Active, idle_timer armed
    """

    last_activity_at: float = field(default_factory=time.monotonic)
    player_count: int = 0
    last_start_requested_at: float | None = None
    is_starting: bool = False
    start_in_flight: bool = False
    stop_in_flight: bool = False
    idle_timer: DeferredAction = field(default_factory=lambda: DeferredAction(ShutdownReason.IDLE))
    safety_timer: DeferredAction = field(default_factory=lambda: DeferredAction(ShutdownReason.NO_JOIN))

    def record_join(self, now: float) -> None:
        self.player_count += 1
        self.last_activity_at = now

    def record_leave(self, now: float) -> None:
        self.player_count = max(0, self.player_count - 1)
        self.last_activity_at = now


class LifecycleSnapshot(BaseModel):
    """Read-only view of the controller state for status reporting."""

    managed_server: str
    instance: str
    player_count: int
    is_starting: bool
    start_in_flight: bool
    stop_in_flight: bool
    idle_shutdown_in_seconds: float | None
    no_join_shutdown_in_seconds: float | None
    seconds_since_last_start: float | None
    seconds_since_last_activity: float
