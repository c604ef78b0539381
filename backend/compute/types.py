from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class InstanceStatus(StrEnum):
    """Power state of the managed instance as last reported by the API."""

    RUNNING = "running"
    STOPPED = "stopped"
    STARTING = "starting"
    STOPPING = "stopping"
    UNKNOWN = "unknown"

    @classmethod
    def from_compute_status(cls, status: str) -> InstanceStatus:
        """Map a Compute Engine instance status string onto the controller's view."""
        return _COMPUTE_STATUS_MAP.get(status.upper(), cls.UNKNOWN)


# SUSPENDED instances need resume(), not start(), so they stay UNKNOWN.
_COMPUTE_STATUS_MAP = {
    "RUNNING": InstanceStatus.RUNNING,
    "TERMINATED": InstanceStatus.STOPPED,
    "STOPPED": InstanceStatus.STOPPED,
    "PROVISIONING": InstanceStatus.STARTING,
    "STAGING": InstanceStatus.STARTING,
    "STOPPING": InstanceStatus.STOPPING,
    "SUSPENDING": InstanceStatus.STOPPING,
}


class InstanceRef(BaseModel):
    """Identifies one Compute Engine instance."""

    model_config = ConfigDict(frozen=True)

    project: str = Field(min_length=1)
    zone: str = Field(min_length=1)
    name: str = Field(min_length=1)

    def __str__(self) -> str:
        return f"{self.project}/{self.zone}/{self.name}"
