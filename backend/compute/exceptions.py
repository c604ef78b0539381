from compute.types import InstanceRef


class InstanceApiError(Exception):
    """A get/start/stop call against the instance API failed or timed out."""

    def __init__(self, operation: str, instance: InstanceRef, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.instance = instance
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to {operation} instance {instance}{detail}")
