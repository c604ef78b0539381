import pytest

from compute.exceptions import InstanceApiError
from compute.types import InstanceRef, InstanceStatus


class TestFromComputeStatus:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("RUNNING", InstanceStatus.RUNNING),
            ("TERMINATED", InstanceStatus.STOPPED),
            ("STOPPED", InstanceStatus.STOPPED),
            ("PROVISIONING", InstanceStatus.STARTING),
            ("STAGING", InstanceStatus.STARTING),
            ("STOPPING", InstanceStatus.STOPPING),
            ("SUSPENDING", InstanceStatus.STOPPING),
            ("SUSPENDED", InstanceStatus.UNKNOWN),
            ("REPAIRING", InstanceStatus.UNKNOWN),
            ("", InstanceStatus.UNKNOWN),
        ],
    )
    def test_mapping(self, raw, expected):
        assert InstanceStatus.from_compute_status(raw) is expected

    def test_case_insensitive(self):
        assert InstanceStatus.from_compute_status("running") is InstanceStatus.RUNNING


class TestInstanceRef:
    def test_str(self):
        assert str(InstanceRef(project="p", zone="z", name="mc")) == "p/z/mc"

    def test_rejects_empty_name(self):
        with pytest.raises(ValueError, match="name"):
            InstanceRef(project="p", zone="z", name="")


class TestInstanceApiError:
    def test_message_includes_cause(self):
        ref = InstanceRef(project="p", zone="z", name="mc")
        error = InstanceApiError("start", ref, RuntimeError("quota exceeded"))

        assert str(error) == "Failed to start instance p/z/mc: quota exceeded"
        assert error.operation == "start"

    def test_message_without_cause(self):
        error = InstanceApiError("stop", InstanceRef(project="p", zone="z", name="mc"))
        assert str(error) == "Failed to stop instance p/z/mc"
