"""Test the consecutive-failure health policy."""

from unittest.mock import Mock

import pytest

from alfred_core.core.models import UserVmRecord, VmStatus
from alfred_core.gateway.client import PingResult
from alfred_core.health_checker.checker import HealthMonitor
from alfred_core.infrastructure.memory.repository import InMemoryUserVmRepository


HEALTHY = PingResult(success=True, status="healthy", status_code=200, response_time=12.0)
DOWN = PingResult(success=False, status="timeout", error="Health check timed out")


@pytest.fixture
def probe():
    gateway = Mock()
    gateway.ping_vm.return_value = HEALTHY
    return gateway


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def monitor(repository, failure_tracker, probe, sleeps):
    return HealthMonitor(
        repository=repository,
        failure_tracker=failure_tracker,
        gateway=probe,
        vm_domain="alfredos.site",
        max_failures=3,
        check_delay=0.1,
        timeout=4,
        sleep=sleeps.append,
    )


class TestCheckVmHealth:

    def test_healthy(self, monitor, probe, make_user):
        make_user()

        result = monitor.check_vm_health("user-1")

        assert result.success
        assert result.healthy
        assert result.vm_url == "https://cozy-peanut.alfredos.site"
        assert result.message == "VM is healthy"
        probe.ping_vm.assert_called_once_with("https://cozy-peanut.alfredos.site", timeout=4)

    def test_repeated_healthy_checks_change_nothing(self, monitor, make_user, repository, failure_tracker):
        make_user()

        for _ in range(3):
            monitor.check_vm_health("user-1")

        assert repository.get("user-1").vm_status == VmStatus.READY
        assert failure_tracker.get_count("user-1") == 0

    def test_failures_below_threshold(self, monitor, probe, make_user, repository):
        make_user()
        probe.ping_vm.return_value = DOWN

        first = monitor.check_vm_health("user-1")
        second = monitor.check_vm_health("user-1")

        assert first.consecutive_failures == 1
        assert second.consecutive_failures == 2
        assert second.message == "VM health check failed (2/3)"
        assert not second.status_updated
        assert repository.get("user-1").vm_status == VmStatus.READY

    def test_threshold_marks_error(self, monitor, probe, make_user, repository, failure_tracker):
        make_user()
        probe.ping_vm.return_value = DOWN

        results = [monitor.check_vm_health("user-1") for _ in range(3)]

        last = results[-1]
        assert last.status_updated
        assert last.consecutive_failures == 3
        assert last.vm_status == "error"
        assert last.message == "VM marked as 'error' after 3 consecutive failures"
        assert repository.get("user-1").vm_status == VmStatus.ERROR
        assert failure_tracker.get_count("user-1") == 0

    def test_success_resets_count(self, monitor, probe, make_user, repository, failure_tracker):
        make_user()
        probe.ping_vm.side_effect = [DOWN, DOWN, HEALTHY, DOWN, DOWN]

        for _ in range(5):
            monitor.check_vm_health("user-1")

        assert failure_tracker.get_count("user-1") == 2
        assert repository.get("user-1").vm_status == VmStatus.READY

    @pytest.mark.parametrize("status", [
        VmStatus.PENDING,
        VmStatus.PROVISIONING,
        VmStatus.ERROR,
        VmStatus.DEPROVISIONED,
    ])
    def test_skips_vm_that_is_not_ready(self, monitor, probe, make_user, failure_tracker, status):
        make_user(status=status)
        failure_tracker.increment("user-1")

        result = monitor.check_vm_health("user-1")

        assert result.skipped
        assert not result.success
        assert result.error == f"VM status is '{status.value}', not 'ready'"
        assert failure_tracker.get_count("user-1") == 1
        probe.ping_vm.assert_not_called()

    def test_unknown_user(self, monitor):
        result = monitor.check_vm_health("nobody")

        assert not result.success
        assert result.error == "User not found"

    def test_requires_user_id(self, monitor):
        with pytest.raises(ValueError):
            monitor.check_vm_health({})

    def test_accepts_record(self, monitor, make_user):
        record = make_user()

        assert monitor.check_vm_health(record).healthy


class FlakyRepository(InMemoryUserVmRepository):
    """Raises on lookup for one user."""

    def __init__(self, broken_user_id):
        super().__init__()
        self.broken_user_id = broken_user_id

    def get(self, user_id):
        if user_id == self.broken_user_id:
            raise RuntimeError("connection reset")
        return super().get(user_id)


class TestCheckAllVms:

    def test_no_vms(self, monitor, probe, sleeps):
        summary = monitor.check_all_vms()

        assert summary.total == 0
        assert summary.message == "No VMs to check"
        probe.ping_vm.assert_not_called()
        assert sleeps == []

    def test_only_ready_vms_are_swept(self, monitor, probe, make_user):
        make_user("user-1")
        make_user("user-2", subdomain="brave-otter")
        make_user("user-3", status=VmStatus.PROVISIONING, subdomain="calm-heron")

        summary = monitor.check_all_vms()

        assert summary.total == 2
        assert summary.healthy == 2
        assert summary.message == "Checked 2 VMs: 2 healthy, 0 unhealthy"
        assert probe.ping_vm.call_count == 2

    def test_counts_unhealthy_and_marked(self, monitor, probe, make_user, failure_tracker):
        make_user("user-1")
        make_user("user-2", subdomain="brave-otter")
        failure_tracker.increment("user-2")
        failure_tracker.increment("user-2")
        probe.ping_vm.return_value = DOWN

        summary = monitor.check_all_vms()

        assert summary.unhealthy == 2
        assert summary.marked_as_error == 1
        assert {c["user_id"]: c["status_updated"] for c in summary.checks} == {
            "user-1": False,
            "user-2": True,
        }

    def test_delay_between_vms_only(self, monitor, make_user, sleeps):
        make_user("user-1")
        make_user("user-2", subdomain="brave-otter")
        make_user("user-3", subdomain="calm-heron")

        monitor.check_all_vms()

        assert sleeps == [0.1, 0.1]

    def test_one_failing_vm_does_not_stop_sweep(self, failure_tracker, probe, sleeps):
        repository = FlakyRepository(broken_user_id="user-2")
        for user_id, subdomain in [("user-1", "cozy-peanut"), ("user-2", "brave-otter"), ("user-3", "calm-heron")]:
            repository.create(UserVmRecord(user_id=user_id, vm_status=VmStatus.READY, vm_subdomain=subdomain))

        monitor = HealthMonitor(repository, failure_tracker, probe, sleep=sleeps.append)
        summary = monitor.check_all_vms()

        assert summary.total == 3
        assert summary.errors == 1
        assert summary.healthy == 2
        assert [c for c in summary.checks if c["user_id"] == "user-2"][0]["error"] == "connection reset"


class TestFailureTracking:

    def test_stats_and_clear(self, monitor, probe, make_user):
        make_user()
        probe.ping_vm.return_value = DOWN
        monitor.check_vm_health("user-1")

        stats = monitor.get_failure_stats()

        assert stats[0]["user_id"] == "user-1"
        assert stats[0]["consecutive_failures"] == 1
        assert stats[0]["last_check"] is not None

        assert monitor.clear_failure_tracking() == 1
        assert monitor.get_failure_stats() == []


class TestLongRunningMode:

    def test_stop_ends_loop(self, repository, failure_tracker, probe, monkeypatch):
        monkeypatch.setattr("alfred_core.health_checker.checker.signal.signal", lambda *args: None)
        monitor = HealthMonitor(repository, failure_tracker, probe, check_interval=60)
        monitor._sleep = lambda seconds: monitor.stop()

        monitor.start()

        assert monitor._stop_requested
