# alfred_core/health_checker/checker.py
"""
Health Monitor - probes ready VMs and demotes them after repeated failures.

Driven either by the cron endpoint (one sweep per call) or by start() as a
separate process.
"""

import logging
import signal
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from alfred_core.core.models import VmStatus
from alfred_core.core.repository import FailureTracker, UserVmRepository
from alfred_core.gateway.client import PingResult, UserRef, VmGateway, resolve_user_id

logger = logging.getLogger(__name__)


@dataclass
class HealthCheckResult:
    success: bool
    healthy: bool
    user_id: Optional[str] = None
    vm_subdomain: Optional[str] = None
    vm_status: Optional[str] = None
    vm_url: Optional[str] = None
    ping: Optional[PingResult] = None
    consecutive_failures: int = 0
    status_updated: bool = False
    skipped: bool = False
    error: Optional[str] = None
    message: Optional[str] = None


@dataclass
class SweepSummary:
    total: int = 0
    healthy: int = 0
    unhealthy: int = 0
    skipped: int = 0
    marked_as_error: int = 0
    errors: int = 0
    checks: List[Dict[str, Any]] = field(default_factory=list)
    duration_ms: float = 0
    message: str = ""


class HealthMonitor:
    """
    Consecutive-failure policy over VM health probes.

    - Only VMs in READY state are probed
    - A success resets the user's failure count
    - max_failures consecutive failures write vm_status=ERROR and reset the count
    """

    def __init__(
        self,
        repository: UserVmRepository,
        failure_tracker: FailureTracker,
        gateway: VmGateway,
        vm_domain: str = "alfredos.site",
        max_failures: int = 3,
        check_delay: float = 0.1,
        timeout: float = 10.0,
        check_interval: int = 300,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize health monitor.

        Args:
            repository: User VM records
            failure_tracker: Consecutive failure counts
            gateway: Provides the health probe
            vm_domain: Zone VM subdomains live in
            max_failures: Consecutive failures before ERROR
            check_delay: Pause between VMs within one sweep (seconds)
            timeout: Probe timeout (seconds)
            check_interval: Pause between sweeps in start() (seconds)
            sleep: Wait function (replaced in tests)
        """
        self._repo = repository
        self._tracker = failure_tracker
        self._gateway = gateway
        self.vm_domain = vm_domain
        self.max_failures = max_failures
        self.check_delay = check_delay
        self.timeout = timeout
        self.check_interval = check_interval
        self._sleep = sleep
        self._stop_requested = False

    # ============================================
    # SINGLE VM
    # ============================================

    def check_vm_health(self, user: UserRef) -> HealthCheckResult:
        """
        Probe one user's VM and apply the failure policy.

        Raises:
            ValueError: no user id could be resolved
        """
        user_id = resolve_user_id(user)
        if not user_id:
            raise ValueError("Valid user object or user ID is required")

        record = self._repo.get(user_id)

        if record is None:
            return HealthCheckResult(
                success=False,
                healthy=False,
                user_id=user_id,
                error="User not found",
            )

        if record.vm_status != VmStatus.READY or not record.vm_subdomain:
            return HealthCheckResult(
                success=False,
                healthy=False,
                user_id=user_id,
                vm_subdomain=record.vm_subdomain,
                vm_status=record.vm_status.value,
                skipped=True,
                error=f"VM status is '{record.vm_status.value}', not 'ready'",
            )

        vm_url = f"https://{record.vm_subdomain}.{self.vm_domain}"
        ping = self._gateway.ping_vm(vm_url, timeout=self.timeout)

        if ping.success:
            self._tracker.reset(user_id)

            logger.debug(f"[{user_id}] ✅ {record.vm_subdomain} healthy ({(ping.response_time or 0):.0f}ms)")

            return HealthCheckResult(
                success=True,
                healthy=True,
                user_id=user_id,
                vm_subdomain=record.vm_subdomain,
                vm_status=record.vm_status.value,
                vm_url=vm_url,
                ping=ping,
                consecutive_failures=0,
                message="VM is healthy",
            )

        failures = self._tracker.increment(user_id)
        error = ping.error or "VM health check failed"

        logger.warning(
            f"[{user_id}] ❌ {record.vm_subdomain} health check failed "
            f"({failures}/{self.max_failures}): {error}"
        )

        if failures >= self.max_failures:
            logger.error(
                f"[{user_id}] {record.vm_subdomain} failed {failures} consecutive health checks, "
                f"marking as error"
            )

            self._repo.update_vm_status(user_id, VmStatus.ERROR)
            self._tracker.reset(user_id)

            return HealthCheckResult(
                success=False,
                healthy=False,
                user_id=user_id,
                vm_subdomain=record.vm_subdomain,
                vm_status=VmStatus.ERROR.value,
                vm_url=vm_url,
                ping=ping,
                consecutive_failures=failures,
                status_updated=True,
                error=error,
                message=f"VM marked as 'error' after {failures} consecutive failures",
            )

        return HealthCheckResult(
            success=False,
            healthy=False,
            user_id=user_id,
            vm_subdomain=record.vm_subdomain,
            vm_status=record.vm_status.value,
            vm_url=vm_url,
            ping=ping,
            consecutive_failures=failures,
            status_updated=False,
            error=error,
            message=f"VM health check failed ({failures}/{self.max_failures})",
        )

    # ============================================
    # SWEEP
    # ============================================

    def check_all_vms(self) -> SweepSummary:
        """
        Check every READY VM, one after another.

        An exception while checking one VM is recorded in `errors` and the
        sweep moves on.
        """
        started = time.monotonic()
        summary = SweepSummary()

        records = self._repo.list_by_status(VmStatus.READY)
        summary.total = len(records)

        if not records:
            logger.info("No VMs with status='ready' found")
            summary.duration_ms = (time.monotonic() - started) * 1000
            summary.message = "No VMs to check"
            return summary

        logger.info(f"Starting health checks for {len(records)} VMs...")

        for index, record in enumerate(records):
            try:
                result = self.check_vm_health(record.user_id)

                if result.skipped:
                    summary.skipped += 1
                elif result.healthy:
                    summary.healthy += 1
                else:
                    summary.unhealthy += 1
                    if result.status_updated:
                        summary.marked_as_error += 1

                summary.checks.append({
                    "user_id": record.user_id,
                    "vm_subdomain": record.vm_subdomain,
                    "healthy": result.healthy,
                    "skipped": result.skipped,
                    "consecutive_failures": result.consecutive_failures,
                    "status_updated": result.status_updated,
                    "error": result.error,
                })

            except Exception as e:
                logger.error(f"[{record.user_id}] Failed to check VM: {e}", exc_info=True)
                summary.errors += 1
                summary.checks.append({
                    "user_id": record.user_id,
                    "vm_subdomain": record.vm_subdomain,
                    "healthy": False,
                    "error": str(e),
                })

            if index < len(records) - 1 and self.check_delay:
                self._sleep(self.check_delay)

        summary.duration_ms = (time.monotonic() - started) * 1000
        summary.message = (
            f"Checked {summary.total} VMs: {summary.healthy} healthy, {summary.unhealthy} unhealthy"
        )

        logger.info(
            f"Health check completed in {summary.duration_ms:.0f}ms. "
            f"Healthy: {summary.healthy}, Unhealthy: {summary.unhealthy}, "
            f"Marked as error: {summary.marked_as_error}, Errors: {summary.errors}"
        )

        return summary

    # ============================================
    # FAILURE TRACKING
    # ============================================

    def get_failure_stats(self) -> List[Dict[str, Any]]:
        return self._tracker.stats()

    def clear_failure_tracking(self) -> int:
        count = self._tracker.clear()
        logger.info(f"Cleared failure tracking for {count} users")
        return count

    # ============================================
    # LONG-RUNNING MODE
    # ============================================

    def start(self):
        """Sweep every check_interval seconds until SIGINT/SIGTERM."""
        logger.info("=" * 80)
        logger.info("🏥 VM HEALTH MONITOR STARTED")
        logger.info("=" * 80)
        logger.info(f"Check interval: {self.check_interval}s")
        logger.info(f"Failure threshold: {self.max_failures}")
        logger.info(f"Probe timeout: {self.timeout}s")
        logger.info("Press Ctrl+C to stop")
        logger.info("=" * 80)

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        while not self._stop_requested:
            try:
                self.check_all_vms()
            except Exception as e:
                logger.error(f"Error in health sweep: {e}", exc_info=True)

            if not self._stop_requested:
                self._sleep(self.check_interval)

        logger.info("Health Monitor stopped")

    def stop(self):
        self._stop_requested = True

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        self._stop_requested = True
