# alfred_core/provisioning/service.py
"""User-level VM lifecycle: provision, register, deprovision, reset."""

import hashlib
import hmac
import logging
from typing import Any, Dict, Optional, Tuple

from alfred_core.core.errors import (
    InvalidAuthSecret,
    InvalidStateTransition,
    ProvisioningRefused,
    RegistrationNotExpected,
    UserNotFound,
    VmAlreadyRegistered,
)
from alfred_core.core.models import (
    ProvisioningRequest,
    ProvisioningResult,
    UserVmRecord,
    VmStatus,
)
from alfred_core.core.repository import UserVmRepository
from alfred_core.core.state_machine import VmStateMachine
from alfred_core.provisioning.orchestrator import ProvisioningOrchestrator, generate_auth_secret
from alfred_core.provisioning.subdomain import generate_subdomain

logger = logging.getLogger(__name__)


def hash_auth_secret(auth_secret: str) -> str:
    return hashlib.sha256(auth_secret.encode("utf-8")).hexdigest()


class ProvisioningService:
    """
    Ties the orchestrator to the user record.

    The record is the single source of truth for VM availability; this
    service is the only writer of its VM fields apart from the health monitor.
    """

    def __init__(
        self,
        repository: UserVmRepository,
        orchestrator: ProvisioningOrchestrator,
        vm_domain: str = "alfredos.site",
        default_provider: str = "hetzner",
        default_region: str = "nbg1",
        default_size: str = "cx22",
        subdomain_attempts: int = 100,
    ):
        self._repo = repository
        self._orchestrator = orchestrator
        self.vm_domain = vm_domain
        self.default_provider = default_provider
        self.default_region = default_region
        self.default_size = default_size
        self.subdomain_attempts = subdomain_attempts

    # ============================================
    # PROVISIONING
    # ============================================

    def begin_provisioning(
        self,
        user_id: str,
        provider: Optional[str] = None,
        region: Optional[str] = None,
        size: Optional[str] = None,
    ) -> Tuple[ProvisioningRequest, str]:
        """
        Claim a subdomain and move the record to provisioning.

        Returns:
            (request for the orchestrator, plain auth secret)

        Raises:
            UserNotFound: no record for user_id
            ProvisioningRefused: VM ready or already provisioning
        """
        record = self._get_or_raise(user_id)

        if record.vm_status == VmStatus.READY:
            raise ProvisioningRefused("VM already provisioned")

        if record.vm_status == VmStatus.PROVISIONING:
            raise ProvisioningRefused("VM provisioning already in progress")

        subdomain = generate_subdomain(
            lambda candidate: self._repo.reserve_subdomain(candidate, user_id),
            max_attempts=self.subdomain_attempts,
        )
        auth_secret = generate_auth_secret()

        VmStateMachine.transition(record, VmStatus.PROVISIONING)
        record.vm_subdomain = subdomain
        record.vm_ip = None
        record.vm_server_id = None
        record.vm_public_key = None
        record.vm_provisioned_at = None
        record.vm_auth_secret_hash = hash_auth_secret(auth_secret)
        self._repo.update(record)

        logger.info(f"[{user_id}] Starting VM provisioning with subdomain {subdomain}")

        request = ProvisioningRequest(
            subdomain=subdomain,
            user_id=user_id,
            provider=provider or self.default_provider,
            region=region or self.default_region,
            size=size or self.default_size,
        )

        return request, auth_secret

    def run_provisioning(
        self,
        user_id: str,
        request: ProvisioningRequest,
        auth_secret: str,
    ) -> ProvisioningResult:
        """Run the orchestrator and record the outcome. Never raises."""
        try:
            result = self._orchestrator.run(request, auth_secret=auth_secret)
        except Exception as e:
            logger.error(f"[{user_id}] VM provisioning crashed: {e}", exc_info=True)
            self._mark_error(user_id)
            return ProvisioningResult(success=False, subdomain=request.subdomain, error=str(e))

        try:
            record = self._get_or_raise(user_id)

            if result.success:
                VmStateMachine.transition(record, VmStatus.READY)
                record.vm_ip = result.ip_address
                record.vm_server_id = result.vm_id
                logger.info(f"[{user_id}] ✅ VM provisioning completed: {request.subdomain}")
            else:
                VmStateMachine.transition(record, VmStatus.ERROR)
                if "delete_server" not in result.rolled_back:
                    record.vm_server_id = result.vm_id
                    record.vm_ip = result.ip_address
                logger.error(f"[{user_id}] ❌ VM provisioning failed: {result.error}")

            self._repo.update(record)

        except Exception as e:
            logger.error(f"[{user_id}] Failed to record provisioning outcome: {e}", exc_info=True)
            self._mark_error(user_id)
            result.success = False
            result.error = result.error or str(e)

        return result

    def provision_for_user(
        self,
        user_id: str,
        provider: Optional[str] = None,
        region: Optional[str] = None,
        size: Optional[str] = None,
    ) -> ProvisioningResult:
        """Begin and run provisioning in one call (refusals come back as results)."""
        try:
            request, auth_secret = self.begin_provisioning(user_id, provider, region, size)
        except (UserNotFound, ProvisioningRefused) as e:
            logger.info(f"[{user_id}] Provisioning not started: {e}")
            record = self._repo.get(user_id)
            return ProvisioningResult(
                success=False,
                subdomain=record.vm_subdomain if record else None,
                error=str(e),
            )

        return self.run_provisioning(user_id, request, auth_secret)

    # ============================================
    # REGISTRATION
    # ============================================

    def register_vm(
        self,
        subdomain: str,
        auth_secret: str,
        public_key: Optional[str] = None,
    ) -> UserVmRecord:
        """
        Accept the boot callback of a freshly provisioned VM.

        Raises:
            UserNotFound: no record owns the subdomain
            VmAlreadyRegistered: record is already ready
            RegistrationNotExpected: no stored secret, or record not provisioning
            InvalidAuthSecret: secret does not match the stored hash
        """
        record = self._repo.get_by_subdomain(subdomain)
        if record is None:
            raise UserNotFound(f"No VM with subdomain {subdomain}")

        if record.vm_status == VmStatus.READY:
            raise VmAlreadyRegistered("VM already registered")

        if not record.vm_auth_secret_hash:
            raise RegistrationNotExpected("No auth secret expected for this VM")

        if not hmac.compare_digest(hash_auth_secret(auth_secret), record.vm_auth_secret_hash):
            logger.error(f"Invalid auth secret for subdomain {subdomain}")
            raise InvalidAuthSecret("Invalid auth secret")

        try:
            VmStateMachine.transition(record, VmStatus.READY)
        except InvalidStateTransition as e:
            raise RegistrationNotExpected(
                f"VM is not awaiting registration (status: {record.vm_status.value})"
            ) from e

        record.vm_public_key = public_key
        self._repo.update(record)

        logger.info(f"[{record.user_id}] VM registered successfully for subdomain {subdomain}")

        return record

    # ============================================
    # TEARDOWN
    # ============================================

    def deprovision(self, user_id: str, provider: Optional[str] = None) -> UserVmRecord:
        """
        Destroy the user's server and DNS record, then mark deprovisioned.

        Provider failures are logged, not raised: the record still moves to
        deprovisioned and the leftovers are visible in the logs.
        """
        record = self._get_or_raise(user_id)

        # Fail before touching the provider if the status can't move
        if not VmStateMachine.can_transition(record.vm_status, VmStatus.DEPROVISIONED):
            raise InvalidStateTransition(
                f"Cannot deprovision VM in {record.vm_status.value} state"
            )

        compute = self._orchestrator.compute_clients.get(provider or self.default_provider)

        if record.vm_server_id and compute is not None:
            deleted = compute.delete_server(record.vm_server_id)
            if not deleted.success:
                logger.error(f"[{user_id}] Failed to delete server {record.vm_server_id}: {deleted.error}")

        if record.vm_subdomain:
            dns = self._orchestrator.dns_client
            lookup = dns.get_record(record.vm_subdomain)
            if lookup.success and lookup.record:
                removed = dns.delete_record(lookup.record.id)
                if not removed.success:
                    logger.error(f"[{user_id}] Failed to delete DNS record {lookup.record.id}: {removed.error}")
            elif not lookup.success:
                logger.error(f"[{user_id}] DNS lookup for {record.vm_subdomain} failed: {lookup.error}")

        VmStateMachine.transition(record, VmStatus.DEPROVISIONED)
        record.vm_ip = None
        record.vm_server_id = None
        record.vm_auth_secret_hash = None
        record.vm_public_key = None
        self._repo.update(record)

        logger.info(f"[{user_id}] VM deprovisioned ({record.vm_subdomain})")

        return record

    def reset_vm(self, email: str) -> UserVmRecord:
        """
        Operator reset: clear the VM fields and force error so the user can
        provision again. The old subdomain stays reserved.
        """
        record = self._repo.get_by_email(email)
        if record is None:
            raise UserNotFound(f"No user with email {email}")

        record.vm_subdomain = None
        record.vm_ip = None
        record.vm_server_id = None
        record.vm_auth_secret_hash = None
        record.vm_public_key = None
        record.vm_provisioned_at = None
        VmStateMachine.transition(record, VmStatus.ERROR, force=True)
        self._repo.update(record)

        logger.info(f"[Admin] Reset VM status for user {email}")

        return record

    # ============================================
    # STATUS
    # ============================================

    def get_user_status(self, user_id: str) -> Dict[str, Any]:
        record = self._get_or_raise(user_id)

        status = {
            "has_access": record.has_access,
            "vm_status": record.vm_status.value,
            "vm_subdomain": record.vm_subdomain,
            "vm_ip": record.vm_ip,
            "dashboard_url": None,
            "librechat_url": None,
            "nocodb_url": None,
        }

        if record.is_ready() and record.vm_subdomain:
            base_url = f"https://{record.vm_subdomain}.{self.vm_domain}"
            status["dashboard_url"] = base_url
            status["librechat_url"] = f"{base_url}/librechat"
            status["nocodb_url"] = f"{base_url}/nocodb"

        return status

    # ============================================
    # HELPERS
    # ============================================

    def _get_or_raise(self, user_id: str) -> UserVmRecord:
        record = self._repo.get(user_id)
        if record is None:
            raise UserNotFound(f"User {user_id} not found")
        return record

    def _mark_error(self, user_id: str) -> None:
        try:
            record = self._repo.get(user_id)
            if record and VmStateMachine.can_transition(record.vm_status, VmStatus.ERROR):
                VmStateMachine.transition(record, VmStatus.ERROR)
                self._repo.update(record)
        except Exception as e:
            logger.error(f"[{user_id}] Failed to update user status: {e}", exc_info=True)
