# alfred_core/provisioning/orchestrator.py
"""Provisioning orchestrator - runs the VM creation steps in order."""

import base64
import logging
import secrets
import time
from typing import Callable, Dict, List, Optional, Tuple

from alfred_core.core.errors import ConfigurationError, ProvisioningValidationError
from alfred_core.core.models import (
    ProvisioningRequest,
    ProvisioningResult,
    ProvisioningStepName,
    new_provisioning_steps,
)
from alfred_core.core.validation import validate_provisioning_request
from alfred_core.gateway.client import VmGateway
from alfred_core.providers.compute import HetznerComputeClient
from alfred_core.providers.dns import CloudflareDnsClient
from alfred_core.provisioning.cloud_init import generate_cloud_init

logger = logging.getLogger(__name__)


def generate_auth_secret() -> str:
    """32 random bytes, base64. Presented by the VM when it registers."""
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class StepFailed(Exception):
    """A provisioning step could not complete. Never leaves run()."""
    pass


class ProvisioningOrchestrator:
    """
    Creates a VM for one subdomain.

    Flow:
    1. validate        - request fields
    2. create_vm       - server with cloud-init user data
    3. configure_dns   - A record <subdomain> -> server IPv4
    4. wait_for_ready  - poll the provider until the server is running
    5. verify_services - poll the VM's health endpoint

    The first failing step stops the run. Every step that created something
    registers a compensating action; with rollback_on_failure those run in
    reverse after a failure.
    """

    def __init__(
        self,
        compute_clients: Dict[str, HetznerComputeClient],
        dns_client: CloudflareDnsClient,
        gateway: VmGateway,
        platform_url: str = "https://alfred.rocks",
        vm_domain: str = "alfredos.site",
        ready_max_attempts: int = 30,
        ready_interval: float = 10.0,
        verify_max_attempts: int = 30,
        verify_interval: float = 10.0,
        rollback_on_failure: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize orchestrator.

        Args:
            compute_clients: Compute client per provider name (e.g., {"hetzner": client})
            dns_client: DNS client for the VM zone
            gateway: Used for the unauthenticated health probe
            platform_url: Registration callback base written into cloud-init
            vm_domain: Zone VM subdomains live in
            ready_max_attempts: Bound on server status polls
            ready_interval: Seconds between server status polls
            verify_max_attempts: Bound on health probes
            verify_interval: Seconds between health probes
            rollback_on_failure: Undo created resources when a step fails
            sleep: Wait function (replaced in tests)
        """
        self.compute_clients = compute_clients
        self.dns_client = dns_client
        self.gateway = gateway
        self.platform_url = platform_url
        self.vm_domain = vm_domain
        self.ready_max_attempts = ready_max_attempts
        self.ready_interval = ready_interval
        self.verify_max_attempts = verify_max_attempts
        self.verify_interval = verify_interval
        self.rollback_on_failure = rollback_on_failure
        self._sleep = sleep

    def run(
        self,
        request: ProvisioningRequest,
        auth_secret: Optional[str] = None,
    ) -> ProvisioningResult:
        """
        Provision a VM.

        Returns:
            ProvisioningResult with the full step history; never raises for
            step failures (ConfigurationError still propagates)
        """
        auth_secret = auth_secret or generate_auth_secret()

        result = ProvisioningResult(
            success=False,
            provisioning_steps=new_provisioning_steps(),
            subdomain=request.subdomain,
        )
        compensations: List[Tuple[str, Callable]] = []

        handlers = {
            ProvisioningStepName.VALIDATE: lambda: self._validate(request),
            ProvisioningStepName.CREATE_VM: lambda: self._create_vm(request, auth_secret, result, compensations),
            ProvisioningStepName.CONFIGURE_DNS: lambda: self._configure_dns(request, result, compensations),
            ProvisioningStepName.WAIT_FOR_READY: lambda: self._wait_for_ready(request, result),
            ProvisioningStepName.VERIFY_SERVICES: lambda: self._verify_services(request),
        }

        logger.info(f"[orchestrator] provisioning {request.subdomain} for user {request.user_id}")

        for step in result.provisioning_steps:
            step.start()
            logger.info(f"[orchestrator] [{request.subdomain}] step {step.step.value} running")

            try:
                handlers[step.step]()
            except (StepFailed, ProvisioningValidationError) as e:
                self._fail(step, str(e), request, result, compensations)
                return result
            except ConfigurationError:
                step.fail("Configuration error")
                self._rollback(request, result, compensations)
                raise
            except Exception as e:
                logger.error(
                    f"[orchestrator] [{request.subdomain}] unexpected error in {step.step.value}: {e}",
                    exc_info=True,
                )
                self._fail(step, str(e), request, result, compensations)
                return result

            step.complete()

        result.success = True
        result.auth_secret = auth_secret

        logger.info(
            f"[orchestrator] ✅ {request.subdomain} provisioned: server {result.vm_id} at {result.ip_address}"
        )

        return result

    # ============================================
    # STEPS
    # ============================================

    def _validate(self, request: ProvisioningRequest) -> None:
        validate_provisioning_request(request)

    def _create_vm(self, request, auth_secret, result, compensations) -> None:
        compute = self.compute_clients.get(request.provider)
        if compute is None:
            raise StepFailed(f"No compute client configured for provider: {request.provider}")

        user_data = generate_cloud_init(
            request.subdomain,
            auth_secret,
            platform_url=self.platform_url,
            vm_domain=self.vm_domain,
        )

        created = compute.create_server(
            request.subdomain,
            user_data=user_data,
            location=request.region,
            server_type=request.size,
        )

        if not created.success:
            raise StepFailed(created.error or "Failed to create VM")

        server = created.server
        result.vm_id = server.id
        result.ip_address = server.public_ipv4

        compensations.append(("delete_server", lambda: compute.delete_server(server.id)))

    def _configure_dns(self, request, result, compensations) -> None:
        if not result.ip_address:
            raise StepFailed("VM has no public IPv4 address")

        created = self.dns_client.create_record(request.subdomain, result.ip_address)

        if not created.success:
            raise StepFailed(created.error or "Failed to configure DNS")

        record_id = created.record.id
        compensations.append(("delete_dns_record", lambda: self.dns_client.delete_record(record_id)))

    def _wait_for_ready(self, request, result) -> None:
        compute = self.compute_clients[request.provider]

        for attempt in range(1, self.ready_max_attempts + 1):
            status = compute.get_server_status(result.vm_id)

            if status.success and status.server.status == "running":
                logger.info(
                    f"[orchestrator] [{request.subdomain}] server running after {attempt} attempt(s)"
                )
                return

            current = status.server.status if status.success else status.error
            logger.debug(
                f"[orchestrator] [{request.subdomain}] server not running yet "
                f"({attempt}/{self.ready_max_attempts}): {current}"
            )

            if attempt < self.ready_max_attempts:
                self._sleep(self.ready_interval)

        raise StepFailed(
            f"VM did not reach running state after {self.ready_max_attempts} attempts"
        )

    def _verify_services(self, request) -> None:
        vm_url = f"https://{request.subdomain}.{self.vm_domain}"

        for attempt in range(1, self.verify_max_attempts + 1):
            ping = self.gateway.ping_vm(vm_url)

            if ping.success:
                logger.info(
                    f"[orchestrator] [{request.subdomain}] services healthy after {attempt} attempt(s)"
                )
                return

            logger.debug(
                f"[orchestrator] [{request.subdomain}] services not healthy yet "
                f"({attempt}/{self.verify_max_attempts}): {ping.status}"
            )

            if attempt < self.verify_max_attempts:
                self._sleep(self.verify_interval)

        raise StepFailed(
            f"VM services did not become healthy after {self.verify_max_attempts} attempts"
        )

    # ============================================
    # FAILURE HANDLING
    # ============================================

    def _fail(self, step, error, request, result, compensations) -> None:
        step.fail(error)
        result.error = error

        logger.error(f"[orchestrator] ❌ [{request.subdomain}] step {step.step.value} failed: {error}")

        self._rollback(request, result, compensations)

    def _rollback(self, request, result, compensations) -> None:
        if not compensations:
            return

        if not self.rollback_on_failure:
            logger.warning(
                f"[orchestrator] [{request.subdomain}] rollback disabled, leaving "
                f"{', '.join(name for name, _ in compensations)} in place"
            )
            return

        for name, undo in reversed(compensations):
            try:
                outcome = undo()
            except Exception as e:
                logger.error(f"[orchestrator] [{request.subdomain}] rollback {name} raised: {e}", exc_info=True)
                continue

            if outcome.success:
                result.rolled_back.append(name)
                logger.info(f"[orchestrator] [{request.subdomain}] rolled back: {name}")
            else:
                logger.error(f"[orchestrator] [{request.subdomain}] rollback {name} failed: {outcome.error}")
