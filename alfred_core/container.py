#alfred_core\container.py

"""Dependency injection container - wires all services together."""

from functools import lru_cache

from alfred_core.config import get_settings
from alfred_core.core.repository import FailureTracker, UserVmRepository

from alfred_core.signing.signer import JwtRequestSigner, RequestSigner
from alfred_core.gateway.client import VmGateway
from alfred_core.providers.compute import HetznerComputeClient
from alfred_core.providers.dns import CloudflareDnsClient

from alfred_core.provisioning.orchestrator import ProvisioningOrchestrator
from alfred_core.provisioning.service import ProvisioningService
from alfred_core.health_checker.checker import HealthMonitor


# ============================================
# REPOSITORIES
# ============================================

@lru_cache()
def get_user_vm_repository() -> UserVmRepository:
    if get_settings().repository_backend == "memory":
        from alfred_core.infrastructure.memory.repository import InMemoryUserVmRepository
        return InMemoryUserVmRepository()

    from alfred_core.infrastructure.postgres.repository import PostgresUserVmRepository
    return PostgresUserVmRepository()


@lru_cache()
def get_failure_tracker() -> FailureTracker:
    if get_settings().repository_backend == "memory":
        from alfred_core.infrastructure.memory.repository import InMemoryFailureTracker
        return InMemoryFailureTracker()

    from alfred_core.infrastructure.postgres.failure_tracker import PostgresFailureTracker
    return PostgresFailureTracker()


# ============================================
# CLIENTS
# ============================================

@lru_cache()
def get_signer() -> RequestSigner:
    settings = get_settings()
    return JwtRequestSigner(
        secret=settings.vm_jwt_secret,
        default_expires_in=settings.vm_jwt_expires_in,
    )


@lru_cache()
def get_gateway() -> VmGateway:
    settings = get_settings()
    return VmGateway(
        repository=get_user_vm_repository(),
        signer=get_signer(),
        vm_domain=settings.vm_domain,
        timeout=settings.vm_communication_timeout,
        user_agent=settings.user_agent,
    )


@lru_cache()
def get_compute_client() -> HetznerComputeClient:
    settings = get_settings()
    return HetznerComputeClient(
        api_key=settings.hetzner_api_key,
        api_base=settings.hetzner_api_base,
        location=settings.hetzner_location,
        server_type=settings.hetzner_server_type,
        image=settings.hetzner_image,
        timeout=settings.provider_request_timeout,
    )


@lru_cache()
def get_dns_client() -> CloudflareDnsClient:
    settings = get_settings()
    return CloudflareDnsClient(
        api_token=settings.cloudflare_api_token,
        zone_name=settings.cloudflare_zone_name,
        api_base=settings.cloudflare_api_base,
        zone_id=settings.cloudflare_zone_id,
        timeout=settings.provider_request_timeout,
    )


# ============================================
# SERVICES
# ============================================

@lru_cache()
def get_orchestrator() -> ProvisioningOrchestrator:
    settings = get_settings()
    return ProvisioningOrchestrator(
        compute_clients={"hetzner": get_compute_client()},
        dns_client=get_dns_client(),
        gateway=get_gateway(),
        platform_url=settings.platform_url,
        vm_domain=settings.vm_domain,
        ready_max_attempts=settings.provision_ready_max_attempts,
        ready_interval=settings.provision_ready_interval,
        verify_max_attempts=settings.provision_verify_max_attempts,
        verify_interval=settings.provision_verify_interval,
        rollback_on_failure=settings.provision_rollback_on_failure,
    )


@lru_cache()
def get_provisioning_service() -> ProvisioningService:
    settings = get_settings()
    return ProvisioningService(
        repository=get_user_vm_repository(),
        orchestrator=get_orchestrator(),
        vm_domain=settings.vm_domain,
        default_region=settings.hetzner_location,
        default_size=settings.hetzner_server_type,
    )


@lru_cache()
def get_health_monitor() -> HealthMonitor:
    settings = get_settings()
    return HealthMonitor(
        repository=get_user_vm_repository(),
        failure_tracker=get_failure_tracker(),
        gateway=get_gateway(),
        vm_domain=settings.vm_domain,
        max_failures=settings.vm_health_max_failures,
        check_delay=settings.vm_health_check_delay,
        timeout=settings.vm_health_check_timeout,
        check_interval=settings.health_check_interval,
    )
