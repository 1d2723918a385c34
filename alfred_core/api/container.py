#alfred_core\api\container.py
from typing import Optional

from fastapi import Header, HTTPException

from alfred_core import container
from alfred_core.config import PlatformSettings, get_settings
from alfred_core.core.repository import UserVmRepository
from alfred_core.gateway.client import VmGateway
from alfred_core.health_checker.checker import HealthMonitor
from alfred_core.provisioning.service import ProvisioningService


def get_platform_settings() -> PlatformSettings:
    return get_settings()


def get_user_vm_repository() -> UserVmRepository:
    return container.get_user_vm_repository()


def get_gateway() -> VmGateway:
    return container.get_gateway()


def get_provisioning_service() -> ProvisioningService:
    return container.get_provisioning_service()


def get_health_monitor() -> HealthMonitor:
    return container.get_health_monitor()


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Dashboard user, as asserted by the upstream session layer."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id
