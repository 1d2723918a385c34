import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from alfred_core.api.container import (
    get_health_monitor,
    get_platform_settings,
    get_provisioning_service,
)
from alfred_core.api.schemas.vm import DeprovisionRequest, ResetVmRequest, ResetVmResponse
from alfred_core.core.errors import InvalidStateTransition, UserNotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _require_admin(secret: Optional[str], settings) -> None:
    # Unset ADMIN_SECRET disables the admin endpoints entirely
    if not settings.admin_secret or not secret:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not hmac.compare_digest(secret.encode(), settings.admin_secret.encode()):
        logger.warning("[Admin] Rejected request with bad secret")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/reset-vm", response_model=ResetVmResponse)
def reset_vm(
    request: ResetVmRequest,
    settings=Depends(get_platform_settings),
    service=Depends(get_provisioning_service),
):
    _require_admin(request.secret, settings)

    if not request.email:
        raise HTTPException(status_code=400, detail="Email required")

    try:
        record = service.reset_vm(request.email)
    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")

    return ResetVmResponse(
        success=True,
        message=f"VM status reset for {request.email}",
        vm_status=record.vm_status.value,
    )


@router.post("/deprovision")
def deprovision(
    request: DeprovisionRequest,
    settings=Depends(get_platform_settings),
    service=Depends(get_provisioning_service),
):
    _require_admin(request.secret, settings)

    if not request.user_id:
        raise HTTPException(status_code=400, detail="user_id required")

    try:
        record = service.deprovision(request.user_id)
    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")
    except InvalidStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {"success": True, "vmStatus": record.vm_status.value}


@router.get("/health-failures")
def failure_stats(
    x_admin_secret: Optional[str] = Header(default=None),
    settings=Depends(get_platform_settings),
    monitor=Depends(get_health_monitor),
):
    _require_admin(x_admin_secret, settings)
    return {"failures": monitor.get_failure_stats()}


@router.delete("/health-failures")
def clear_failures(
    x_admin_secret: Optional[str] = Header(default=None),
    settings=Depends(get_platform_settings),
    monitor=Depends(get_health_monitor),
):
    _require_admin(x_admin_secret, settings)
    return {"cleared": monitor.clear_failure_tracking()}
