import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from alfred_core.api.container import (
    get_current_user_id,
    get_provisioning_service,
    get_user_vm_repository,
)
from alfred_core.api.schemas.vm import (
    ProvisionResponse,
    RegisterVmRequest,
    RegisterVmResponse,
    UserStatusResponse,
)
from alfred_core.core.errors import (
    InvalidAuthSecret,
    ProvisioningRefused,
    RegistrationNotExpected,
    UserNotFound,
    VmAlreadyRegistered,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["vm"])


@router.post("/vm/provision", response_model=ProvisionResponse)
def provision_vm(
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    repository=Depends(get_user_vm_repository),
    service=Depends(get_provisioning_service),
):
    record = repository.get(user_id)

    if not record:
        raise HTTPException(status_code=404, detail="User not found")

    if not record.has_access:
        raise HTTPException(status_code=403, detail="Subscription required. Please subscribe first.")

    try:
        request, auth_secret = service.begin_provisioning(user_id)
    except ProvisioningRefused as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"[{user_id}] Provisioning queued for {request.subdomain}")

    background_tasks.add_task(service.run_provisioning, user_id, request, auth_secret)

    return ProvisionResponse(
        success=True,
        message="VM provisioning started",
        vm_status="provisioning",
        subdomain=request.subdomain,
    )


@router.post("/vm/register", response_model=RegisterVmResponse)
def register_vm(
    request: RegisterVmRequest,
    service=Depends(get_provisioning_service),
):
    if not request.subdomain or not request.auth_secret:
        raise HTTPException(status_code=400, detail="Missing required fields")

    try:
        service.register_vm(request.subdomain, request.auth_secret, request.public_key)

    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")
    except VmAlreadyRegistered:
        raise HTTPException(status_code=400, detail="VM already registered")
    except RegistrationNotExpected as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidAuthSecret:
        raise HTTPException(status_code=401, detail="Invalid auth secret")

    return RegisterVmResponse(success=True, message="VM registered successfully")


@router.get("/user/status", response_model=UserStatusResponse)
def user_status(
    user_id: str = Depends(get_current_user_id),
    service=Depends(get_provisioning_service),
):
    try:
        status = service.get_user_status(user_id)
    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")

    return UserStatusResponse(**status)
