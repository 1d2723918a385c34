"""Dashboard -> VM forwarding. Every call goes through the VM Gateway."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from alfred_core.api.container import get_current_user_id, get_gateway
from alfred_core.api.schemas.vm import SkillExecuteRequest, SkillExecuteResponse
from alfred_core.gateway.client import GatewayErrorCode, VmResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["proxy"])


NOT_FOUND_CODES = {GatewayErrorCode.USER_NOT_FOUND, GatewayErrorCode.VM_NOT_PROVISIONED}


def _to_response(result: VmResponse) -> Response:
    """Map a gateway result to the dashboard. Internal errors are never echoed."""
    if result.error_code == GatewayErrorCode.VM_NOT_READY:
        return JSONResponse(
            status_code=503,
            content={"error": "VM is not ready", "vmStatus": result.vm_status},
        )

    if result.error_code in NOT_FOUND_CODES:
        return JSONResponse(status_code=404, content={"error": "VM not found"})

    if result.error_code in (GatewayErrorCode.VM_TIMEOUT, GatewayErrorCode.VM_UNREACHABLE):
        return JSONResponse(
            status_code=result.status_code or 502,
            content={"error": "Proxy request failed"},
        )

    # Success or VM error response: the VM's bytes and content type, unchanged
    if result.content is not None:
        return Response(
            content=result.content,
            status_code=result.status_code,
            media_type=result.content_type,
        )

    return JSONResponse(status_code=result.status_code, content=result.data)


@router.api_route("/proxy/vm/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def proxy_to_vm(
    path: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    gateway=Depends(get_gateway),
):
    method = request.method
    vm_path = f"/api/{path}"

    target = vm_path
    if request.url.query:
        target = f"{vm_path}?{request.url.query}"

    body = await request.body()
    content_type = request.headers.get("content-type")

    result = await run_in_threadpool(
        gateway.send,
        user_id,
        target,
        method,
        body or None,
        action=f"{method.lower()}:{vm_path}",
        headers={"Content-Type": content_type} if content_type else None,
    )

    if not result.success:
        logger.warning(f"[{user_id}] Proxy {method} {vm_path} failed: {result.error_code} {result.error}")

    return _to_response(result)


@router.post("/skills/{skill_id}/execute", response_model=SkillExecuteResponse)
def execute_skill(
    skill_id: str,
    request: SkillExecuteRequest,
    user_id: str = Depends(get_current_user_id),
    gateway=Depends(get_gateway),
):
    result = gateway.send(
        user_id,
        "/api/execute",
        "POST",
        {"skill_id": skill_id, "input": request.input},
    )

    if result.error_code in NOT_FOUND_CODES:
        return JSONResponse(status_code=400, content={"error": "VM not provisioned"})

    if result.error_code == GatewayErrorCode.VM_NOT_READY:
        return JSONResponse(status_code=400, content={"error": "VM not ready"})

    if result.error_code == GatewayErrorCode.VM_ERROR_RESPONSE:
        return JSONResponse(status_code=result.status_code, content={"error": result.data})

    if not result.success:
        logger.warning(f"[{user_id}] Skill {skill_id} execution failed: {result.error}")
        return JSONResponse(
            status_code=result.status_code or 502,
            content={"error": "Proxy request failed"},
        )

    data = result.data if isinstance(result.data, dict) else {}
    execution_id = data.get("execution_id")

    return SkillExecuteResponse(
        success=True,
        execution_id=str(execution_id) if execution_id is not None else None,
        status=data.get("status"),
    )
