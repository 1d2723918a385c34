# alfred_core/gateway/client.py
"""
VM Gateway - the only path from the platform into a user's VM.

Looks up the user's VM, refuses early when it is not ready, signs the request
and forwards it over HTTPS. Every expected failure comes back as a VmResponse.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

import requests

from alfred_core.core.models import UserVmRecord, VmStatus
from alfred_core.core.repository import UserVmRepository
from alfred_core.signing.signer import RequestSigner

logger = logging.getLogger(__name__)


BODY_METHODS = {"POST", "PUT", "PATCH"}


class GatewayErrorCode(str, Enum):
    USER_NOT_FOUND = "USER_NOT_FOUND"
    VM_NOT_PROVISIONED = "VM_NOT_PROVISIONED"
    VM_NOT_READY = "VM_NOT_READY"
    VM_TIMEOUT = "VM_TIMEOUT"
    VM_UNREACHABLE = "VM_UNREACHABLE"
    VM_ERROR_RESPONSE = "VM_ERROR_RESPONSE"


@dataclass
class VmResponse:
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[GatewayErrorCode] = None
    status_code: Optional[int] = None
    response_time: Optional[float] = None  # ms
    vm_url: Optional[str] = None
    vm_status: Optional[str] = None
    content: Optional[bytes] = None  # raw VM body
    content_type: Optional[str] = None


@dataclass
class PingResult:
    success: bool
    status: str  # healthy | unhealthy | timeout | error
    status_code: Optional[int] = None
    response_time: Optional[float] = None  # ms
    data: Any = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


UserRef = Union[str, UserVmRecord, Dict[str, Any]]


def resolve_user_id(user: UserRef) -> Optional[str]:
    """User id from an id string, a record, or a mapping (user_id / id / _id)."""
    if user is None:
        return None
    if isinstance(user, UserVmRecord):
        return user.user_id
    if isinstance(user, dict):
        for key in ("user_id", "id", "_id"):
            if user.get(key):
                return str(user[key])
        return None
    return str(user) if user else None


def _parse_body(response: requests.Response) -> Any:
    content_type = response.headers.get("Content-Type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


class VmGateway:
    """Authenticated HTTP client for user VMs."""

    def __init__(
        self,
        repository: UserVmRepository,
        signer: RequestSigner,
        vm_domain: str = "alfredos.site",
        timeout: float = 10.0,
        user_agent: str = "Alfred-Core/1.0",
        session: Optional[requests.Session] = None,
        health_path: str = "/health",
    ):
        self.repository = repository
        self.signer = signer
        self.vm_domain = vm_domain
        self.timeout = timeout
        self.user_agent = user_agent
        self.health_path = health_path
        self._session = session or requests.Session()

    # ============================================
    # SIGNED REQUESTS
    # ============================================

    def send(
        self,
        user: UserRef,
        path: str,
        method: str = "GET",
        body: Any = None,
        *,
        action: Optional[str] = None,
        timeout: Optional[float] = None,
        expires_in: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> VmResponse:
        """
        Send a signed request to the user's VM.

        Args:
            user: User id, UserVmRecord, or a mapping carrying the id
            path: Path on the VM (e.g., "/api/workflows")
            method: HTTP method
            body: JSON for dicts/lists, raw bytes or text otherwise
            action: Token action (default "<method>:<path>")
            timeout: Seconds (default from gateway)
            expires_in: Token lifetime (default from signer)
            headers: Extra request headers

        Returns:
            VmResponse; never raises for VM-side or network failures
        """
        method = method.upper()
        user_id = resolve_user_id(user)

        record = self.repository.get(user_id) if user_id else None
        if record is None:
            return VmResponse(
                success=False,
                error="User not found",
                error_code=GatewayErrorCode.USER_NOT_FOUND,
                status_code=404,
            )

        if not record.vm_subdomain:
            return VmResponse(
                success=False,
                error="VM not provisioned",
                error_code=GatewayErrorCode.VM_NOT_PROVISIONED,
                status_code=404,
                vm_status=record.vm_status.value,
            )

        if record.vm_status != VmStatus.READY:
            return VmResponse(
                success=False,
                error=f"VM is not ready (status: {record.vm_status.value})",
                error_code=GatewayErrorCode.VM_NOT_READY,
                status_code=503,
                vm_status=record.vm_status.value,
            )

        if not path.startswith("/"):
            path = f"/{path}"

        vm_url = self._base_url(record.vm_subdomain)
        url = f"{vm_url}{path}"

        # Signing misconfiguration is fatal, let it propagate
        token = self.signer.sign(
            record.user_id,
            record.vm_subdomain,
            action or f"{method.lower()}:{path}",
            expires_in=expires_in,
        )

        request_headers = {
            "Authorization": f"Bearer {token}",
            "User-Agent": self.user_agent,
            "X-Alfred-User-Id": record.user_id,
            **(headers or {}),
        }

        kwargs: Dict[str, Any] = {}
        if body is not None and method in BODY_METHODS:
            if isinstance(body, (dict, list)):
                kwargs["json"] = body
            else:
                kwargs["data"] = body if isinstance(body, (str, bytes)) else str(body)
                request_headers.setdefault(
                    "Content-Type",
                    "application/octet-stream" if isinstance(body, bytes) else "text/plain",
                )

        started = time.monotonic()

        try:
            response = self._session.request(
                method,
                url,
                headers=request_headers,
                timeout=timeout or self.timeout,
                **kwargs,
            )
        except requests.exceptions.Timeout:
            elapsed = (time.monotonic() - started) * 1000
            logger.warning(f"[{record.user_id}] ❌ {method} {url} timed out")
            return VmResponse(
                success=False,
                error="VM request timed out",
                error_code=GatewayErrorCode.VM_TIMEOUT,
                status_code=408,
                response_time=elapsed,
                vm_url=vm_url,
                vm_status=record.vm_status.value,
            )
        except requests.exceptions.RequestException as e:
            elapsed = (time.monotonic() - started) * 1000
            logger.warning(f"[{record.user_id}] ❌ {method} {url} failed: {e}")
            return VmResponse(
                success=False,
                error="VM is unreachable",
                error_code=GatewayErrorCode.VM_UNREACHABLE,
                status_code=502,
                response_time=elapsed,
                vm_url=vm_url,
                vm_status=record.vm_status.value,
            )

        elapsed = (time.monotonic() - started) * 1000
        data = _parse_body(response)

        if not response.ok:
            logger.info(
                f"[{record.user_id}] {method} {path} -> {response.status_code} ({elapsed:.0f}ms)"
            )
            return VmResponse(
                success=False,
                data=data,
                content=response.content,
                content_type=response.headers.get("Content-Type"),
                error=f"VM responded with {response.status_code}",
                error_code=GatewayErrorCode.VM_ERROR_RESPONSE,
                status_code=response.status_code,
                response_time=elapsed,
                vm_url=vm_url,
                vm_status=record.vm_status.value,
            )

        logger.debug(f"[{record.user_id}] {method} {path} -> {response.status_code} ({elapsed:.0f}ms)")

        return VmResponse(
            success=True,
            data=data,
            content=response.content,
            content_type=response.headers.get("Content-Type"),
            status_code=response.status_code,
            response_time=elapsed,
            vm_url=vm_url,
            vm_status=record.vm_status.value,
        )

    # ============================================
    # UNAUTHENTICATED PROBE
    # ============================================

    def ping_vm(
        self,
        vm_url: str,
        *,
        timeout: Optional[float] = None,
        health_path: Optional[str] = None,
    ) -> PingResult:
        """
        GET the VM's health endpoint.

        Args:
            vm_url: "https://host", or a bare host (https:// is added)
            timeout: Seconds (default from gateway)
            health_path: Health endpoint (default "/health")
        """
        if not vm_url.startswith(("http://", "https://")):
            vm_url = f"https://{vm_url}"

        url = f"{vm_url.rstrip('/')}{health_path or self.health_path}"
        started = time.monotonic()

        try:
            response = self._session.request(
                "GET",
                url,
                headers={"User-Agent": self.user_agent},
                timeout=timeout or self.timeout,
            )
        except requests.exceptions.Timeout:
            return PingResult(
                success=False,
                status="timeout",
                response_time=(time.monotonic() - started) * 1000,
                error="Health check timed out",
            )
        except requests.exceptions.RequestException as e:
            return PingResult(
                success=False,
                status="error",
                response_time=(time.monotonic() - started) * 1000,
                error=str(e),
            )

        elapsed = (time.monotonic() - started) * 1000
        data = _parse_body(response)

        if response.ok:
            return PingResult(
                success=True,
                status="healthy",
                status_code=response.status_code,
                response_time=elapsed,
                data=data,
            )

        return PingResult(
            success=False,
            status="unhealthy",
            status_code=response.status_code,
            response_time=elapsed,
            data=data,
            error=f"Health endpoint returned {response.status_code}",
        )

    # ============================================
    # LOOKUPS
    # ============================================

    def get_vm_url(self, user: UserRef) -> Optional[str]:
        """Base URL of the user's VM, or None without a subdomain."""
        user_id = resolve_user_id(user)
        record = self.repository.get(user_id) if user_id else None
        if record is None or not record.vm_subdomain:
            return None
        return self._base_url(record.vm_subdomain)

    def check_vm_ready(self, user: UserRef) -> Dict[str, Any]:
        """Readiness of the user's VM: recorded status plus a live probe when ready."""
        user_id = resolve_user_id(user)
        record = self.repository.get(user_id) if user_id else None

        if record is None:
            return {"ready": False, "reason": "User not found"}

        if not record.vm_subdomain:
            return {"ready": False, "reason": "VM not provisioned", "vm_status": record.vm_status.value}

        if record.vm_status != VmStatus.READY:
            return {"ready": False, "reason": "VM is not ready", "vm_status": record.vm_status.value}

        ping = self.ping_vm(self._base_url(record.vm_subdomain))

        return {
            "ready": ping.success,
            "vm_status": record.vm_status.value,
            "health": ping.status,
            "response_time": ping.response_time,
        }

    def _base_url(self, subdomain: str) -> str:
        return f"https://{subdomain}.{self.vm_domain}"
