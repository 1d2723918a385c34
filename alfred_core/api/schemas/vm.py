from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# -------------------------
# Provisioning
# -------------------------

class ProvisionResponse(CamelModel):
    success: bool
    message: str
    vm_status: str = Field(alias="vmStatus")
    subdomain: Optional[str] = None


class RegisterVmRequest(CamelModel):
    subdomain: Optional[str] = None
    auth_secret: Optional[str] = Field(default=None, alias="authSecret")
    public_key: Optional[str] = Field(default=None, alias="publicKey")


class RegisterVmResponse(CamelModel):
    success: bool
    message: str


class UserStatusResponse(CamelModel):
    has_access: bool = Field(alias="hasAccess")
    vm_status: str = Field(alias="vmStatus")
    vm_subdomain: Optional[str] = Field(default=None, alias="vmSubdomain")
    vm_ip: Optional[str] = Field(default=None, alias="vmIp")
    dashboard_url: Optional[str] = Field(default=None, alias="dashboardUrl")
    librechat_url: Optional[str] = Field(default=None, alias="librechatUrl")
    nocodb_url: Optional[str] = Field(default=None, alias="nocodbUrl")


# -------------------------
# Skills
# -------------------------

class SkillExecuteRequest(BaseModel):
    input: Dict[str, Any] = Field(default_factory=dict)


class SkillExecuteResponse(CamelModel):
    success: bool
    execution_id: Optional[str] = Field(default=None, alias="executionId")
    status: Optional[str] = None


# -------------------------
# Health sweep
# -------------------------

class HealthSweepSummary(CamelModel):
    total: int
    healthy: int
    unhealthy: int
    skipped: int
    errors: int
    marked_as_error: int = Field(alias="markedAsError")
    message: str


class HealthSweepResponse(CamelModel):
    success: bool
    timestamp: str
    duration: float
    summary: HealthSweepSummary
    checks: Optional[List[Dict[str, Any]]] = None


# -------------------------
# Admin
# -------------------------

class AdminRequest(BaseModel):
    secret: Optional[str] = None


class ResetVmRequest(AdminRequest):
    email: Optional[str] = None


class DeprovisionRequest(AdminRequest):
    user_id: Optional[str] = None


class ResetVmResponse(CamelModel):
    success: bool
    message: str
    vm_status: str = Field(alias="vmStatus")
