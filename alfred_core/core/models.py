"""Core domain models (business logic)."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from alfred_core.core.errors import InvalidStateTransition


class VmStatus(Enum):
    """Lifecycle of a user's VM. Single source of truth for availability."""

    PENDING = "pending"
    PROVISIONING = "provisioning"
    READY = "ready"
    ERROR = "error"
    DEPROVISIONED = "deprovisioned"


@dataclass
class UserVmRecord:
    """User record as far as the VM lifecycle is concerned."""

    # Identity
    user_id: str
    email: Optional[str] = None
    has_access: bool = False

    # VM
    vm_status: VmStatus = VmStatus.PENDING
    vm_subdomain: Optional[str] = None
    vm_ip: Optional[str] = None
    vm_server_id: Optional[str] = None

    # Registration
    vm_auth_secret_hash: Optional[str] = None
    vm_public_key: Optional[str] = None
    vm_provisioned_at: Optional[datetime] = None

    # Timestamps
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def has_vm(self) -> bool:
        return bool(self.vm_subdomain)

    def is_ready(self) -> bool:
        return self.vm_status == VmStatus.READY


# -------------------------
# PROVISIONING ATTEMPT
# -------------------------

class ProvisioningStepName(Enum):
    VALIDATE = "validate"
    CREATE_VM = "create_vm"
    CONFIGURE_DNS = "configure_dns"
    WAIT_FOR_READY = "wait_for_ready"
    VERIFY_SERVICES = "verify_services"


PROVISIONING_STEP_ORDER = [
    ProvisioningStepName.VALIDATE,
    ProvisioningStepName.CREATE_VM,
    ProvisioningStepName.CONFIGURE_DNS,
    ProvisioningStepName.WAIT_FOR_READY,
    ProvisioningStepName.VERIFY_SERVICES,
]


class StepStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProvisioningStep:
    """One step of a provisioning attempt."""

    step: ProvisioningStepName
    status: StepStatus = StepStatus.PENDING
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    # -------------------------
    # STATE TRANSITIONS
    # -------------------------

    def start(self) -> None:
        """Transition from PENDING to RUNNING."""
        if self.status != StepStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot start step {self.step.value} from {self.status.value} state"
            )

        self.status = StepStatus.RUNNING
        self.started_at = datetime.now(timezone.utc)

    def complete(self) -> None:
        """Transition from RUNNING to COMPLETED."""
        if self.status != StepStatus.RUNNING:
            raise InvalidStateTransition(
                f"Cannot complete step {self.step.value} from {self.status.value} state"
            )

        self.status = StepStatus.COMPLETED
        self.finished_at = datetime.now(timezone.utc)

    def fail(self, error: str) -> None:
        """Transition from RUNNING to FAILED."""
        if self.status != StepStatus.RUNNING:
            raise InvalidStateTransition(
                f"Cannot fail step {self.step.value} from {self.status.value} state"
            )

        self.status = StepStatus.FAILED
        self.error = error
        self.finished_at = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        data = {"step": self.step.value, "status": self.status.value}
        if self.error:
            data["error"] = self.error
        return data


def new_provisioning_steps() -> List[ProvisioningStep]:
    """Fresh step list, every step pending."""
    return [ProvisioningStep(step=name) for name in PROVISIONING_STEP_ORDER]


@dataclass(frozen=True)
class ProvisioningRequest:
    subdomain: str
    user_id: str
    provider: str = "hetzner"
    region: str = "nbg1"
    size: str = "cx22"


@dataclass
class ProvisioningResult:
    """Outcome of a provisioning attempt. Step history is always present."""

    success: bool
    provisioning_steps: List[ProvisioningStep] = field(default_factory=list)
    vm_id: Optional[str] = None
    ip_address: Optional[str] = None
    subdomain: Optional[str] = None
    auth_secret: Optional[str] = None
    error: Optional[str] = None
    rolled_back: List[str] = field(default_factory=list)

    def step(self, name: ProvisioningStepName) -> Optional[ProvisioningStep]:
        for step in self.provisioning_steps:
            if step.step == name:
                return step
        return None


# -------------------------
# SIGNED REQUEST TOKEN
# -------------------------

@dataclass(frozen=True)
class TokenClaims:
    sub: str
    vm: str
    action: str
    iat: int
    exp: int
