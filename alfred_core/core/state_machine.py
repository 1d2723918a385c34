#alfred_core\core\state_machine.py

from datetime import datetime, timezone

from alfred_core.core.errors import InvalidStateTransition
from alfred_core.core.models import UserVmRecord, VmStatus


# No ERROR -> READY edge: recovery is a fresh provisioning run or an operator reset.
ALLOWED_TRANSITIONS = {
    VmStatus.PENDING: {
        VmStatus.PROVISIONING,
        VmStatus.DEPROVISIONED,
    },
    VmStatus.PROVISIONING: {
        VmStatus.READY,
        VmStatus.ERROR,
    },
    VmStatus.READY: {
        VmStatus.ERROR,
        VmStatus.DEPROVISIONED,
    },
    VmStatus.ERROR: {
        VmStatus.PROVISIONING,
        VmStatus.DEPROVISIONED,
    },
    VmStatus.DEPROVISIONED: {
        VmStatus.PROVISIONING,
    },
}


class VmStateMachine:
    @staticmethod
    def can_transition(current: VmStatus, new_status: VmStatus) -> bool:
        if current == new_status:
            return True
        return new_status in ALLOWED_TRANSITIONS.get(current, set())

    @staticmethod
    def transition(
        record: UserVmRecord,
        new_status: VmStatus,
        *,
        force: bool = False,
        now: datetime | None = None,
    ) -> UserVmRecord:
        now = now or datetime.now(timezone.utc)

        current = record.vm_status

        if current == new_status:
            return record

        if not force and not VmStateMachine.can_transition(current, new_status):
            raise InvalidStateTransition(
                f"Cannot transition VM from {current.value} to {new_status.value}"
            )

        if new_status == VmStatus.READY and record.vm_provisioned_at is None:
            record.vm_provisioned_at = now

        record.vm_status = new_status
        record.updated_at = now
        return record
