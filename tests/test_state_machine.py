#tests\test_state_machine.py

"""Test VM status transitions and provisioning steps."""

import pytest

from alfred_core.core.errors import InvalidStateTransition
from alfred_core.core.models import (
    PROVISIONING_STEP_ORDER,
    ProvisioningStep,
    ProvisioningStepName,
    StepStatus,
    UserVmRecord,
    VmStatus,
    new_provisioning_steps,
)
from alfred_core.core.state_machine import VmStateMachine


class TestVmStateMachine:

    @pytest.fixture
    def record(self):
        return UserVmRecord(user_id="user-1")

    def test_initial_status(self, record):
        assert record.vm_status == VmStatus.PENDING
        assert not record.has_vm()

    def test_happy_path(self, record):
        VmStateMachine.transition(record, VmStatus.PROVISIONING)
        VmStateMachine.transition(record, VmStatus.READY)

        assert record.is_ready()
        assert record.vm_provisioned_at is not None

    def test_ready_to_error(self, record):
        VmStateMachine.transition(record, VmStatus.PROVISIONING)
        VmStateMachine.transition(record, VmStatus.READY)
        VmStateMachine.transition(record, VmStatus.ERROR)

        assert record.vm_status == VmStatus.ERROR

    def test_no_error_to_ready(self, record):
        VmStateMachine.transition(record, VmStatus.PROVISIONING)
        VmStateMachine.transition(record, VmStatus.ERROR)

        with pytest.raises(InvalidStateTransition):
            VmStateMachine.transition(record, VmStatus.READY)

    def test_pending_cannot_jump_to_ready(self, record):
        with pytest.raises(ValueError):
            VmStateMachine.transition(record, VmStatus.READY)

    def test_same_state_is_noop(self, record):
        before = record.updated_at

        VmStateMachine.transition(record, VmStatus.PENDING)

        assert record.vm_status == VmStatus.PENDING
        assert record.updated_at == before

    def test_force_sets_error_from_any_state(self, record):
        VmStateMachine.transition(record, VmStatus.DEPROVISIONED)
        VmStateMachine.transition(record, VmStatus.ERROR, force=True)

        assert record.vm_status == VmStatus.ERROR

    def test_error_can_reprovision(self, record):
        VmStateMachine.transition(record, VmStatus.PROVISIONING)
        VmStateMachine.transition(record, VmStatus.ERROR)
        VmStateMachine.transition(record, VmStatus.PROVISIONING)

        assert record.vm_status == VmStatus.PROVISIONING

    @pytest.mark.parametrize("current,new,allowed", [
        (VmStatus.PENDING, VmStatus.PROVISIONING, True),
        (VmStatus.PROVISIONING, VmStatus.READY, True),
        (VmStatus.READY, VmStatus.DEPROVISIONED, True),
        (VmStatus.DEPROVISIONED, VmStatus.PROVISIONING, True),
        (VmStatus.READY, VmStatus.PROVISIONING, False),
        (VmStatus.PROVISIONING, VmStatus.DEPROVISIONED, False),
        (VmStatus.DEPROVISIONED, VmStatus.READY, False),
    ])
    def test_can_transition(self, current, new, allowed):
        assert VmStateMachine.can_transition(current, new) is allowed


class TestProvisioningStep:

    @pytest.fixture
    def step(self):
        return ProvisioningStep(step=ProvisioningStepName.CREATE_VM)

    def test_new_steps_in_order(self):
        steps = new_provisioning_steps()

        assert [s.step for s in steps] == PROVISIONING_STEP_ORDER
        assert all(s.status == StepStatus.PENDING for s in steps)

    def test_complete(self, step):
        step.start()
        step.complete()

        assert step.status == StepStatus.COMPLETED
        assert step.started_at is not None
        assert step.finished_at is not None

    def test_fail_records_error(self, step):
        step.start()
        step.fail("boom")

        assert step.status == StepStatus.FAILED
        assert step.to_dict() == {"step": "create_vm", "status": "failed", "error": "boom"}

    def test_cannot_restart_completed_step(self, step):
        step.start()
        step.complete()

        with pytest.raises(InvalidStateTransition):
            step.start()

    def test_cannot_complete_pending_step(self, step):
        with pytest.raises(InvalidStateTransition):
            step.complete()
