"""Tests for work order state machine."""

import pytest

from workorder_payroll.models import WorkOrder, WorkOrderItem, WorkOrderWorker
from workorder_payroll.services.guard_messages import RequiredAssociation
from workorder_payroll.services.state_machine import (
    GuardFailureError,
    IllegalTransitionError,
    TransitionErrorKind,
    WorkOrderEvent,
    WorkOrderStateMachine,
    WorkOrderStatus,
)


def _work_order(status="ongoing", rate_type="normal", workers=0, items=0) -> WorkOrder:
    return WorkOrder(
        status=status,
        rate_type=rate_type,
        workers=[WorkOrderWorker(worker_id=i + 1) for i in range(workers)],
        items=[WorkOrderItem(item_name=f"item-{i}") for i in range(items)],
    )


class TestTransitionTable:
    """Test which events are defined from which states."""

    def test_defined_events(self):
        """Test that the lifecycle edges exist."""
        assert WorkOrderStateMachine.can_fire("ongoing", "mark_complete") is True
        assert WorkOrderStateMachine.can_fire("pending", "approve") is True
        assert WorkOrderStateMachine.can_fire("pending", "reject") is True
        assert WorkOrderStateMachine.can_fire("pending", "request_amendment") is True
        assert WorkOrderStateMachine.can_fire("amendment_required", "resubmit") is True

    def test_undefined_events(self):
        """Test that skipping or reversing states is not allowed."""
        assert WorkOrderStateMachine.can_fire("ongoing", "approve") is False
        assert WorkOrderStateMachine.can_fire("completed", "mark_complete") is False
        assert WorkOrderStateMachine.can_fire("rejected", "resubmit") is False
        assert WorkOrderStateMachine.can_fire("pending", "nonsense") is False

    def test_available_events(self):
        events = WorkOrderStateMachine.available_events("pending")
        assert set(events) == {
            WorkOrderEvent.APPROVE,
            WorkOrderEvent.REJECT,
            WorkOrderEvent.REQUEST_AMENDMENT,
        }
        assert WorkOrderStateMachine.available_events("completed") == []

    def test_terminal_states(self):
        assert WorkOrderStateMachine.is_terminal("completed") is True
        assert WorkOrderStateMachine.is_terminal("rejected") is True
        assert WorkOrderStateMachine.is_terminal("amendment_required") is False


class TestGuards:
    """Test the required-association guard on mark_complete."""

    @pytest.mark.parametrize(
        ("rate_type", "workers", "items", "expected"),
        [
            ("normal", 0, 0, False),
            ("normal", 1, 0, True),
            ("normal", 0, 1, True),
            ("work_days", 0, 0, False),
            ("work_days", 0, 2, False),
            ("work_days", 1, 0, True),
            ("resources", 3, 0, False),
            ("resources", 0, 1, True),
        ],
    )
    def test_guard_by_rate_type(self, rate_type, workers, items, expected):
        work_order = _work_order(rate_type=rate_type, workers=workers, items=items)
        assert WorkOrderStateMachine.guard_satisfied(work_order) is expected

    def test_required_associations(self):
        assert WorkOrderStateMachine.required_associations("work_days") == (
            RequiredAssociation.WORKERS,
        )
        assert WorkOrderStateMachine.required_associations("unknown") == ()

    def test_empty_requirement_set_is_satisfied(self, monkeypatch):
        """A rate type without requirements always passes."""
        monkeypatch.setitem(WorkOrderStateMachine.REQUIRED_ASSOCIATIONS, "normal", ())
        assert WorkOrderStateMachine.guard_satisfied(_work_order()) is True


class TestFire:
    """Test applying events."""

    def test_full_lifecycle(self):
        machine = WorkOrderStateMachine()
        work_order = _work_order(workers=1)

        transition = machine.fire(work_order, "mark_complete")
        assert transition.to_state == WorkOrderStatus.PENDING
        assert work_order.status == "pending"

        machine.fire(work_order, WorkOrderEvent.APPROVE)
        assert work_order.status == "completed"

    def test_amendment_cycle(self):
        machine = WorkOrderStateMachine()
        work_order = _work_order(workers=1)

        machine.fire(work_order, "mark_complete")
        machine.fire(work_order, "request_amendment")
        assert work_order.status == "amendment_required"

        transition = machine.fire(work_order, "resubmit")
        assert work_order.status == "ongoing"
        assert transition.default_remarks == "Work order reopened for amendments"

    def test_work_days_guard_failure_uses_workers_message(self):
        """Test that a work_days order with nothing attached gets the workers message."""
        machine = WorkOrderStateMachine()
        work_order = _work_order(rate_type="work_days")

        with pytest.raises(GuardFailureError) as exc_info:
            machine.fire(work_order, "mark_complete")

        assert exc_info.value.kind == TransitionErrorKind.GUARD_FAILURE
        assert exc_info.value.message == (
            "Cannot submit work order: Please add at least one worker before submitting."
        )
        assert work_order.status == "ongoing"

    def test_illegal_transition(self):
        machine = WorkOrderStateMachine()
        work_order = _work_order(status="completed", workers=1)

        with pytest.raises(IllegalTransitionError) as exc_info:
            machine.fire(work_order, "approve")

        error = exc_info.value
        assert error.from_state == "completed"
        assert error.event == "approve"
        assert error.message == "Cannot transition work order from 'completed' via 'approve'"
        assert error.to_dict()["kind"] == "illegal_transition"

    def test_unknown_event_is_illegal(self):
        machine = WorkOrderStateMachine()
        with pytest.raises(IllegalTransitionError):
            machine.fire(_work_order(workers=1), "teleport")
