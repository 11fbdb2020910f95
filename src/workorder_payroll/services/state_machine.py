"""Work order state machine with guarded transitions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from workorder_payroll.services.guard_messages import (
    GuardMessageResolver,
    RequiredAssociation,
    default_resolver,
)

if TYPE_CHECKING:
    from workorder_payroll.models import WorkOrder


class WorkOrderStatus(str, Enum):
    """Work order status values."""

    ONGOING = "ongoing"
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"
    AMENDMENT_REQUIRED = "amendment_required"


class RateType(str, Enum):
    """How a work order's pay is measured."""

    NORMAL = "normal"
    WORK_DAYS = "work_days"
    RESOURCES = "resources"


class WorkOrderEvent(str, Enum):
    """Events that move a work order between statuses."""

    MARK_COMPLETE = "mark_complete"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_AMENDMENT = "request_amendment"
    RESUBMIT = "resubmit"


class TransitionErrorKind(str, Enum):
    """Failure classes for a transition attempt."""

    GUARD_FAILURE = "guard_failure"
    ILLEGAL_TRANSITION = "illegal_transition"


class TransitionError(Exception):
    """Base class for a rejected transition."""

    kind: TransitionErrorKind

    def __init__(self, message: str, from_state: str, event: str):
        self.message = message
        self.from_state = from_state
        self.event = event
        super().__init__(message)

    def to_dict(self) -> dict[str, str]:
        """Structured form for API responses and logs."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "from_state": self.from_state,
            "event": self.event,
        }


class GuardFailureError(TransitionError):
    """The event is valid for the state but its precondition failed."""

    kind = TransitionErrorKind.GUARD_FAILURE


class IllegalTransitionError(TransitionError):
    """No such event exists from the current state."""

    kind = TransitionErrorKind.ILLEGAL_TRANSITION

    def __init__(self, from_state: str, event: str):
        super().__init__(
            f"Cannot transition work order from '{from_state}' via '{event}'",
            from_state,
            event,
        )


@dataclass(frozen=True)
class Transition:
    """One edge of the transition graph."""

    event: WorkOrderEvent
    from_state: WorkOrderStatus
    to_state: WorkOrderStatus
    guarded: bool
    default_remarks: str


class WorkOrderStateMachine:
    """State machine for work order status transitions.

    Allowed transitions:
    - ongoing → pending (mark_complete, guarded by required associations)
    - pending → completed (approve)
    - pending → rejected (reject)
    - pending → amendment_required (request_amendment)
    - amendment_required → ongoing (resubmit)
    """

    TRANSITIONS: dict[WorkOrderEvent, Transition] = {
        WorkOrderEvent.MARK_COMPLETE: Transition(
            WorkOrderEvent.MARK_COMPLETE,
            WorkOrderStatus.ONGOING,
            WorkOrderStatus.PENDING,
            guarded=True,
            default_remarks="Work order submitted for approval",
        ),
        WorkOrderEvent.APPROVE: Transition(
            WorkOrderEvent.APPROVE,
            WorkOrderStatus.PENDING,
            WorkOrderStatus.COMPLETED,
            guarded=False,
            default_remarks="Work order approved and completed",
        ),
        WorkOrderEvent.REJECT: Transition(
            WorkOrderEvent.REJECT,
            WorkOrderStatus.PENDING,
            WorkOrderStatus.REJECTED,
            guarded=False,
            default_remarks="Work order rejected by approver",
        ),
        WorkOrderEvent.REQUEST_AMENDMENT: Transition(
            WorkOrderEvent.REQUEST_AMENDMENT,
            WorkOrderStatus.PENDING,
            WorkOrderStatus.AMENDMENT_REQUIRED,
            guarded=False,
            default_remarks="Amendment requested by approver",
        ),
        WorkOrderEvent.RESUBMIT: Transition(
            WorkOrderEvent.RESUBMIT,
            WorkOrderStatus.AMENDMENT_REQUIRED,
            WorkOrderStatus.ONGOING,
            guarded=False,
            default_remarks="Work order reopened for amendments",
        ),
    }

    REQUIRED_ASSOCIATIONS: dict[str, tuple[RequiredAssociation, ...]] = {
        RateType.NORMAL: (RequiredAssociation.WORKERS_OR_ITEMS,),
        RateType.WORK_DAYS: (RequiredAssociation.WORKERS,),
        RateType.RESOURCES: (RequiredAssociation.ITEMS,),
    }

    TERMINAL_STATUSES = {
        WorkOrderStatus.COMPLETED,
        WorkOrderStatus.REJECTED,
    }

    def __init__(self, message_resolver: GuardMessageResolver | None = None):
        self.message_resolver = message_resolver or default_resolver

    @classmethod
    def can_fire(cls, status: str, event: str) -> bool:
        """Check if an event is defined for a status (guards not evaluated)."""
        transition = cls._lookup(event)
        return transition is not None and transition.from_state == status

    @classmethod
    def available_events(cls, status: str) -> list[WorkOrderEvent]:
        """Events defined from a status."""
        return [t.event for t in cls.TRANSITIONS.values() if t.from_state == status]

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Check if no further events are defined."""
        return status in cls.TERMINAL_STATUSES

    @classmethod
    def required_associations(cls, rate_type: str) -> tuple[RequiredAssociation, ...]:
        """Requirement set for a rate type (empty for unknown types)."""
        return cls.REQUIRED_ASSOCIATIONS.get(rate_type, ())

    @classmethod
    def guard_satisfied(cls, work_order: WorkOrder) -> bool:
        """True iff any member of the rate type's requirement set is met."""
        required = cls.required_associations(work_order.rate_type)
        if not required:
            return True

        has_workers = len(work_order.workers) > 0
        has_items = len(work_order.items) > 0
        checks = {
            RequiredAssociation.WORKERS: has_workers,
            RequiredAssociation.ITEMS: has_items,
            RequiredAssociation.WORKERS_OR_ITEMS: has_workers or has_items,
        }
        return any(checks.get(requirement, False) for requirement in required)

    def guard_failure_message(self, work_order: WorkOrder) -> str:
        """Type-aware message explaining a failed guard."""
        return self.message_resolver.resolve(
            self.required_associations(work_order.rate_type)
        )

    def fire(self, work_order: WorkOrder, event: str) -> Transition:
        """Apply an event to a work order, updating its status.

        Raises:
            IllegalTransitionError: If the event is unknown or not defined
                for the current status
            GuardFailureError: If the event's guard is not satisfied
        """
        from_state = work_order.status
        event_name = event.value if isinstance(event, WorkOrderEvent) else str(event)

        transition = self._lookup(event_name)
        if transition is None or transition.from_state != from_state:
            raise IllegalTransitionError(from_state, event_name)

        if transition.guarded and not self.guard_satisfied(work_order):
            raise GuardFailureError(
                self.guard_failure_message(work_order),
                from_state,
                event_name,
            )

        work_order.status = transition.to_state.value
        return transition

    @classmethod
    def _lookup(cls, event: str) -> Transition | None:
        try:
            return cls.TRANSITIONS[WorkOrderEvent(event)]
        except ValueError:
            return None
