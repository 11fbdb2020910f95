"""Work order payroll services."""

from workorder_payroll.services.container import Services, build_services
from workorder_payroll.services.guard_messages import GuardMessageResolver, RequiredAssociation
from workorder_payroll.services.locking_service import (
    AccumulationConflictError,
    LockManager,
    LockTimeoutError,
)
from workorder_payroll.services.pay_calculation_orchestrator import (
    PayCalculationOrchestrator,
    ProcessingError,
    ProcessingResult,
)
from workorder_payroll.services.pay_ledger import PayLedger
from workorder_payroll.services.state_machine import (
    GuardFailureError,
    IllegalTransitionError,
    TransitionError,
    WorkOrderEvent,
    WorkOrderStateMachine,
    WorkOrderStatus,
)
from workorder_payroll.services.work_order_service import (
    ActorContext,
    TransitionResult,
    WorkOrderNotFoundError,
    WorkOrderService,
)

__all__ = [
    "Services",
    "build_services",
    "GuardMessageResolver",
    "RequiredAssociation",
    "AccumulationConflictError",
    "LockManager",
    "LockTimeoutError",
    "PayCalculationOrchestrator",
    "ProcessingError",
    "ProcessingResult",
    "PayLedger",
    "GuardFailureError",
    "IllegalTransitionError",
    "TransitionError",
    "WorkOrderEvent",
    "WorkOrderStateMachine",
    "WorkOrderStatus",
    "ActorContext",
    "TransitionResult",
    "WorkOrderNotFoundError",
    "WorkOrderService",
]
