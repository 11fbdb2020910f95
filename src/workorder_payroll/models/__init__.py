"""ORM models."""

from workorder_payroll.models.base import Base, TimestampMixin, UpdatedAtMixin, utcnow
from workorder_payroll.models.deductions import DeductionType, DeductionWageRange
from workorder_payroll.models.pay_calculation import (
    PayCalculation,
    PayCalculationDetail,
    PayCalculationEntry,
)
from workorder_payroll.models.work_order import (
    WorkOrder,
    WorkOrderHistory,
    WorkOrderItem,
    WorkOrderWorker,
)
from workorder_payroll.models.worker import NATIONALITIES, Worker

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "utcnow",
    "DeductionType",
    "DeductionWageRange",
    "PayCalculation",
    "PayCalculationDetail",
    "PayCalculationEntry",
    "WorkOrder",
    "WorkOrderHistory",
    "WorkOrderItem",
    "WorkOrderWorker",
    "NATIONALITIES",
    "Worker",
]
