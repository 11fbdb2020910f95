"""Service wiring shared by the API and tests."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workorder_payroll.config import Settings
from workorder_payroll.events import AsyncEventEmitter, WorkOrderApproved
from workorder_payroll.services.locking_service import LockManager
from workorder_payroll.services.pay_calculation_orchestrator import PayCalculationOrchestrator
from workorder_payroll.services.work_order_service import WorkOrderService


@dataclass
class Services:
    """Long-lived services sharing one lock registry and emitter."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    locks: LockManager
    emitter: AsyncEventEmitter
    work_orders: WorkOrderService
    pay_calculations: PayCalculationOrchestrator


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> Services:
    """Build the services and subscribe pay processing to approvals."""
    locks = LockManager(settings.lock_timeout_seconds)
    emitter = AsyncEventEmitter()
    orchestrator = PayCalculationOrchestrator(session_factory, settings, locks)
    work_orders = WorkOrderService(session_factory, emitter, locks, settings)

    emitter.on(WorkOrderApproved, orchestrator.handle_work_order_approved)

    return Services(
        settings=settings,
        session_factory=session_factory,
        locks=locks,
        emitter=emitter,
        work_orders=work_orders,
        pay_calculations=orchestrator,
    )
