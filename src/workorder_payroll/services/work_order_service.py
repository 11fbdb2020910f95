"""Work order lifecycle service."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from workorder_payroll.config import Settings, get_settings
from workorder_payroll.database import apply_lock_timeout
from workorder_payroll.events import (
    AsyncEventEmitter,
    EventMetadata,
    HandlerOutcome,
    WorkOrderApproved,
    WorkOrderTransitioned,
)
from workorder_payroll.models import (
    WorkOrder,
    WorkOrderHistory,
    WorkOrderItem,
    WorkOrderWorker,
    utcnow,
)
from workorder_payroll.services.locking_service import LockManager, work_order_key
from workorder_payroll.services.state_machine import (
    RateType,
    TransitionError,
    WorkOrderEvent,
    WorkOrderStateMachine,
    WorkOrderStatus,
)

logger = logging.getLogger(__name__)


class WorkOrderNotFoundError(Exception):
    """Raised when a work order does not exist."""

    def __init__(self, work_order_id: int):
        self.work_order_id = work_order_id
        super().__init__(f"Work order {work_order_id} not found")


@dataclass(frozen=True)
class ActorContext:
    """Who is performing a mutation. Passed explicitly, never ambient."""

    actor_id: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class WorkerAssignment:
    """Worker row for ``create_work_order``."""

    worker_id: int
    work_area_size: Decimal | None = None
    work_days: int | None = None
    rate: Decimal | None = None
    remarks: str | None = None


@dataclass(frozen=True)
class ItemUsage:
    """Item row for ``create_work_order``."""

    item_name: str
    amount_used: Decimal | None = None
    unit: str | None = None


@dataclass
class TransitionResult:
    """Outcome of a transition attempt.

    ``message`` is user-facing: the type-aware guard message on a guard
    failure, a confirmation on success. ``follow_ups`` carries the outcomes
    of event handlers that ran after commit (e.g. pay processing).
    """

    success: bool
    work_order: WorkOrder | None
    message: str
    error: TransitionError | None = None
    follow_ups: list[HandlerOutcome] = field(default_factory=list)


class WorkOrderService:
    """Runs work order transitions and records their history.

    A transition runs under the work order's lock in its own transaction;
    events are published only after commit and after the lock is released.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        emitter: AsyncEventEmitter | None = None,
        locks: LockManager | None = None,
        settings: Settings | None = None,
        state_machine: WorkOrderStateMachine | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.emitter = emitter or AsyncEventEmitter()
        self.locks = locks or LockManager(self.settings.lock_timeout_seconds)
        self.state_machine = state_machine or WorkOrderStateMachine()

    async def create_work_order(
        self,
        *,
        rate_type: str = RateType.NORMAL.value,
        work_order_name: str | None = None,
        block_number: str | None = None,
        start_date: date | None = None,
        remarks: str | None = None,
        workers: Sequence[WorkerAssignment] = (),
        items: Sequence[ItemUsage] = (),
        created_at: datetime | None = None,
    ) -> WorkOrder:
        """Create a work order in ``ongoing`` with its worker and item rows."""
        RateType(rate_type)

        work_order = WorkOrder(
            status=WorkOrderStatus.ONGOING.value,
            rate_type=rate_type,
            work_order_name=work_order_name,
            block_number=block_number,
            start_date=start_date,
            remarks=remarks,
            workers=[
                WorkOrderWorker(
                    worker_id=w.worker_id,
                    work_area_size=w.work_area_size,
                    work_days=w.work_days,
                    rate=w.rate,
                    remarks=w.remarks,
                )
                for w in workers
            ],
            items=[
                WorkOrderItem(item_name=i.item_name, amount_used=i.amount_used, unit=i.unit)
                for i in items
            ],
        )
        if created_at is not None:
            work_order.created_at = created_at

        async with self.session_factory() as session:
            async with session.begin():
                session.add(work_order)
            logger.info(
                "Work order created",
                extra={"work_order_id": work_order.id, "rate_type": rate_type},
            )
        return work_order

    async def get_work_order(self, work_order_id: int) -> WorkOrder:
        """Load a work order with its rows.

        Raises:
            WorkOrderNotFoundError: If the work order does not exist
        """
        async with self.session_factory() as session:
            work_order = await self._load(session, work_order_id)
            if work_order is None:
                raise WorkOrderNotFoundError(work_order_id)
            return work_order

    async def get_history(self, work_order_id: int) -> list[WorkOrderHistory]:
        """Transition log of a work order, oldest first.

        Raises:
            WorkOrderNotFoundError: If the work order does not exist
        """
        async with self.session_factory() as session:
            if await session.get(WorkOrder, work_order_id) is None:
                raise WorkOrderNotFoundError(work_order_id)
            result = await session.execute(
                select(WorkOrderHistory)
                .where(WorkOrderHistory.work_order_id == work_order_id)
                .order_by(WorkOrderHistory.id)
            )
            return list(result.scalars().all())

    async def attempt_transition(
        self,
        work_order_id: int,
        event: str,
        *,
        actor: ActorContext | None = None,
        remarks: str | None = None,
    ) -> TransitionResult:
        """Fire an event on a work order.

        Guard and illegal-transition failures are returned, not raised, and
        leave the work order untouched.

        Raises:
            WorkOrderNotFoundError: If the work order does not exist
            LockTimeoutError: If the work order lock is not acquired in time
        """
        async with self.locks.hold(work_order_key(work_order_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    await apply_lock_timeout(session, self.settings.lock_timeout_seconds)
                    work_order = await self._load(session, work_order_id, for_update=True)
                    if work_order is None:
                        raise WorkOrderNotFoundError(work_order_id)

                    from_state = work_order.status
                    try:
                        transition = self.state_machine.fire(work_order, event)
                    except TransitionError as exc:
                        self._log_failure(work_order, exc, actor)
                        return TransitionResult(
                            success=False,
                            work_order=work_order,
                            message=exc.message,
                            error=exc,
                        )

                    if transition.to_state == WorkOrderStatus.COMPLETED:
                        work_order.approved_at = utcnow()
                        work_order.approved_by = actor.name if actor else None

                    session.add(
                        WorkOrderHistory(
                            work_order_id=work_order.id,
                            event=transition.event.value,
                            from_state=from_state,
                            to_state=transition.to_state.value,
                            actor_id=actor.actor_id if actor else None,
                            actor_name=actor.name if actor else None,
                            remarks=remarks or transition.default_remarks,
                        )
                    )

        logger.info(
            "Work order transitioned",
            extra={
                "work_order_id": work_order_id,
                "event": transition.event.value,
                "from_state": from_state,
                "to_state": transition.to_state.value,
                "actor": actor.actor_id if actor else None,
            },
        )

        follow_ups = await self._publish(
            work_order, transition.event.value, from_state, actor, remarks
        )
        return TransitionResult(
            success=True,
            work_order=work_order,
            message=f"Work order {transition.event.value.replace('_', ' ')} succeeded",
            follow_ups=follow_ups,
        )

    async def mark_complete(self, work_order_id: int, **kwargs: Any) -> TransitionResult:
        """Submit an ongoing work order for approval."""
        return await self.attempt_transition(work_order_id, WorkOrderEvent.MARK_COMPLETE, **kwargs)

    async def approve(self, work_order_id: int, **kwargs: Any) -> TransitionResult:
        """Approve a pending work order; triggers pay processing."""
        return await self.attempt_transition(work_order_id, WorkOrderEvent.APPROVE, **kwargs)

    async def reject(self, work_order_id: int, **kwargs: Any) -> TransitionResult:
        return await self.attempt_transition(work_order_id, WorkOrderEvent.REJECT, **kwargs)

    async def request_amendment(self, work_order_id: int, **kwargs: Any) -> TransitionResult:
        return await self.attempt_transition(
            work_order_id, WorkOrderEvent.REQUEST_AMENDMENT, **kwargs
        )

    async def resubmit(self, work_order_id: int, **kwargs: Any) -> TransitionResult:
        return await self.attempt_transition(work_order_id, WorkOrderEvent.RESUBMIT, **kwargs)

    async def _publish(
        self,
        work_order: WorkOrder,
        event: str,
        from_state: str,
        actor: ActorContext | None,
        remarks: str | None,
    ) -> list[HandlerOutcome]:
        metadata = EventMetadata(
            actor_id=actor.actor_id if actor else None,
            actor_name=actor.name if actor else None,
        )
        outcomes = await self.emitter.emit(
            WorkOrderTransitioned(
                metadata=metadata,
                work_order_id=work_order.id,
                event=event,
                from_state=from_state,
                to_state=work_order.status,
                remarks=remarks,
            )
        )
        if work_order.status == WorkOrderStatus.COMPLETED:
            outcomes.extend(
                await self.emitter.emit(
                    WorkOrderApproved(
                        metadata=metadata,
                        work_order_id=work_order.id,
                        month_key=work_order.month_key,
                        approved_by=work_order.approved_by,
                    )
                )
            )
        return outcomes

    async def _load(
        self,
        session: AsyncSession,
        work_order_id: int,
        for_update: bool = False,
    ) -> WorkOrder | None:
        stmt = (
            select(WorkOrder)
            .where(WorkOrder.id == work_order_id)
            .options(selectinload(WorkOrder.workers), selectinload(WorkOrder.items))
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    def _log_failure(
        self,
        work_order: WorkOrder,
        error: TransitionError,
        actor: ActorContext | None,
    ) -> None:
        logger.warning(
            "Work order transition rejected",
            extra={
                "actor": actor.actor_id if actor else None,
                "error_kind": error.kind.value,
                "error_class": type(error).__name__,
                "error_message": error.message,
                "work_order_id": work_order.id,
                "from_state": error.from_state,
                "event": error.event,
            },
        )
