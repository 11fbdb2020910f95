"""Folds approved work orders into the monthly pay ledger."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from workorder_payroll.calculators.deduction_catalog import (
    BracketLookupError,
    DeductionCatalog,
    DeductionConfigurationError,
)
from workorder_payroll.calculators.gross_salary import (
    Contribution,
    DataIntegrityError,
    GrossSalaryCalculator,
)
from workorder_payroll.config import Settings, get_settings
from workorder_payroll.database import apply_lock_timeout
from workorder_payroll.events import WorkOrderApproved
from workorder_payroll.models import (
    DeductionType,
    PayCalculation,
    PayCalculationDetail,
    PayCalculationEntry,
    WorkOrder,
    utcnow,
)
from workorder_payroll.services.locking_service import (
    AccumulationConflictError,
    LockManager,
    RetryableProcessingError,
    detail_key,
    month_key_lock,
    work_order_key,
)
from workorder_payroll.services.pay_ledger import PayLedger
from workorder_payroll.services.state_machine import WorkOrderStatus

if TYPE_CHECKING:
    from workorder_payroll.services.work_order_service import ActorContext

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Could not complete payroll processing for this work order (ref {reference})"

# PostgreSQL lock_not_available, serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"55P03", "40001", "40P01"}


@dataclass(frozen=True)
class AssignmentSnapshot:
    """One worker row of a work order snapshot."""

    worker_id: int
    work_area_size: Decimal | None
    work_days: int | None
    rate: Decimal | None


@dataclass(frozen=True)
class WorkOrderSnapshot:
    """Committed state of a work order as seen after approval."""

    id: int
    status: str
    rate_type: str
    created_at: datetime
    pay_processed_at: datetime | None
    assignments: tuple[AssignmentSnapshot, ...]

    @property
    def month_key(self) -> str:
        return self.created_at.strftime("%Y-%m")

    @classmethod
    def from_model(cls, work_order: WorkOrder) -> WorkOrderSnapshot:
        return cls(
            id=work_order.id,
            status=work_order.status,
            rate_type=work_order.rate_type,
            created_at=work_order.created_at,
            pay_processed_at=work_order.pay_processed_at,
            assignments=tuple(
                AssignmentSnapshot(
                    worker_id=row.worker_id,
                    work_area_size=row.work_area_size,
                    work_days=row.work_days,
                    rate=row.rate,
                )
                for row in work_order.workers
            ),
        )


@dataclass(frozen=True)
class ProcessingError:
    """Structured processing failure.

    ``message`` is safe to show users; ``detail`` is the raw cause.
    """

    kind: str
    message: str
    detail: str
    reference: str
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "detail": self.detail,
            "reference": self.reference,
            "retryable": self.retryable,
        }


@dataclass
class ProcessingResult:
    """Outcome of processing one work order or recalculating a month."""

    success: bool
    message: str
    month_key: str | None = None
    work_order_id: int | None = None
    skipped: bool = False
    workers: list[int] = field(default_factory=list)
    error: ProcessingError | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "month_key": self.month_key,
            "work_order_id": self.work_order_id,
            "skipped": self.skipped,
            "workers": list(self.workers),
            "error": self.error.to_dict() if self.error else None,
        }


def _is_retryable_db_error(exc: Exception) -> bool:
    if isinstance(exc, (IntegrityError, StaleDataError)):
        return True
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in _RETRYABLE_SQLSTATES:
            return True
        return "database is locked" in str(orig)
    return False


class PayCalculationOrchestrator:
    """Applies approved work orders to the month ledger.

    Processing steps:
    1. Snapshot the committed work order (skip unless completed and unprocessed)
    2. Price each worker row into per-worker contributions
    3. Under the work order, worker and month locks, in one transaction:
       accumulate gross, reprice deductions, recompute the month totals
       and stamp ``pay_processed_at``
    4. Retry contention (unique keys, version counters, DB lock errors)
       with exponential backoff

    ``pay_processed_at`` and the entry table's unique key together make
    re-processing a no-op.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        locks: LockManager | None = None,
        calculator: GrossSalaryCalculator | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.locks = locks or LockManager(self.settings.lock_timeout_seconds)
        self.calculator = calculator or GrossSalaryCalculator()

    async def process(
        self,
        work_order_id: int,
        *,
        actor: ActorContext | None = None,
    ) -> ProcessingResult:
        """Apply one approved work order to its month's ledger.

        Never raises for domain failures; they come back as a failed
        ``ProcessingResult`` with a reference that also appears in the logs.
        """
        reference = uuid4().hex[:8]
        actor_id = actor.actor_id if actor else None

        snapshot = await self._snapshot(work_order_id)
        if snapshot is None:
            return self._failure(
                "not_found",
                f"Work order {work_order_id} not found",
                reference,
                work_order_id=work_order_id,
                message=f"Work order {work_order_id} not found",
            )

        month_key = snapshot.month_key
        if snapshot.status != WorkOrderStatus.COMPLETED:
            return ProcessingResult(
                success=True,
                skipped=True,
                message=f"Work order {work_order_id} is not completed; nothing to process",
                month_key=month_key,
                work_order_id=work_order_id,
            )
        if snapshot.pay_processed_at is not None:
            return self._already_processed(snapshot)

        try:
            contributions = self.calculator.contributions(
                snapshot.id, snapshot.rate_type, snapshot.assignments
            )
            return await self._apply_with_retry(snapshot, contributions)
        except DataIntegrityError as exc:
            return self._failure("data_integrity", str(exc), reference, snapshot, actor_id)
        except BracketLookupError as exc:
            return self._failure("bracket_lookup", str(exc), reference, snapshot, actor_id)
        except DeductionConfigurationError as exc:
            return self._failure("configuration", str(exc), reference, snapshot, actor_id)
        except RetryableProcessingError as exc:
            kind = "conflict" if isinstance(exc, AccumulationConflictError) else "lock_timeout"
            return self._failure(kind, str(exc), reference, snapshot, actor_id, retryable=True)

    async def process_approved_work_order(
        self,
        work_order_id: int,
        *,
        actor: ActorContext | None = None,
    ) -> ProcessingResult:
        """Alias of ``process`` for event-driven callers."""
        return await self.process(work_order_id, actor=actor)

    async def handle_work_order_approved(self, event: WorkOrderApproved) -> ProcessingResult:
        """Event handler for ``WorkOrderApproved``."""
        return await self.process(event.work_order_id)

    async def recalculate_month(self, month_key: str) -> ProcessingResult:
        """Reprice every detail of a month against today's deductions.

        This is the only path that rewrites deductions of details that no
        new work order touched.
        """
        reference = uuid4().hex[:8]
        try:
            async with self.locks.hold(month_key_lock(month_key)):
                async with self.session_factory() as session:
                    async with session.begin():
                        await apply_lock_timeout(session, self.settings.lock_timeout_seconds)
                        ledger = self._ledger(session)
                        pay_calc = await ledger.pay_calculation_for(month_key)
                        if pay_calc is None:
                            return ProcessingResult(
                                success=True,
                                skipped=True,
                                message=f"No pay calculation for {month_key}",
                                month_key=month_key,
                            )
                        details = await ledger.details_for_month(month_key)
                        as_of = utcnow().date()
                        for detail in details:
                            await ledger.recompute_deductions(detail, as_of)
                        await ledger.recalculate_totals(pay_calc)
                        workers = [d.worker_id for d in details]
        except (BracketLookupError, DeductionConfigurationError) as exc:
            kind = "bracket_lookup" if isinstance(exc, BracketLookupError) else "configuration"
            logger.error(
                "Month recalculation failed",
                extra={"month_key": month_key, "error_kind": kind, "reference": reference},
            )
            return ProcessingResult(
                success=False,
                message=GENERIC_FAILURE_MESSAGE.format(reference=reference),
                month_key=month_key,
                error=ProcessingError(
                    kind, GENERIC_FAILURE_MESSAGE.format(reference=reference), str(exc), reference
                ),
            )
        except RetryableProcessingError as exc:
            message = GENERIC_FAILURE_MESSAGE.format(reference=reference)
            return ProcessingResult(
                success=False,
                message=message,
                month_key=month_key,
                error=ProcessingError("lock_timeout", message, str(exc), reference, True),
            )

        logger.info(
            "Pay calculation recalculated",
            extra={"month_key": month_key, "details": len(workers)},
        )
        return ProcessingResult(
            success=True,
            message=f"Pay calculation recalculated for {month_key}",
            month_key=month_key,
            workers=workers,
        )

    async def pay_calculation_for(self, month_key: str) -> PayCalculation | None:
        """Month header with details (read-only)."""
        async with self.session_factory() as session:
            return await PayLedger(session).pay_calculation_for(month_key)

    async def detail_for(self, month_key: str, worker_id: int) -> PayCalculationDetail | None:
        """One worker's detail for a month (read-only)."""
        async with self.session_factory() as session:
            return await PayLedger(session).detail_for(month_key, worker_id)

    async def active_deductions(
        self,
        as_of: date | None = None,
        nationality: str | None = None,
    ) -> list[DeductionType]:
        """Deduction rules in force (read-only)."""
        async with self.session_factory() as session:
            return await DeductionCatalog(session).active_deductions(as_of, nationality)

    async def _snapshot(self, work_order_id: int) -> WorkOrderSnapshot | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(WorkOrder)
                .where(WorkOrder.id == work_order_id)
                .options(selectinload(WorkOrder.workers))
            )
            work_order = result.scalar_one_or_none()
            if work_order is None:
                return None
            return WorkOrderSnapshot.from_model(work_order)

    async def _apply_with_retry(
        self,
        snapshot: WorkOrderSnapshot,
        contributions: list[Contribution],
    ) -> ProcessingResult:
        month_key = snapshot.month_key
        keys = [work_order_key(snapshot.id)]
        keys.extend(detail_key(month_key, c.worker_id) for c in contributions)
        keys.append(month_key_lock(month_key))

        attempts = self.settings.max_processing_attempts
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                async with self.locks.hold(*keys):
                    async with self.session_factory() as session:
                        async with session.begin():
                            return await self._apply(session, snapshot, contributions)
            except Exception as exc:
                if not _is_retryable_db_error(exc):
                    raise
                last_error = exc
                logger.info(
                    "Pay calculation contention, retrying",
                    extra={
                        "work_order_id": snapshot.id,
                        "month_key": month_key,
                        "attempt": attempt,
                        "error_class": type(exc).__name__,
                    },
                )
                if attempt < attempts:
                    await asyncio.sleep(self.settings.retry_backoff_seconds * 2 ** (attempt - 1))

        raise AccumulationConflictError(month_key, attempts, last_error)

    async def _apply(
        self,
        session: AsyncSession,
        snapshot: WorkOrderSnapshot,
        contributions: list[Contribution],
    ) -> ProcessingResult:
        await apply_lock_timeout(session, self.settings.lock_timeout_seconds)

        work_order = await session.get(
            WorkOrder, snapshot.id, with_for_update=True, populate_existing=True
        )
        if work_order is None or work_order.pay_processed_at is not None:
            return self._already_processed(snapshot)

        applied = await session.scalar(
            select(PayCalculationEntry.id)
            .where(PayCalculationEntry.work_order_id == snapshot.id)
            .limit(1)
        )
        if applied is not None:
            # entries exist but the marker was lost; restore it
            work_order.pay_processed_at = utcnow()
            logger.warning(
                "Work order already in ledger, marker restored",
                extra={"work_order_id": snapshot.id, "month_key": snapshot.month_key},
            )
            return self._already_processed(snapshot)

        if contributions:
            ledger = self._ledger(session)
            pay_calc = await ledger.find_or_create_pay_calculation(snapshot.month_key)
            details = [
                await ledger.accumulate(pay_calc, c.worker_id, c.amount, snapshot.id)
                for c in contributions
            ]
            as_of = utcnow().date()
            for detail in details:
                await ledger.recompute_deductions(detail, as_of)
            await ledger.recalculate_totals(pay_calc)

        work_order.pay_processed_at = utcnow()
        await session.flush()

        logger.info(
            "Work order applied to pay calculation",
            extra={
                "work_order_id": snapshot.id,
                "month_key": snapshot.month_key,
                "workers": len(contributions),
            },
        )
        return ProcessingResult(
            success=True,
            message=f"Pay calculation processed for {snapshot.month_key}",
            month_key=snapshot.month_key,
            work_order_id=snapshot.id,
            workers=[c.worker_id for c in contributions],
        )

    def _ledger(self, session: AsyncSession) -> PayLedger:
        return PayLedger(session, DeductionCatalog(session), self.settings.default_currency)

    def _already_processed(self, snapshot: WorkOrderSnapshot) -> ProcessingResult:
        return ProcessingResult(
            success=True,
            skipped=True,
            message=f"Work order {snapshot.id} already processed for {snapshot.month_key}",
            month_key=snapshot.month_key,
            work_order_id=snapshot.id,
        )

    def _failure(
        self,
        kind: str,
        detail: str,
        reference: str,
        snapshot: WorkOrderSnapshot | None = None,
        actor_id: str | None = None,
        retryable: bool = False,
        work_order_id: int | None = None,
        message: str | None = None,
    ) -> ProcessingResult:
        message = message or GENERIC_FAILURE_MESSAGE.format(reference=reference)
        work_order_id = snapshot.id if snapshot else work_order_id
        month_key = snapshot.month_key if snapshot else None
        logger.error(
            "Pay calculation failed",
            extra={
                "reference": reference,
                "work_order_id": work_order_id,
                "month_key": month_key,
                "actor": actor_id,
                "error_kind": kind,
                "error_message": detail,
                "retryable": retryable,
            },
        )
        return ProcessingResult(
            success=False,
            message=message,
            month_key=month_key,
            work_order_id=work_order_id,
            error=ProcessingError(kind, message, detail, reference, retryable),
        )
