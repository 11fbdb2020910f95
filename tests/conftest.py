"""Pytest fixtures for work order payroll tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from workorder_payroll.config import Settings
from workorder_payroll.database import create_schema, create_session_factory, get_engine
from workorder_payroll.models import DeductionType, WorkOrder, Worker
from workorder_payroll.services import ActorContext, Services, build_services
from workorder_payroll.services.work_order_service import ItemUsage, WorkerAssignment

JANUARY = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)

APPROVER = ActorContext(actor_id="u-42", name="Siti Approver")


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a file-backed SQLite database per test."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}",
        host="127.0.0.1",
        port=8000,
        debug=False,
        lock_timeout_seconds=5.0,
        max_processing_attempts=5,
        retry_backoff_seconds=0.01,
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with the schema in place."""
    engine = get_engine(settings)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> Services:
    return build_services(session_factory, settings)


@pytest_asyncio.fixture
async def workers(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, Worker]:
    """Three workers, one per nationality."""
    rows = {
        "ali": Worker(name="Ali bin Abu", nationality="local", position="Harvester"),
        "budi": Worker(name="Budi Santoso", nationality="foreigner", position="Sprayer"),
        "rahim": Worker(name="Rahim", nationality="foreigner_no_passport", position="Weeder"),
    }
    async with session_factory() as session:
        async with session.begin():
            session.add_all(rows.values())
    return rows


@pytest_asyncio.fixture
async def flat_deduction(session_factory: async_sessionmaker[AsyncSession]) -> DeductionType:
    """A flat deduction of 21.25 (worker) / 74.35 (employer) for everyone."""
    deduction = DeductionType(
        code="SOCSO",
        name="Social Security",
        calculation_type="flat",
        worker_amount=Decimal("21.25"),
        employer_amount=Decimal("74.35"),
        effective_from=date(2020, 1, 1),
    )
    async with session_factory() as session:
        async with session.begin():
            session.add(deduction)
    return deduction


CreateWorkOrder = Callable[..., Awaitable[WorkOrder]]


@pytest.fixture
def make_work_order(services: Services) -> CreateWorkOrder:
    """Factory creating an ongoing work order in January 2025 by default.

    ``workers`` is a list of ``(Worker, quantity, rate)``; quantity is the
    area for area-based orders and the number of days for ``work_days``.
    """

    async def _make(
        workers: list[tuple[Worker, object, object]] = (),
        *,
        rate_type: str = "normal",
        items: list[str] = (),
        created_at: datetime = JANUARY,
        name: str = "Block harvest",
    ) -> WorkOrder:
        assignments = []
        for worker, quantity, rate in workers:
            if rate_type == "work_days":
                assignments.append(
                    WorkerAssignment(worker_id=worker.id, work_days=quantity, rate=rate)
                )
            else:
                assignments.append(
                    WorkerAssignment(
                        worker_id=worker.id,
                        work_area_size=Decimal(str(quantity)) if quantity is not None else None,
                        rate=Decimal(str(rate)) if rate is not None else None,
                    )
                )
        return await services.work_orders.create_work_order(
            rate_type=rate_type,
            work_order_name=name,
            block_number="B-07",
            workers=assignments,
            items=[ItemUsage(item_name=item, amount_used=Decimal("2"), unit="bag") for item in items],
            created_at=created_at,
        )

    return _make


@pytest.fixture
def submit_and_approve(services: Services):
    """Drive a work order from ongoing to completed, returning the approval result."""

    async def _run(work_order: WorkOrder, actor: ActorContext | None = APPROVER):
        submitted = await services.work_orders.mark_complete(work_order.id, actor=actor)
        assert submitted.success, submitted.message
        return await services.work_orders.approve(work_order.id, actor=actor)

    return _run
