"""Tests for month ledger mutation."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from workorder_payroll.calculators.deduction_catalog import DeductionCatalog
from workorder_payroll.models import PayCalculation, PayCalculationEntry, WorkOrder
from workorder_payroll.services.pay_ledger import PayLedger

pytestmark = pytest.mark.asyncio

AS_OF = date(2025, 1, 31)


@pytest.fixture
async def orders(session: AsyncSession) -> list[WorkOrder]:
    rows = [WorkOrder(status="completed", rate_type="normal") for _ in range(3)]
    session.add_all(rows)
    await session.flush()
    return rows


class TestPayLedger:
    """Test header and detail upserts."""

    async def test_find_or_create_is_stable(self, session: AsyncSession):
        ledger = PayLedger(session)
        first = await ledger.find_or_create_pay_calculation("2025-01")
        second = await ledger.find_or_create_pay_calculation("2025-01")

        assert first.id == second.id
        count = await session.scalar(select(func.count()).select_from(PayCalculation))
        assert count == 1

    async def test_accumulate_creates_then_increments(self, session, workers, orders):
        ali = workers["ali"]
        ledger = PayLedger(session, currency="RM")
        pay_calc = await ledger.find_or_create_pay_calculation("2025-01")

        detail = await ledger.accumulate(pay_calc, ali.id, Decimal("1000"), orders[0].id)
        assert detail.gross_salary == Decimal("1000.00")
        assert detail.currency == "RM"

        again = await ledger.accumulate(pay_calc, ali.id, Decimal("750"), orders[1].id)
        assert again.id == detail.id
        assert again.gross_salary == Decimal("1750.00")

        entries = (
            await session.execute(
                select(PayCalculationEntry).where(PayCalculationEntry.worker_id == ali.id)
            )
        ).scalars().all()
        assert sum(e.amount for e in entries) == again.gross_salary

    async def test_same_work_order_twice_is_rejected(self, session, workers, orders):
        ledger = PayLedger(session)
        pay_calc = await ledger.find_or_create_pay_calculation("2025-01")
        await ledger.accumulate(pay_calc, workers["ali"].id, Decimal("100"), orders[0].id)

        with pytest.raises(IntegrityError):
            await ledger.accumulate(pay_calc, workers["ali"].id, Decimal("100"), orders[0].id)

    async def test_recompute_deductions_builds_breakdown(self, session, workers, orders):
        catalog = DeductionCatalog(session)
        await catalog.add_deduction_type(
            "SOCSO", "Social Security", date(2020, 1, 1),
            worker_amount=Decimal("21.25"), employer_amount=Decimal("74.35"),
        )
        await catalog.add_deduction_type(
            "EPF", "Provident Fund", date(2020, 1, 1),
            calculation_type="percentage",
            worker_amount=Decimal("11"), employer_amount=Decimal("13"),
            applies_to_nationality="local",
        )

        ledger = PayLedger(session, catalog)
        pay_calc = await ledger.find_or_create_pay_calculation("2025-01")
        local = await ledger.accumulate(pay_calc, workers["ali"].id, Decimal("1000"), orders[0].id)
        foreign = await ledger.accumulate(pay_calc, workers["budi"].id, Decimal("1000"), orders[0].id)

        await ledger.recompute_deductions(local, AS_OF)
        await ledger.recompute_deductions(foreign, AS_OF)

        assert local.worker_deductions == Decimal("131.25")
        assert local.employer_deductions == Decimal("204.35")
        assert local.net_salary == Decimal("868.75")
        assert local.deduction_breakdown["EPF"] == {
            "name": "Provident Fund",
            "worker": "110.00",
            "employer": "130.00",
        }

        assert set(foreign.deduction_breakdown) == {"SOCSO"}
        assert foreign.net_salary == Decimal("978.75")

    async def test_recalculate_totals_sums_every_detail(self, session, workers, orders):
        catalog = DeductionCatalog(session)
        await catalog.add_deduction_type(
            "SOCSO", "Social Security", date(2020, 1, 1),
            worker_amount=Decimal("21.25"), employer_amount=Decimal("74.35"),
        )
        ledger = PayLedger(session, catalog)
        pay_calc = await ledger.find_or_create_pay_calculation("2025-01")
        for worker, amount in ((workers["ali"], "1000"), (workers["budi"], "500")):
            detail = await ledger.accumulate(pay_calc, worker.id, Decimal(amount), orders[2].id)
            await ledger.recompute_deductions(detail, AS_OF)

        pay_calc = await ledger.recalculate_totals(pay_calc)

        assert pay_calc.total_gross_salary == Decimal("1500.00")
        assert pay_calc.total_worker_deductions == Decimal("42.50")
        assert pay_calc.total_employer_deductions == Decimal("148.70")
        assert pay_calc.overall_total == Decimal("1457.50")

    async def test_queries(self, session, workers, orders):
        ledger = PayLedger(session)
        pay_calc = await ledger.find_or_create_pay_calculation("2025-03")
        await ledger.accumulate(pay_calc, workers["rahim"].id, Decimal("80"), orders[0].id)
        await session.commit()

        header = await ledger.pay_calculation_for("2025-03")
        detail = await ledger.detail_for("2025-03", workers["rahim"].id)

        assert header is not None and len(header.details) == 1
        assert detail is not None and len(detail.entries) == 1
        assert await ledger.pay_calculation_for("2025-04") is None
        assert await ledger.detail_for("2025-03", workers["ali"].id) is None
