"""Month ledger mutation and queries.

All writes happen inside the caller's transaction; nothing here commits.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from workorder_payroll.calculators.deduction_catalog import DeductionCatalog
from workorder_payroll.models import (
    PayCalculation,
    PayCalculationDetail,
    PayCalculationEntry,
    Worker,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class PayLedger:
    """Reads and writes PayCalculation headers and their detail rows.

    Invariants kept by every mutating method:
    - ``detail.gross_salary`` equals the sum of its entries
    - ``detail.net_salary = gross_salary - worker_deductions``
    - header totals are sums over all of the month's details
    """

    def __init__(
        self,
        session: AsyncSession,
        catalog: DeductionCatalog | None = None,
        currency: str = "RM",
    ):
        self.session = session
        self.catalog = catalog or DeductionCatalog(session)
        self.currency = currency

    async def find_or_create_pay_calculation(self, month_key: str) -> PayCalculation:
        """Get the month header, inserting an empty one if needed.

        A concurrent insert of the same month surfaces as ``IntegrityError``
        on flush; the caller retries.
        """
        result = await self.session.execute(
            select(PayCalculation).where(PayCalculation.month_year == month_key)
        )
        pay_calc = result.scalar_one_or_none()
        if pay_calc is not None:
            return pay_calc

        pay_calc = PayCalculation(
            month_year=month_key,
            overall_total=ZERO,
            total_gross_salary=ZERO,
            total_worker_deductions=ZERO,
            total_employer_deductions=ZERO,
        )
        self.session.add(pay_calc)
        await self.session.flush()
        logger.info("Pay calculation created", extra={"month_key": month_key})
        return pay_calc

    async def accumulate(
        self,
        pay_calc: PayCalculation,
        worker_id: int,
        amount: Decimal,
        work_order_id: int,
    ) -> PayCalculationDetail:
        """Add a work order's contribution to a worker's detail row.

        The detail is read ``FOR UPDATE`` and an entry row is appended; the
        entry's unique key rejects a second application of the same work
        order for the same worker.
        """
        result = await self.session.execute(
            select(PayCalculationDetail)
            .where(
                PayCalculationDetail.pay_calculation_id == pay_calc.id,
                PayCalculationDetail.worker_id == worker_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        detail = result.scalar_one_or_none()

        if detail is None:
            detail = PayCalculationDetail(
                pay_calculation_id=pay_calc.id,
                worker_id=worker_id,
                gross_salary=_money(amount),
                worker_deductions=ZERO,
                employer_deductions=ZERO,
                net_salary=_money(amount),
                currency=self.currency,
                deduction_breakdown={},
            )
            self.session.add(detail)
        else:
            detail.gross_salary = _money(detail.gross_salary + amount)
        await self.session.flush()

        self.session.add(
            PayCalculationEntry(
                pay_calculation_detail_id=detail.id,
                work_order_id=work_order_id,
                worker_id=worker_id,
                amount=_money(amount),
            )
        )
        await self.session.flush()
        return detail

    async def recompute_deductions(
        self,
        detail: PayCalculationDetail,
        as_of: date | None = None,
    ) -> PayCalculationDetail:
        """Reprice a detail against the deductions in force on ``as_of``.

        Raises:
            BracketLookupError: If a bracket rule has no range for the gross
            DeductionConfigurationError: If the catalog is inconsistent
        """
        worker = await self.session.get(Worker, detail.worker_id)
        nationality = worker.nationality if worker is not None else None
        rules = await self.catalog.active_deductions(as_of=as_of, nationality=nationality)

        gross = Decimal(detail.gross_salary)
        worker_total = ZERO
        employer_total = ZERO
        breakdown: dict[str, dict[str, str]] = {}

        for rule in rules:
            amount = self.catalog.resolve_amount(rule, gross)
            worker_share = _money(amount.worker)
            employer_share = _money(amount.employer)
            worker_total += worker_share
            employer_total += employer_share
            breakdown[rule.code] = {
                "name": rule.name,
                "worker": str(worker_share),
                "employer": str(employer_share),
            }

        detail.worker_deductions = worker_total
        detail.employer_deductions = employer_total
        detail.net_salary = _money(gross - worker_total)
        detail.deduction_breakdown = breakdown
        await self.session.flush()
        return detail

    async def recalculate_totals(self, pay_calc: PayCalculation) -> PayCalculation:
        """Rewrite header totals from every detail of the month.

        The header is re-read ``FOR UPDATE`` so the totals reflect details
        committed by other transactions.
        """
        await self.session.flush()
        result = await self.session.execute(
            select(PayCalculation)
            .where(PayCalculation.id == pay_calc.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        pay_calc = result.scalar_one()

        details = await self._details_of(pay_calc.id)
        pay_calc.total_gross_salary = sum((d.gross_salary for d in details), ZERO)
        pay_calc.total_worker_deductions = sum((d.worker_deductions for d in details), ZERO)
        pay_calc.total_employer_deductions = sum((d.employer_deductions for d in details), ZERO)
        pay_calc.overall_total = sum((d.net_salary for d in details), ZERO)
        await self.session.flush()

        logger.debug(
            "Pay calculation totals recomputed",
            extra={
                "month_key": pay_calc.month_year,
                "details": len(details),
                "overall_total": str(pay_calc.overall_total),
            },
        )
        return pay_calc

    async def details_for_month(self, month_key: str) -> list[PayCalculationDetail]:
        """Every detail row of a month, locked for update."""
        result = await self.session.execute(
            select(PayCalculationDetail)
            .join(PayCalculation)
            .where(PayCalculation.month_year == month_key)
            .order_by(PayCalculationDetail.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def pay_calculation_for(self, month_key: str) -> PayCalculation | None:
        """Get a month header with its details loaded."""
        result = await self.session.execute(
            select(PayCalculation)
            .where(PayCalculation.month_year == month_key)
            .options(selectinload(PayCalculation.details))
        )
        return result.scalar_one_or_none()

    async def detail_for(self, month_key: str, worker_id: int) -> PayCalculationDetail | None:
        """Get one worker's detail row for a month, with its entries."""
        result = await self.session.execute(
            select(PayCalculationDetail)
            .join(PayCalculation)
            .where(
                PayCalculation.month_year == month_key,
                PayCalculationDetail.worker_id == worker_id,
            )
            .options(selectinload(PayCalculationDetail.entries))
        )
        return result.scalar_one_or_none()

    async def _details_of(self, pay_calculation_id: int) -> list[PayCalculationDetail]:
        result = await self.session.execute(
            select(PayCalculationDetail)
            .where(PayCalculationDetail.pay_calculation_id == pay_calculation_id)
            .order_by(PayCalculationDetail.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
