"""Gross pay contributions of a work order."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

CENT = Decimal("0.01")


class DataIntegrityError(Exception):
    """Raised when a worker row cannot be priced."""

    def __init__(self, work_order_id: int, worker_id: int, field: str, value: object):
        self.work_order_id = work_order_id
        self.worker_id = worker_id
        self.field = field
        self.value = value
        super().__init__(
            f"Work order {work_order_id} worker {worker_id} has invalid {field}: {value!r}"
        )


class AssignmentLike(Protocol):
    worker_id: int
    work_area_size: Decimal | None
    work_days: int | None
    rate: Decimal | None


@dataclass(frozen=True)
class Contribution:
    """One worker's gross pay from one work order."""

    worker_id: int
    amount: Decimal


class GrossSalaryCalculator:
    """Prices worker rows as ``quantity × rate``.

    Quantity is ``work_days`` for ``work_days`` orders and
    ``work_area_size`` for every other rate type.
    """

    def quantity_field(self, rate_type: str) -> str:
        return "work_days" if rate_type == "work_days" else "work_area_size"

    def calculate(
        self,
        work_order_id: int,
        rate_type: str,
        assignment: AssignmentLike,
    ) -> Decimal:
        """Gross amount of a single worker row, rounded to cents.

        Raises:
            DataIntegrityError: If quantity or rate is missing or not positive
        """
        field = self.quantity_field(rate_type)
        quantity = getattr(assignment, field)
        if quantity is None or Decimal(quantity) <= 0:
            raise DataIntegrityError(work_order_id, assignment.worker_id, field, quantity)
        rate = assignment.rate
        if rate is None or Decimal(rate) <= 0:
            raise DataIntegrityError(work_order_id, assignment.worker_id, "rate", rate)

        return (Decimal(quantity) * Decimal(rate)).quantize(CENT, rounding=ROUND_HALF_UP)

    def contributions(
        self,
        work_order_id: int,
        rate_type: str,
        assignments: Iterable[AssignmentLike],
    ) -> list[Contribution]:
        """Per-worker contributions, rows of the same worker summed.

        Ordered by worker id, which is also the lock order for the ledger.
        """
        totals: dict[int, Decimal] = {}
        for assignment in assignments:
            amount = self.calculate(work_order_id, rate_type, assignment)
            totals[assignment.worker_id] = totals.get(assignment.worker_id, Decimal("0")) + amount

        return [
            Contribution(worker_id=worker_id, amount=totals[worker_id])
            for worker_id in sorted(totals)
        ]
