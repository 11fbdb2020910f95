"""Month payroll ledger models."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workorder_payroll.models.base import Base, JSONType, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from workorder_payroll.models.work_order import WorkOrder
    from workorder_payroll.models.worker import Worker


class PayCalculation(Base, TimestampMixin, UpdatedAtMixin):
    """Month ledger header.

    Every total is derived from the details and rewritten after each
    mutation; none of them is authoritative on its own.
    """

    __tablename__ = "pay_calculations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    month_year: Mapped[str] = mapped_column(String(7), nullable=False)
    overall_total: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    total_gross_salary: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    total_worker_deductions: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    total_employer_deductions: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("month_year", name="pay_calculations_month_year_unique"),
    )
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    details: Mapped[list[PayCalculationDetail]] = relationship(
        back_populates="pay_calculation",
        cascade="all, delete-orphan",
        order_by="PayCalculationDetail.id",
    )


class PayCalculationDetail(Base, TimestampMixin, UpdatedAtMixin):
    """One worker's accumulated pay within a month."""

    __tablename__ = "pay_calculation_details"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pay_calculation_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("pay_calculations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    worker_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("workers.id"),
        nullable=False,
        index=True,
    )
    gross_salary: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    worker_deductions: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    employer_deductions: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    net_salary: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    currency: Mapped[str] = mapped_column(String, nullable=False, default="RM")
    deduction_breakdown: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "pay_calculation_id", "worker_id", name="pay_calculation_details_month_worker_unique"
        ),
        CheckConstraint("gross_salary >= 0", name="pay_calculation_details_gross_non_negative"),
        CheckConstraint(
            "worker_deductions >= 0 AND employer_deductions >= 0",
            name="pay_calculation_details_deductions_non_negative",
        ),
    )
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    pay_calculation: Mapped[PayCalculation] = relationship(back_populates="details")
    worker: Mapped[Worker] = relationship()
    entries: Mapped[list[PayCalculationEntry]] = relationship(
        back_populates="detail",
        cascade="all, delete-orphan",
        order_by="PayCalculationEntry.id",
    )


class PayCalculationEntry(Base, TimestampMixin):
    """A single work order's contribution to a detail row.

    The unique (work_order_id, worker_id) key makes a second application of
    the same work order fail at the database instead of double counting.
    """

    __tablename__ = "pay_calculation_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pay_calculation_detail_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("pay_calculation_details.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    work_order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("work_orders.id"),
        nullable=False,
    )
    worker_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("workers.id"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "work_order_id", "worker_id", name="pay_calculation_entries_work_order_worker_unique"
        ),
        CheckConstraint("amount > 0", name="pay_calculation_entries_amount_positive"),
    )

    # Relationships
    detail: Mapped[PayCalculationDetail] = relationship(back_populates="entries")
    work_order: Mapped[WorkOrder] = relationship()
