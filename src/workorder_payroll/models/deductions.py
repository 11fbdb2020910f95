"""Deduction rule models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workorder_payroll.models.base import Base, TimestampMixin


class DeductionType(Base, TimestampMixin):
    """Statutory or contractual withholding rule.

    ``worker_amount``/``employer_amount`` hold fixed amounts for ``flat`` rules
    and percentages for ``percentage`` rules. ``wage_bracket`` rules read
    their amounts from ``wage_ranges``.
    """

    __tablename__ = "deduction_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    calculation_type: Mapped[str] = mapped_column(String, nullable=False, default="flat")
    worker_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    employer_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    rounding_precision: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    rounding_method: Mapped[str] = mapped_column(String, nullable=False, default="round")
    applies_to_nationality: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_until: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "calculation_type IN ('flat', 'wage_bracket', 'percentage')",
            name="deduction_types_calculation_type_check",
        ),
        CheckConstraint(
            "rounding_method IN ('round', 'ceil')",
            name="deduction_types_rounding_method_check",
        ),
        CheckConstraint(
            "worker_amount >= 0 AND employer_amount >= 0",
            name="deduction_types_amounts_non_negative",
        ),
        CheckConstraint(
            "effective_until IS NULL OR effective_until >= effective_from",
            name="deduction_types_dates_check",
        ),
    )

    # Relationships
    wage_ranges: Mapped[list[DeductionWageRange]] = relationship(
        back_populates="deduction_type",
        cascade="all, delete-orphan",
        order_by="DeductionWageRange.min_wage",
        lazy="selectin",
    )

    @property
    def is_wage_bracket(self) -> bool:
        """Check if amounts come from the bracket table."""
        return self.calculation_type == "wage_bracket"

    def applies_to(self, nationality: str | None) -> bool:
        """Check the nationality scope; unscoped rules apply to everyone."""
        if self.applies_to_nationality in (None, "all"):
            return True
        return self.applies_to_nationality == nationality


class DeductionWageRange(Base, TimestampMixin):
    """Wage bracket of a ``wage_bracket`` deduction type.

    Brackets are half-open: ``min_wage <= wage < max_wage``. A NULL
    ``max_wage`` is the open-ended top bracket.
    """

    __tablename__ = "deduction_wage_ranges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deduction_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("deduction_types.id", ondelete="CASCADE"),
        nullable=False,
    )
    min_wage: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    max_wage: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    calculation_method: Mapped[str] = mapped_column(String, nullable=False, default="fixed")
    worker_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    employer_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )
    worker_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    employer_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0")
    )

    __table_args__ = (
        CheckConstraint(
            "calculation_method IN ('fixed', 'percentage')",
            name="deduction_wage_ranges_method_check",
        ),
        CheckConstraint(
            "max_wage IS NULL OR max_wage > min_wage",
            name="deduction_wage_ranges_bounds_check",
        ),
        CheckConstraint(
            "min_wage >= 0 AND worker_amount >= 0 AND employer_amount >= 0",
            name="deduction_wage_ranges_non_negative",
        ),
        Index("idx_wage_ranges_salary_lookup", "deduction_type_id", "min_wage", "max_wage"),
    )

    # Relationships
    deduction_type: Mapped[DeductionType] = relationship(back_populates="wage_ranges")

    def contains(self, wage: Decimal) -> bool:
        """Half-open membership test."""
        if wage < self.min_wage:
            return False
        return self.max_wage is None or wage < self.max_wage
