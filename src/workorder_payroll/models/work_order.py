"""Work order, assignment and history models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workorder_payroll.models.base import Base, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from workorder_payroll.models.worker import Worker


class WorkOrder(Base, TimestampMixin, UpdatedAtMixin):
    """Unit of field work assigned to workers and/or resources.

    ``created_at`` is the only input to month attribution. ``pay_processed_at``
    is written in the same transaction that folds the order into the month
    ledger and marks it as applied.
    """

    __tablename__ = "work_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ongoing")
    rate_type: Mapped[str] = mapped_column(String, nullable=False, default="normal")
    work_order_name: Mapped[str | None] = mapped_column(String, nullable=True)
    block_number: Mapped[str | None] = mapped_column(String, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    pay_processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('ongoing', 'pending', 'completed', 'rejected', 'amendment_required')",
            name="work_orders_status_check",
        ),
        CheckConstraint(
            "rate_type IN ('normal', 'work_days', 'resources')",
            name="work_orders_rate_type_check",
        ),
    )

    # Relationships
    workers: Mapped[list[WorkOrderWorker]] = relationship(
        back_populates="work_order",
        cascade="all, delete-orphan",
        order_by="WorkOrderWorker.id",
    )
    items: Mapped[list[WorkOrderItem]] = relationship(
        back_populates="work_order",
        cascade="all, delete-orphan",
        order_by="WorkOrderItem.id",
    )
    histories: Mapped[list[WorkOrderHistory]] = relationship(
        back_populates="work_order",
        cascade="all, delete-orphan",
        order_by="WorkOrderHistory.id",
    )

    @property
    def month_key(self) -> str:
        """Payroll month this work order belongs to (YYYY-MM)."""
        return self.created_at.strftime("%Y-%m")


class WorkOrderWorker(Base, TimestampMixin):
    """A worker's quantity and rate on a work order."""

    __tablename__ = "work_order_workers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("work_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    worker_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("workers.id"),
        nullable=False,
        index=True,
    )
    work_area_size: Mapped[Decimal | None] = mapped_column(Numeric(10, 3), nullable=True)
    work_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    work_order: Mapped[WorkOrder] = relationship(back_populates="workers")
    worker: Mapped[Worker] = relationship()


class WorkOrderItem(Base, TimestampMixin):
    """Resource or material consumed by a work order."""

    __tablename__ = "work_order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("work_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_name: Mapped[str] = mapped_column(String, nullable=False)
    amount_used: Mapped[Decimal | None] = mapped_column(Numeric(10, 3), nullable=True)
    unit: Mapped[str | None] = mapped_column(String, nullable=True)

    # Relationships
    work_order: Mapped[WorkOrder] = relationship(back_populates="items")


class WorkOrderHistory(Base, TimestampMixin):
    """Append-only record of every successful status transition."""

    __tablename__ = "work_order_histories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("work_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event: Mapped[str] = mapped_column(String, nullable=False)
    from_state: Mapped[str] = mapped_column(String, nullable=False)
    to_state: Mapped[str] = mapped_column(String, nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True)
    actor_name: Mapped[str | None] = mapped_column(String, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    work_order: Mapped[WorkOrder] = relationship(back_populates="histories")

    @property
    def transition_description(self) -> str:
        """Human-readable ``From → To`` label."""
        return (
            f"{self.from_state.replace('_', ' ').title()} → "
            f"{self.to_state.replace('_', ' ').title()}"
        )
