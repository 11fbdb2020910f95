"""Worker model."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from workorder_payroll.models.base import Base, TimestampMixin

NATIONALITIES = ("local", "foreigner", "foreigner_no_passport")


class Worker(Base, TimestampMixin):
    """Field worker paid through work orders."""

    __tablename__ = "workers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    nationality: Mapped[str | None] = mapped_column(String, nullable=True)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "nationality IS NULL OR nationality IN ('local', 'foreigner', 'foreigner_no_passport')",
            name="workers_nationality_check",
        ),
    )

    @property
    def is_foreigner(self) -> bool:
        """Foreign workers with or without passport."""
        return self.nationality in ("foreigner", "foreigner_no_passport")
