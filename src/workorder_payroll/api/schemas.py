"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Work order schemas
# ============================================================================


class TransitionRequest(BaseModel):
    """Schema for a transition request."""

    event: str = Field(min_length=1)
    remarks: str | None = None


class WorkOrderResponse(BaseModel):
    """Schema for work order response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    rate_type: str
    work_order_name: str | None = None
    block_number: str | None = None
    start_date: date | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    pay_processed_at: datetime | None = None
    created_at: datetime


class FollowUpResponse(BaseModel):
    """Outcome of a handler that ran after the transition committed."""

    handler: str
    event_type: str
    ok: bool
    result: dict[str, Any] | None = None
    error: str | None = None


class TransitionResponse(BaseModel):
    """Schema for a successful transition."""

    success: bool
    message: str
    work_order: WorkOrderResponse
    follow_ups: list[FollowUpResponse] = []


class HistoryEntryResponse(BaseModel):
    """Schema for one transition log row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    event: str
    from_state: str
    to_state: str
    transition_description: str
    actor_id: str | None = None
    actor_name: str | None = None
    remarks: str | None = None
    created_at: datetime


class HistoryListResponse(BaseModel):
    """Schema for a work order's transition log."""

    work_order_id: int
    items: list[HistoryEntryResponse]
    total: int


# ============================================================================
# Pay calculation schemas
# ============================================================================


class PayCalculationDetailResponse(BaseModel):
    """Schema for one worker's monthly pay."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    worker_id: int
    gross_salary: Decimal
    worker_deductions: Decimal
    employer_deductions: Decimal
    net_salary: Decimal
    currency: str
    deduction_breakdown: dict[str, Any]
    version: int


class PayCalculationResponse(BaseModel):
    """Schema for a month ledger."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    month_year: str
    overall_total: Decimal
    total_gross_salary: Decimal
    total_worker_deductions: Decimal
    total_employer_deductions: Decimal
    version: int
    details: list[PayCalculationDetailResponse]


class ProcessingErrorResponse(BaseModel):
    """Schema for a structured processing failure."""

    kind: str
    message: str
    detail: str
    reference: str
    retryable: bool


class ProcessingResultResponse(BaseModel):
    """Schema for a processing or recalculation result."""

    success: bool
    message: str
    month_key: str | None = None
    work_order_id: int | None = None
    skipped: bool = False
    workers: list[int] = []
    error: ProcessingErrorResponse | None = None


# ============================================================================
# Deduction schemas
# ============================================================================


class WageRangeResponse(BaseModel):
    """Schema for a deduction wage bracket."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    min_wage: Decimal
    max_wage: Decimal | None = None
    calculation_method: str
    worker_amount: Decimal
    employer_amount: Decimal
    worker_percentage: Decimal
    employer_percentage: Decimal


class DeductionTypeResponse(BaseModel):
    """Schema for a deduction rule."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    calculation_type: str
    worker_amount: Decimal
    employer_amount: Decimal
    rounding_precision: int
    rounding_method: str
    applies_to_nationality: str | None = None
    effective_from: date
    effective_until: date | None = None
    wage_ranges: list[WageRangeResponse] = []


# ============================================================================
# Common schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: Any
    code: str | None = None
