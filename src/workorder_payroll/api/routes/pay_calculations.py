"""Pay calculation and deduction API endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, status

from workorder_payroll.api.dependencies import PayCalculations
from workorder_payroll.api.schemas import (
    DeductionTypeResponse,
    ErrorResponse,
    PayCalculationDetailResponse,
    PayCalculationResponse,
    ProcessingResultResponse,
)
from workorder_payroll.models import NATIONALITIES
from workorder_payroll.services import ProcessingResult

router = APIRouter(tags=["pay-calculations"])

MonthKey = Annotated[str, Path(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")]


def processing_response(result: ProcessingResult) -> ProcessingResultResponse:
    """Map a processing result to a response, raising on failure."""
    if result.success:
        return ProcessingResultResponse.model_validate(result.to_dict())

    error = result.error
    if error is not None and error.kind == "not_found":
        code = status.HTTP_404_NOT_FOUND
    elif error is not None and error.retryable:
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    raise HTTPException(status_code=code, detail=result.to_dict())


@router.get(
    "/pay-calculations/{month_key}",
    response_model=PayCalculationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_pay_calculation(
    orchestrator: PayCalculations,
    month_key: MonthKey,
) -> PayCalculationResponse:
    """Get a month's pay calculation with every worker's detail."""
    pay_calc = await orchestrator.pay_calculation_for(month_key)
    if pay_calc is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No pay calculation for {month_key}",
        )
    return PayCalculationResponse.model_validate(pay_calc)


@router.get(
    "/pay-calculations/{month_key}/workers/{worker_id}",
    response_model=PayCalculationDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_pay_calculation_detail(
    orchestrator: PayCalculations,
    month_key: MonthKey,
    worker_id: Annotated[int, Path(ge=1)],
) -> PayCalculationDetailResponse:
    """Get one worker's pay for a month."""
    detail = await orchestrator.detail_for(month_key, worker_id)
    if detail is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No pay calculation for worker {worker_id} in {month_key}",
        )
    return PayCalculationDetailResponse.model_validate(detail)


@router.post(
    "/pay-calculations/{month_key}/recalculate",
    response_model=ProcessingResultResponse,
    responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def recalculate_pay_calculation(
    orchestrator: PayCalculations,
    month_key: MonthKey,
) -> ProcessingResultResponse:
    """Reapply the current deductions to every worker of a month."""
    result = await orchestrator.recalculate_month(month_key)
    return processing_response(result)


@router.get(
    "/deductions/active",
    response_model=list[DeductionTypeResponse],
    responses={400: {"model": ErrorResponse}},
)
async def list_active_deductions(
    orchestrator: PayCalculations,
    as_of: date | None = None,
    nationality: Annotated[str | None, Query()] = None,
) -> list[DeductionTypeResponse]:
    """List deduction rules in force on a date."""
    if nationality is not None and nationality not in NATIONALITIES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown nationality '{nationality}'",
        )
    rules = await orchestrator.active_deductions(as_of, nationality)
    return [DeductionTypeResponse.model_validate(rule) for rule in rules]
