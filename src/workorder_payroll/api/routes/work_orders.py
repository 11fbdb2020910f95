"""Work order API endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, status

from workorder_payroll.api.dependencies import Actor, PayCalculations, WorkOrders
from workorder_payroll.api.routes.pay_calculations import processing_response
from workorder_payroll.api.schemas import (
    ErrorResponse,
    FollowUpResponse,
    HistoryEntryResponse,
    HistoryListResponse,
    ProcessingResultResponse,
    TransitionRequest,
    TransitionResponse,
    WorkOrderResponse,
)
from workorder_payroll.events import HandlerOutcome

router = APIRouter(prefix="/work-orders", tags=["work-orders"])


def _follow_up(outcome: HandlerOutcome) -> FollowUpResponse:
    result = outcome.result
    return FollowUpResponse(
        handler=outcome.handler,
        event_type=outcome.event_type,
        ok=outcome.ok,
        result=result.to_dict() if hasattr(result, "to_dict") else None,
        error=type(outcome.error).__name__ if outcome.error else None,
    )


@router.post(
    "/{work_order_id}/transitions",
    response_model=TransitionResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def transition_work_order(
    work_orders: WorkOrders,
    actor: Actor,
    payload: TransitionRequest,
    work_order_id: Annotated[int, Path(ge=1)],
) -> TransitionResponse:
    """Fire a lifecycle event on a work order."""
    result = await work_orders.attempt_transition(
        work_order_id,
        payload.event,
        actor=actor,
        remarks=payload.remarks,
    )
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=result.error.to_dict() if result.error else result.message,
        )

    return TransitionResponse(
        success=True,
        message=result.message,
        work_order=WorkOrderResponse.model_validate(result.work_order),
        follow_ups=[_follow_up(o) for o in result.follow_ups],
    )


@router.get(
    "/{work_order_id}/history",
    response_model=HistoryListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_work_order_history(
    work_orders: WorkOrders,
    work_order_id: Annotated[int, Path(ge=1)],
) -> HistoryListResponse:
    """Get the transition log of a work order."""
    histories = await work_orders.get_history(work_order_id)
    return HistoryListResponse(
        work_order_id=work_order_id,
        items=[HistoryEntryResponse.model_validate(h) for h in histories],
        total=len(histories),
    )


@router.post(
    "/{work_order_id}/pay-calculation",
    response_model=ProcessingResultResponse,
    responses={
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def process_work_order_pay(
    orchestrator: PayCalculations,
    actor: Actor,
    work_order_id: Annotated[int, Path(ge=1)],
) -> ProcessingResultResponse:
    """Apply an approved work order to its month's pay calculation."""
    result = await orchestrator.process_approved_work_order(work_order_id, actor=actor)
    return processing_response(result)
