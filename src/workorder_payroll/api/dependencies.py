"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from workorder_payroll.services import (
    ActorContext,
    PayCalculationOrchestrator,
    Services,
    WorkOrderService,
)


def get_services(request: Request) -> Services:
    """Services built by the application factory."""
    return request.app.state.services


async def get_db_session(
    services: Annotated[Services, Depends(get_services)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with services.session_factory() as session:
        yield session


def get_work_order_service(
    services: Annotated[Services, Depends(get_services)],
) -> WorkOrderService:
    return services.work_orders


def get_orchestrator(
    services: Annotated[Services, Depends(get_services)],
) -> PayCalculationOrchestrator:
    return services.pay_calculations


def get_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_name: Annotated[str | None, Header()] = None,
) -> ActorContext | None:
    """Actor from headers; absent headers mean an unattributed call."""
    if not x_actor_id and not x_actor_name:
        return None
    return ActorContext(actor_id=x_actor_id, name=x_actor_name or x_actor_id)


# Type aliases for cleaner dependency injection
ServicesDep = Annotated[Services, Depends(get_services)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
WorkOrders = Annotated[WorkOrderService, Depends(get_work_order_service)]
PayCalculations = Annotated[PayCalculationOrchestrator, Depends(get_orchestrator)]
Actor = Annotated[ActorContext | None, Depends(get_actor)]
