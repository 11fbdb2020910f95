"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from workorder_payroll import __version__
from workorder_payroll.api.routes import (
    health_router,
    pay_calculations_router,
    work_orders_router,
)
from workorder_payroll.config import Settings, get_settings
from workorder_payroll.database import init_db
from workorder_payroll.log import configure_logging
from workorder_payroll.services import (
    LockTimeoutError,
    Services,
    WorkOrderNotFoundError,
    build_services,
)

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    services: Services | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Tests pass ``services`` built on their own session factory; otherwise
    the global engine from ``init_db`` is used and disposed on shutdown.
    """
    settings = settings or (services.settings if services else get_settings())
    configure_logging(settings.log_level)

    engine = None
    if services is None:
        engine, session_factory = init_db(settings)
        services = build_services(session_factory, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        yield
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Work Order Payroll API",
        description="Work order lifecycle and monthly pay calculation",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(WorkOrderNotFoundError)
    async def not_found_handler(request: Request, exc: WorkOrderNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc), "code": "WORK_ORDER_NOT_FOUND"},
        )

    @app.exception_handler(LockTimeoutError)
    async def lock_timeout_handler(request: Request, exc: LockTimeoutError) -> JSONResponse:
        logger.warning("Lock timeout", extra={"lock_key": exc.key, "path": request.url.path})
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": str(exc), "code": "LOCK_TIMEOUT"},
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(work_orders_router, prefix="/api/v1")
    app.include_router(pay_calculations_router, prefix="/api/v1")

    return app
