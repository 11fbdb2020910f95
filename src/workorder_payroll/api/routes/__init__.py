"""API routes."""

from workorder_payroll.api.routes.health import router as health_router
from workorder_payroll.api.routes.pay_calculations import router as pay_calculations_router
from workorder_payroll.api.routes.work_orders import router as work_orders_router

__all__ = ["health_router", "pay_calculations_router", "work_orders_router"]
