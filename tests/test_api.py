"""HTTP tests for the FastAPI application."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from workorder_payroll.api import create_app

pytestmark = pytest.mark.asyncio

APPROVER_HEADERS = {"X-Actor-Id": "u-42", "X-Actor-Name": "Siti Approver"}


@pytest_asyncio.fixture
async def client(services):
    app = create_app(services=services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


class TestHealth:
    """Test health endpoints."""

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "healthy"

    async def test_ready_and_live(self, client):
        assert (await client.get("/ready")).json() == {
            "status": "ready",
            "schema_ready": True,
            "approval_handlers": 1,
        }
        assert (await client.get("/live")).json() == {"status": "alive"}

    async def test_not_ready_without_approval_handler(self, client, services):
        services.emitter.off(services.pay_calculations.handle_work_order_approved)

        response = await client.get("/ready")

        assert response.status_code == 503
        assert response.json()["approval_handlers"] == 0


class TestTransitions:
    """Test the transitions endpoint."""

    async def test_submit(self, client, workers, make_work_order):
        work_order = await make_work_order([(workers["ali"], 10, 10)])

        response = await client.post(
            f"/api/v1/work-orders/{work_order.id}/transitions",
            json={"event": "mark_complete"},
            headers={"X-Actor-Id": "u-7"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Work order mark complete succeeded"
        assert body["work_order"]["status"] == "pending"
        assert body["follow_ups"] == []

    async def test_approve_reports_processing(
        self, client, workers, flat_deduction, make_work_order
    ):
        work_order = await make_work_order([(workers["ali"], 100, 10)])
        await client.post(
            f"/api/v1/work-orders/{work_order.id}/transitions",
            json={"event": "mark_complete"},
        )

        response = await client.post(
            f"/api/v1/work-orders/{work_order.id}/transitions",
            json={"event": "approve"},
            headers=APPROVER_HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["work_order"]["status"] == "completed"
        assert body["work_order"]["approved_by"] == "Siti Approver"
        processing = [f for f in body["follow_ups"] if f["event_type"] == "WorkOrderApproved"]
        assert len(processing) == 1
        assert processing[0]["ok"] is True
        assert processing[0]["result"]["success"] is True
        assert processing[0]["result"]["month_key"] == "2025-01"
        assert processing[0]["result"]["workers"] == [workers["ali"].id]

    async def test_guard_failure_is_409(self, client, make_work_order):
        work_order = await make_work_order([], rate_type="work_days")

        response = await client.post(
            f"/api/v1/work-orders/{work_order.id}/transitions",
            json={"event": "mark_complete"},
        )

        assert response.status_code == 409
        assert response.json()["detail"] == {
            "kind": "guard_failure",
            "message": "Cannot submit work order: Please add at least one worker before submitting.",
            "from_state": "ongoing",
            "event": "mark_complete",
        }

    async def test_illegal_transition_is_409(self, client, workers, make_work_order):
        work_order = await make_work_order([(workers["ali"], 10, 10)])

        response = await client.post(
            f"/api/v1/work-orders/{work_order.id}/transitions",
            json={"event": "reject"},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["kind"] == "illegal_transition"

    async def test_unknown_event_is_409(self, client, workers, make_work_order):
        work_order = await make_work_order([(workers["ali"], 10, 10)])

        response = await client.post(
            f"/api/v1/work-orders/{work_order.id}/transitions",
            json={"event": "archive"},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["event"] == "archive"

    async def test_unknown_work_order_is_404(self, client, services):
        response = await client.post(
            "/api/v1/work-orders/999/transitions",
            json={"event": "mark_complete"},
        )

        assert response.status_code == 404
        assert response.json()["code"] == "WORK_ORDER_NOT_FOUND"

    async def test_empty_event_is_rejected(self, client, workers, make_work_order):
        work_order = await make_work_order([(workers["ali"], 10, 10)])

        response = await client.post(
            f"/api/v1/work-orders/{work_order.id}/transitions",
            json={"event": ""},
        )

        assert response.status_code == 422


class TestHistory:
    """Test the history endpoint."""

    async def test_history(self, client, workers, make_work_order, submit_and_approve):
        work_order = await make_work_order([(workers["ali"], 10, 10)])
        await submit_and_approve(work_order)

        response = await client.get(f"/api/v1/work-orders/{work_order.id}/history")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert [i["transition_description"] for i in body["items"]] == [
            "Ongoing → Pending",
            "Pending → Completed",
        ]
        assert body["items"][1]["actor_name"] == "Siti Approver"

    async def test_history_unknown_work_order(self, client, services):
        response = await client.get("/api/v1/work-orders/999/history")
        assert response.status_code == 404


class TestPayCalculations:
    """Test pay calculation endpoints."""

    async def test_month_and_worker_detail(
        self, client, workers, flat_deduction, make_work_order, submit_and_approve
    ):
        work_order = await make_work_order([(workers["ali"], 100, 10)])
        await submit_and_approve(work_order)

        response = await client.get("/api/v1/pay-calculations/2025-01")
        assert response.status_code == 200
        month = response.json()
        assert month["month_year"] == "2025-01"
        assert month["overall_total"] == "978.75"
        assert len(month["details"]) == 1

        response = await client.get(
            f"/api/v1/pay-calculations/2025-01/workers/{workers['ali'].id}"
        )
        assert response.status_code == 200
        detail = response.json()
        assert detail["gross_salary"] == "1000.00"
        assert detail["net_salary"] == "978.75"
        assert detail["deduction_breakdown"]["SOCSO"]["worker"] == "21.25"

    async def test_missing_month_is_404(self, client, services):
        response = await client.get("/api/v1/pay-calculations/2030-02")
        assert response.status_code == 404

    async def test_missing_worker_is_404(self, client, workers):
        response = await client.get(
            f"/api/v1/pay-calculations/2025-01/workers/{workers['ali'].id}"
        )
        assert response.status_code == 404

    async def test_malformed_month_is_422(self, client, services):
        response = await client.get("/api/v1/pay-calculations/2025-13")
        assert response.status_code == 422

    async def test_processing_is_idempotent(
        self, client, workers, make_work_order, submit_and_approve
    ):
        work_order = await make_work_order([(workers["ali"], 10, 10)])
        await submit_and_approve(work_order)

        response = await client.post(f"/api/v1/work-orders/{work_order.id}/pay-calculation")

        assert response.status_code == 200
        assert response.json()["skipped"] is True

    async def test_integrity_failure_is_422(
        self, client, workers, make_work_order, submit_and_approve
    ):
        work_order = await make_work_order([(workers["ali"], 10, None)])
        approval = await submit_and_approve(work_order)
        assert approval.follow_ups[0].result.success is False

        response = await client.post(f"/api/v1/work-orders/{work_order.id}/pay-calculation")

        assert response.status_code == 422
        error = response.json()["detail"]["error"]
        assert error["kind"] == "data_integrity"
        assert error["retryable"] is False
        assert response.json()["detail"]["message"].startswith(
            "Could not complete payroll processing for this work order (ref "
        )

    async def test_processing_unknown_work_order_is_404(self, client, services):
        response = await client.post("/api/v1/work-orders/999/pay-calculation")
        assert response.status_code == 404

    async def test_recalculate(
        self, client, workers, flat_deduction, make_work_order, submit_and_approve
    ):
        work_order = await make_work_order([(workers["ali"], 100, 10)])
        await submit_and_approve(work_order)

        response = await client.post("/api/v1/pay-calculations/2025-01/recalculate")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["workers"] == [workers["ali"].id]


class TestDeductions:
    """Test the active deductions endpoint."""

    async def test_active(self, client, flat_deduction):
        response = await client.get("/api/v1/deductions/active", params={"as_of": "2025-01-31"})

        assert response.status_code == 200
        rules = response.json()
        assert [r["code"] for r in rules] == ["SOCSO"]
        assert rules[0]["worker_amount"] == "21.25"
        assert rules[0]["wage_ranges"] == []

    async def test_before_effective_date(self, client, flat_deduction):
        response = await client.get("/api/v1/deductions/active", params={"as_of": "2019-12-31"})
        assert response.json() == []

    async def test_unknown_nationality_is_400(self, client, flat_deduction):
        response = await client.get(
            "/api/v1/deductions/active", params={"nationality": "martian"}
        )
        assert response.status_code == 400
