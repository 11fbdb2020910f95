"""Tests for domain events and the async emitter."""

import pytest

from workorder_payroll.events import (
    AsyncEventEmitter,
    EventCategory,
    EventMetadata,
    WorkOrderApproved,
    WorkOrderTransitioned,
)

pytestmark = pytest.mark.asyncio


def approved(work_order_id=1):
    return WorkOrderApproved(
        metadata=EventMetadata(actor_id="u-42", actor_name="Siti Approver"),
        work_order_id=work_order_id,
        month_key="2025-01",
        approved_by="Siti Approver",
    )


class TestDomainEvents:
    """Test event payloads."""

    def test_to_dict(self):
        event = approved(7)
        data = event.to_dict()

        assert data["event_type"] == "WorkOrderApproved"
        assert data["work_order_id"] == 7
        assert data["month_key"] == "2025-01"
        assert data["metadata"]["actor_id"] == "u-42"
        assert isinstance(data["metadata"]["event_id"], str)
        assert isinstance(data["metadata"]["timestamp"], str)

    def test_categories(self):
        transitioned = WorkOrderTransitioned(
            metadata=EventMetadata(),
            work_order_id=1,
            event="approve",
            from_state="pending",
            to_state="completed",
        )
        assert transitioned.category == EventCategory.WORK_ORDER
        assert approved().category == EventCategory.PAYROLL


class TestAsyncEventEmitter:
    """Test handler routing and isolation."""

    async def test_routes_by_type(self):
        emitter = AsyncEventEmitter()
        seen = []

        async def on_approved(event):
            seen.append(("approved", event.work_order_id))
            return "done"

        async def on_transitioned(event):
            seen.append(("transitioned", event.work_order_id))

        emitter.on(WorkOrderApproved, on_approved)
        emitter.on(WorkOrderTransitioned, on_transitioned)

        outcomes = await emitter.emit(approved(3))

        assert seen == [("approved", 3)]
        assert len(outcomes) == 1
        assert outcomes[0].ok
        assert outcomes[0].result == "done"
        assert outcomes[0].event_type == "WorkOrderApproved"

    async def test_no_handlers(self):
        assert await AsyncEventEmitter().emit(approved()) == []

    async def test_failing_handler_is_isolated(self, caplog):
        emitter = AsyncEventEmitter()

        async def broken(event):
            raise ValueError("boom")

        async def working(event):
            return event.work_order_id

        emitter.on_all(broken)
        emitter.on(WorkOrderApproved, working)

        outcomes = await emitter.emit(approved(5))

        assert [o.ok for o in outcomes] == [False, True]
        assert isinstance(outcomes[0].error, ValueError)
        assert outcomes[1].result == 5
        assert any("failed for event WorkOrderApproved" in r.getMessage() for r in caplog.records)

    async def test_off_removes_bound_methods(self):
        class Listener:
            def __init__(self):
                self.calls = 0

            async def handle(self, event):
                self.calls += 1

        listener = Listener()
        emitter = AsyncEventEmitter()
        emitter.on(WorkOrderApproved, listener.handle)

        emitter.off(listener.handle)
        await emitter.emit(approved())

        assert listener.calls == 0
