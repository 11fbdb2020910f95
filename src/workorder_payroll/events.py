"""Domain events and the async emitter that publishes them.

Events are immutable and published only after the transaction that
produced them has committed. Handlers are isolated: a failing handler is
logged and reported, the others still run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar
from uuid import UUID, uuid4

from workorder_payroll.models import utcnow

logger = logging.getLogger(__name__)


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    WORK_ORDER = "work_order"
    PAYROLL = "payroll"


@dataclass(frozen=True)
class EventMetadata:
    """Traceability data attached to every event."""

    event_id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=utcnow)
    actor_id: str | None = None
    actor_name: str | None = None


@dataclass(frozen=True)
class DomainEvent:
    """Base class for domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to a JSON-compatible dictionary."""
        data = _serialize(asdict(self))
        data["event_type"] = self.event_type
        return data


def _serialize(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_serialize(v) for v in obj]
    if isinstance(obj, UUID | Decimal):
        return str(obj)
    if isinstance(obj, datetime | date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return obj


@dataclass(frozen=True)
class WorkOrderTransitioned(DomainEvent):
    """A work order moved between statuses."""

    work_order_id: int
    event: str
    from_state: str
    to_state: str
    remarks: str | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.WORK_ORDER


@dataclass(frozen=True)
class WorkOrderApproved(DomainEvent):
    """A work order reached ``completed`` and may now be paid."""

    work_order_id: int
    month_key: str
    approved_by: str | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


E = TypeVar("E", bound=DomainEvent)
AsyncEventHandler = Callable[[Any], Awaitable[Any]]


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: AsyncEventHandler
    event_types: set[str] | None  # None = all events
    name: str = ""


@dataclass
class HandlerOutcome:
    """What one handler returned, or how it failed."""

    handler: str
    event_type: str
    result: Any = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AsyncEventEmitter:
    """Asynchronous event emitter.

    Usage:
        emitter = AsyncEventEmitter()

        async def handle_approval(event: WorkOrderApproved) -> ProcessingResult:
            return await orchestrator.process(event.work_order_id)

        emitter.on(WorkOrderApproved, handle_approval)
        outcomes = await emitter.emit(event)
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []

    def on(
        self,
        event_type: type[E] | list[type[E]],
        handler: AsyncEventHandler,
    ) -> None:
        """Register async handler for specific event type(s)."""
        if isinstance(event_type, list):
            types = {t.__name__ for t in event_type}
        else:
            types = {event_type.__name__}

        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=types,
                name=getattr(handler, "__qualname__", repr(handler)),
            )
        )

    def on_all(self, handler: AsyncEventHandler) -> None:
        """Register async handler for all events."""
        self._handlers.append(
            HandlerRegistration(
                handler=handler,
                event_types=None,
                name=getattr(handler, "__qualname__", repr(handler)),
            )
        )

    def handler_count(self, event_type: str) -> int:
        """Number of handlers that would receive an event of this type."""
        return sum(
            1 for reg in self._handlers if not reg.event_types or event_type in reg.event_types
        )

    def off(self, handler: AsyncEventHandler) -> None:
        """Unregister a handler."""
        self._handlers = [reg for reg in self._handlers if reg.handler != handler]

    async def emit(self, event: DomainEvent) -> list[HandlerOutcome]:
        """Emit an event to all matching handlers.

        Returns one outcome per matching handler, in registration order.
        """
        matching = [
            reg
            for reg in self._handlers
            if not reg.event_types or event.event_type in reg.event_types
        ]
        if not matching:
            return []

        results = await asyncio.gather(
            *(reg.handler(event) for reg in matching),
            return_exceptions=True,
        )

        outcomes: list[HandlerOutcome] = []
        for reg, result in zip(matching, results):
            if isinstance(result, Exception):
                logger.error(
                    "Handler %s failed for event %s",
                    reg.name,
                    event.event_type,
                    exc_info=result,
                )
                outcomes.append(HandlerOutcome(reg.name, event.event_type, error=result))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(HandlerOutcome(reg.name, event.event_type, result=result))
        return outcomes
