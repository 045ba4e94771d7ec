"""
Domain Events

The payment service publishes typed events to an injected sink instead of a
global emitter, so whoever consumes them is wired up explicitly:

    - InProcessEventBus: awaits subscribers in the same process (development, tests)
    - CeleryEventSink: hands the event to a Celery worker (staging, production)
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, asdict
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

PAYMENT_PAID = "payment.paid"


@dataclass(frozen=True)
class PaymentPaidEvent:
    """
    A payment reached a terminal status.

    Attributes:
        order_id: Order the payment belongs to
        payment_slug: Payment that settled
        status_code: Terminal status ("completed" or "failed")
    """
    order_id: int
    payment_slug: str
    status_code: str

    name = PAYMENT_PAID

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentPaidEvent":
        return cls(
            order_id=int(data["order_id"]),
            payment_slug=data["payment_slug"],
            status_code=data["status_code"],
        )


EventHandler = Callable[[PaymentPaidEvent], Awaitable[None]]


class BaseEventSink(ABC):
    """Where the payment service sends its events."""

    @abstractmethod
    async def publish(self, event: PaymentPaidEvent) -> None:
        pass


class InProcessEventBus(BaseEventSink):
    """
    Delivers events to subscribers in the publishing coroutine.

    A failing subscriber is logged and does not stop the others; the payment
    it refers to is already committed.
    """

    def __init__(self):
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self.published: list[PaymentPaidEvent] = []

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        self._handlers[event_name].append(handler)
        logger.debug(f"Subscribed {getattr(handler, '__qualname__', handler)} to {event_name}")

    async def publish(self, event: PaymentPaidEvent) -> None:
        self.published.append(event)
        logger.info(f"Event {event.name}: order={event.order_id} payment={event.payment_slug} status={event.status_code}")

        for handler in self._handlers.get(event.name, []):
            try:
                await handler(event)
            except Exception:
                logger.exception(f"Handler failed for {event.name} (payment {event.payment_slug})")


class CeleryEventSink(BaseEventSink):
    """Queues events for the Celery worker that runs the order projector."""

    async def publish(self, event: PaymentPaidEvent) -> None:
        from order_api.tasks import project_payment_event

        result = project_payment_event.delay(event.to_dict())
        logger.info(f"Queued {event.name} for payment {event.payment_slug} (task {result.id})")
