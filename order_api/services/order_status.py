"""
Order Status Projector

Consumes ``payment.paid`` events and moves the order to ``paid`` when the
settled payment completed. The order's slot is pointed at that payment even
if a later initiation had replaced it. Failed payments leave the order
pending so the customer can pay again.

Replayed events are harmless: the UPDATE only matches a pending order.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_api.events import PAYMENT_PAID, InProcessEventBus, PaymentPaidEvent
from order_api.models import PaymentStatus
from order_api.repositories import OrderRepository, PaymentRepository

logger = logging.getLogger(__name__)


class OrderStatusProjector:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    def register(self, bus: InProcessEventBus) -> None:
        bus.subscribe(PAYMENT_PAID, self.handle)

    async def handle(self, event: PaymentPaidEvent) -> bool:
        """
        Apply one event.

        Returns:
            bool: True if the order status changed
        """
        if PaymentStatus(event.status_code) is not PaymentStatus.COMPLETED:
            logger.info(f"Payment {event.payment_slug} {event.status_code}; order {event.order_id} stays pending")
            return False

        async with self.session_maker() as db:
            payment = await PaymentRepository(db).find_by_slug(event.payment_slug)
            if payment is None or payment.order_id != event.order_id:
                logger.warning(f"Payment {event.payment_slug} does not belong to order {event.order_id}")
                return False
            if payment.status_code is not PaymentStatus.COMPLETED:
                logger.warning(f"Payment {payment.slug} is {payment.status_code.value}; event ignored")
                return False

            orders = OrderRepository(db)
            changed = await orders.mark_paid(event.order_id, payment.id)
            await db.commit()

            if not changed:
                order = await orders.find_by_id(event.order_id)
                if order is not None and order.payment_id != payment.id:
                    # Settled twice at the gateway; the second payment needs a refund
                    logger.warning(
                        f"Order {event.order_id} already settled by payment {order.payment_id}; "
                        f"payment {payment.slug} also completed"
                    )

        if changed:
            logger.info(f"Order {event.order_id} marked paid by payment {event.payment_slug}")
        else:
            logger.debug(f"Order {event.order_id} unchanged by payment {event.payment_slug}")
        return changed
