"""
Internal Strategy

Settles against the order owner's internal balance. The debit is a
conditional UPDATE in the initiation transaction, so it is rolled back
together with the payment if anything later fails.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from order_api.core.exceptions import InsufficientBalance
from order_api.models import Order, Payment, PaymentMethod, PaymentStatus
from order_api.repositories import UserRepository
from order_api.services.payment.base import BasePaymentStrategy

logger = logging.getLogger(__name__)


class InternalStrategy(BasePaymentStrategy):

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod.INTERNAL

    async def process(self, order: Order, db: AsyncSession) -> Payment:
        if order.owner_id is None:
            logger.warning(f"Order {order.slug} has no owner to debit")
            raise InsufficientBalance(f"Order {order.slug} has no owner account")

        debited = await UserRepository(db).debit(order.owner_id, order.subtotal)
        if not debited:
            logger.warning(f"Owner {order.owner_id} cannot cover {order.subtotal:.2f} for order {order.slug}")
            raise InsufficientBalance(f"Balance does not cover {order.subtotal:.2f}")

        payment = self._build_payment(order, PaymentStatus.COMPLETED)
        logger.info(f"Internal payment {payment.slug} for order {order.slug} - {order.subtotal:.2f}")
        return payment
