"""
Cash Strategy

Cash is settled at the counter, so the payment is completed as soon as it is
created. The transaction id is generated locally.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from order_api.models import Order, Payment, PaymentMethod, PaymentStatus
from order_api.services.payment.base import BasePaymentStrategy

logger = logging.getLogger(__name__)


class CashStrategy(BasePaymentStrategy):

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod.CASH

    async def process(self, order: Order, db: AsyncSession) -> Payment:
        payment = self._build_payment(order, PaymentStatus.COMPLETED)
        logger.info(f"Cash payment {payment.slug} for order {order.slug} - {order.subtotal:.2f}")
        return payment
