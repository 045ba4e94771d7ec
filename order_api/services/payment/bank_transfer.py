"""
Bank Transfer Strategy

Creates a pending payment and asks the gateway for a QR payload keyed by a
fresh transaction id. The gateway reports the outcome later through the
callback endpoint, quoting that id as the trace number.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from order_api.models import Order, Payment, PaymentMethod, PaymentStatus
from order_api.services.gateway.base import BaseGatewayClient
from order_api.services.payment.base import BasePaymentStrategy
from order_api.utils import generate_transaction_id

logger = logging.getLogger(__name__)


class BankTransferStrategy(BasePaymentStrategy):

    def __init__(self, gateway: BaseGatewayClient):
        self.gateway = gateway

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod.BANK_TRANSFER

    async def process(self, order: Order, db: AsyncSession) -> Payment:
        transaction_id = generate_transaction_id()

        # Raises GatewayUnavailable; nothing has been persisted yet
        qr = await self.gateway.create_qr(
            transaction_id=transaction_id,
            amount=order.subtotal,
            description=f"ORDER {order.slug}",
        )

        payment = self._build_payment(
            order,
            PaymentStatus.PENDING,
            transaction_id=transaction_id,
            qr_code=qr.qr_code,
        )
        logger.info(
            f"Bank transfer payment {payment.slug} for order {order.slug} "
            f"awaiting transaction {transaction_id} via {self.gateway.provider_name}"
        )
        return payment
