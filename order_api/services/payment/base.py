"""
Payment Strategy Abstract Base Class

One strategy per payment method. ``process(order, db)`` builds the Payment
for an order in its initial state; the payment service persists it and
attaches it to the order.

A strategy must not add the payment to the session itself, and any failure
(gateway unreachable, insufficient balance) is raised as a typed
PaymentException before anything is persisted.
"""

from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from order_api.models import Order, Payment, PaymentMethod, PaymentStatus
from order_api.utils import generate_slug, generate_transaction_id


class BasePaymentStrategy(ABC):
    """Abstract base class for payment strategies."""

    @property
    @abstractmethod
    def method(self) -> PaymentMethod:
        """Payment method this strategy handles."""
        pass

    @abstractmethod
    async def process(self, order: Order, db: AsyncSession) -> Payment:
        """
        Build the payment for ``order``.

        Args:
            order: Order being paid
            db: Session of the surrounding initiation transaction

        Returns:
            Payment: Unsaved payment in its initial state
        """
        pass

    def _build_payment(
        self,
        order: Order,
        status_code: PaymentStatus,
        transaction_id: Optional[str] = None,
        qr_code: Optional[str] = None,
        status_message: Optional[str] = None,
    ) -> Payment:
        return Payment(
            slug=generate_slug(),
            transaction_id=transaction_id or generate_transaction_id(),
            order_id=order.id,
            payment_method=self.method,
            amount=order.subtotal,
            status_code=status_code,
            status_message=status_message or status_code.value,
            qr_code=qr_code,
        )
