"""
Repositories

Thin data-access wrappers over an AsyncSession. State changes that must hold
under concurrent requests are written as conditional UPDATEs whose row count
tells the caller whether it won.

Repositories never commit; the calling service owns the transaction.
"""

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from order_api.models import (
    Order,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    User,
)


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id, populate_existing=True)

    async def find_by_slug(self, slug: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.slug == slug).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def save(self, user: User) -> User:
        self.db.add(user)
        await self.db.flush()
        return user

    async def debit(self, user_id: int, amount: float) -> bool:
        """Subtract ``amount`` only if the balance covers it."""
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.balance >= amount)
            .values(balance=User.balance - amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class OrderRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_slug(self, slug: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(Order.slug == slug).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_id(self, order_id: int) -> Optional[Order]:
        return await self.db.get(Order, order_id, populate_existing=True)

    async def save(self, order: Order) -> Order:
        self.db.add(order)
        await self.db.flush()
        return order

    async def attach_payment(
        self,
        order: Order,
        payment: Payment,
        previous_payment_id: Optional[int],
    ) -> bool:
        """
        Point the order at ``payment`` if its slot still holds
        ``previous_payment_id`` and the order is still pending.
        """
        if previous_payment_id is None:
            slot_unchanged = Order.payment_id.is_(None)
        else:
            slot_unchanged = Order.payment_id == previous_payment_id

        result = await self.db.execute(
            update(Order)
            .where(
                Order.id == order.id,
                Order.status == OrderStatus.PENDING,
                slot_unchanged,
            )
            .values(payment_id=payment.id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_paid(self, order_id: int, payment_id: int) -> bool:
        """
        Move a pending order to paid and point its slot at ``payment_id``.

        A completed payment settles the order even if a later initiation
        replaced it in the slot; only the first completion wins.
        """
        result = await self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == OrderStatus.PENDING,
            )
            .values(status=OrderStatus.PAID, payment_id=payment_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class PaymentRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, payment_id: int) -> Optional[Payment]:
        return await self.db.get(Payment, payment_id, populate_existing=True)

    async def find_by_slug(self, slug: str) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment).where(Payment.slug == slug).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.transaction_id == transaction_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def save(self, payment: Payment) -> Payment:
        self.db.add(payment)
        await self.db.flush()
        return payment

    async def transition(
        self,
        payment: Payment,
        status_code: PaymentStatus,
        status_message: Optional[str] = None,
    ) -> bool:
        """
        Apply pending -> terminal. Returns False when the payment had already
        left pending, in which case nothing is written.
        """
        result = await self.db.execute(
            update(Payment)
            .where(
                Payment.id == payment.id,
                Payment.status_code == PaymentStatus.PENDING,
            )
            .values(
                status_code=status_code,
                status_message=status_message or status_code.value,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def find_stale_pending(
        self,
        older_than: datetime,
        method: PaymentMethod = PaymentMethod.BANK_TRANSFER,
        limit: int = 100,
    ) -> Sequence[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(
                Payment.payment_method == method,
                Payment.status_code == PaymentStatus.PENDING,
                Payment.created_at <= older_than,
            )
            .order_by(Payment.created_at)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def find_completed_for_order(self, order_id: int) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(
                Payment.order_id == order_id,
                Payment.status_code == PaymentStatus.COMPLETED,
            )
            .order_by(Payment.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def find_completed_for_pending_orders(self, limit: int = 100) -> Sequence[Payment]:
        """Completed payments whose order never reached paid."""
        result = await self.db.execute(
            select(Payment)
            .join(Order, Order.id == Payment.order_id)
            .where(
                Order.status == OrderStatus.PENDING,
                Payment.status_code == PaymentStatus.COMPLETED,
            )
            .order_by(Payment.id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()
