"""
SQLAlchemy Database Models

Tables for the ordering backend:
- users: order owners, with the internal balance used by the internal method
- orders: what is being paid for, and the payment currently attached to it
- payments: one settlement attempt each; never deleted, only superseded
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, Enum, ForeignKey
from sqlalchemy.sql import func
from order_api.database import Base
import enum


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    """How an order is settled."""
    CASH = "cash"
    BANK_TRANSFER = "bank-transfer"
    INTERNAL = "internal"


class PaymentStatus(str, enum.Enum):
    """Payment state machine: pending -> completed | failed."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class User(Base):
    """Customer or staff member who owns orders."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    slug = Column(String(32), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True, index=True)

    # Internal balance, debited by the internal payment method
    balance = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<User {self.slug} - {self.name} - balance={self.balance}>"


class Order(Base):
    """
    An order awaiting or having received payment.

    ``payment_id`` points at the active payment; once paid, at the payment
    that settled the order. Superseded payments keep their ``order_id``.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    slug = Column(String(32), nullable=False, unique=True, index=True)

    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(Text, nullable=False)  # JSON string of ordered items
    subtotal = Column(Float, nullable=False)

    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    # =========================================================================
    # PAYMENT
    # =========================================================================
    payment_id = Column(
        Integer,
        ForeignKey("payments.id", use_alter=True, name="fk_orders_payment_id"),
        nullable=True,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Order {self.slug} - {self.subtotal} - {self.status.value}>"


class Payment(Base):
    """
    A single settlement attempt for one order.

    ``transaction_id`` is the correlation key the gateway echoes back as the
    trace number in its callback.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    slug = Column(String(32), nullable=False, unique=True, index=True)
    transaction_id = Column(String(64), nullable=False, unique=True, index=True)

    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    payment_method = Column(Enum(PaymentMethod), nullable=False)
    amount = Column(Float, nullable=False)

    status_code = Column(
        Enum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True
    )
    status_message = Column(String(255), nullable=True)

    # QR payload returned by the gateway for bank transfers
    qr_code = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Payment {self.slug} - {self.payment_method.value} - {self.status_code.value}>"
