"""
Payment Reconciliation Service

Owns the payment lifecycle:

    initiate()  order -> strategy -> persisted payment attached to the order
    callback()  gateway notification -> pending payment becomes terminal
    get_specific()  lookup by transaction id

State machine for Payment.status_code:

    pending --(gateway COMPLETED)------> completed
    pending --(gateway anything else)--> failed

completed and failed are terminal. Re-delivered callbacks for a terminal
payment are acknowledged without writing or publishing anything.

Concurrency:
    initiate() is serialized per order slug and callback() per transaction id
    with in-process keyed locks. The repositories' conditional UPDATEs keep
    the same guarantees across worker processes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from order_api.core.exceptions import (
    OrderNotFound,
    OrderNotPayable,
    PaymentConflict,
    PaymentNotFound,
    QueryInvalid,
    TransactionNotFound,
)
from order_api.core.locks import KeyedLock
from order_api.events import BaseEventSink, PaymentPaidEvent
from order_api.models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from order_api.repositories import OrderRepository, PaymentRepository
from order_api.schemas import (
    GatewayCallbackRequest,
    GatewayCallbackResponse,
    GatewayResponseBody,
    GatewayResponseStatus,
)
from order_api.services.gateway.base import GatewayResponseCode, GatewayTransactionStatus
from order_api.services.payment.selector import PaymentStrategySelector
from order_api.utils import format_gateway_datetime, generate_request_trace

logger = logging.getLogger(__name__)


def map_gateway_status(transaction_status: Optional[str]) -> PaymentStatus:
    """COMPLETED -> completed; any other value -> failed."""
    if transaction_status == GatewayTransactionStatus.COMPLETED.value:
        return PaymentStatus.COMPLETED
    return PaymentStatus.FAILED


@dataclass
class StatusUpdate:
    """Result of applying a gateway status to a payment."""
    payment: Payment
    status_code: PaymentStatus
    changed: bool


class PaymentService:
    """
    Coordinates orders, strategies, persistence and event publication.

    Attributes:
        selector: Method -> strategy table
        events: Sink receiving ``payment.paid`` events
    """

    def __init__(
        self,
        selector: PaymentStrategySelector,
        events: BaseEventSink,
    ):
        self.selector = selector
        self.events = events
        self._order_locks = KeyedLock("order")
        self._transaction_locks = KeyedLock("transaction")

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_specific(
        self,
        db: AsyncSession,
        query: Mapping[str, Any],
    ) -> Payment:
        """
        Get a payment by its transaction id.

        Raises:
            QueryInvalid: Empty query
            PaymentNotFound: No payment with that transaction id
        """
        transaction_id = query.get("transaction") if query else None
        if not transaction_id:
            raise QueryInvalid("Query must contain a transaction id")

        payment = await PaymentRepository(db).find_by_transaction_id(transaction_id)
        if payment is None:
            raise PaymentNotFound(f"No payment for transaction {transaction_id}")
        return payment

    # =========================================================================
    # INITIATE
    # =========================================================================

    async def initiate(
        self,
        db: AsyncSession,
        order_slug: str,
        payment_method: Union[PaymentMethod, str],
    ) -> Payment:
        """
        Create a payment for an order with the requested method.

        The order's status is not touched here; terminal payments (cash,
        internal) publish ``payment.paid`` right after commit, the same event
        bank transfers publish from the callback.

        Raises:
            InvalidPaymentMethod: Unknown method
            OrderNotFound: No order with that slug
            OrderNotPayable: Order is not pending or already has a completed payment
            GatewayUnavailable / InsufficientBalance: Strategy failure
            PaymentConflict: A concurrent initiation attached its payment first
        """
        context = f"{PaymentService.__name__}.initiate"
        strategy = self.selector.select(payment_method)

        async with self._order_locks.hold(order_slug):
            orders = OrderRepository(db)
            payments = PaymentRepository(db)

            try:
                order = await orders.find_by_slug(order_slug)
                if order is None:
                    logger.error(f"{context}: Order {order_slug} not found")
                    raise OrderNotFound(f"Order {order_slug} not found")

                previous_payment_id = order.payment_id
                await self._ensure_payable(order, payments)

                payment = await strategy.process(order, db)
                await payments.save(payment)

                attached = await orders.attach_payment(order, payment, previous_payment_id)
                if not attached:
                    logger.error(f"{context}: Order {order_slug} payment slot changed concurrently")
                    raise PaymentConflict(f"Order {order_slug} changed during initiation")

                await db.commit()
            except Exception:
                await db.rollback()
                raise

        await db.refresh(payment)
        logger.info(
            f"{context}: Payment {payment.slug} ({payment.payment_method.value}, "
            f"{payment.status_code.value}) attached to order {order_slug}"
        )

        if payment.status_code.is_terminal:
            await self.publish_paid(payment)

        return payment

    async def _ensure_payable(self, order: Order, payments: PaymentRepository) -> None:
        if order.status != OrderStatus.PENDING:
            raise OrderNotPayable(f"Order {order.slug} is {order.status.value}")

        # Any completed payment settles the order, superseded or not
        paid = await payments.find_completed_for_order(order.id)
        if paid is not None:
            raise OrderNotPayable(f"Order {order.slug} already has completed payment {paid.slug}")

    # =========================================================================
    # CALLBACK
    # =========================================================================

    async def callback(
        self,
        db: AsyncSession,
        request: GatewayCallbackRequest,
    ) -> GatewayCallbackResponse:
        """
        Apply a gateway notification and build the acknowledgement.

        Only the first transaction in the payload is processed.

        Raises:
            TransactionNotFound: Payload carries no transaction
            PaymentNotFound: No payment matches the trace number
        """
        context = f"{PaymentService.__name__}.callback"

        transaction = request.first_transaction()
        if transaction is None or not transaction.trace_number:
            logger.error(f"{context}: Transaction not found in callback {request.request_trace}")
            raise TransactionNotFound("Callback carries no transaction")

        update = await self.apply_gateway_status(
            db,
            transaction.trace_number,
            transaction.transaction_status,
        )

        response_code = (
            GatewayResponseCode.SUCCESS
            if update.status_code == PaymentStatus.COMPLETED
            else GatewayResponseCode.BAD_REQUEST
        )
        return GatewayCallbackResponse(
            request_trace=generate_request_trace(),
            response_date_time=format_gateway_datetime(),
            response_status=GatewayResponseStatus(
                response_code=response_code.value,
                response_message=transaction.transaction_status,
            ),
            response_body=GatewayResponseBody(
                index=1,
                reference_code=update.payment.slug,
            ),
        )

    async def apply_gateway_status(
        self,
        db: AsyncSession,
        transaction_id: str,
        transaction_status: Optional[str],
    ) -> StatusUpdate:
        """
        Move the payment for ``transaction_id`` to the terminal status the
        gateway reported, publishing ``payment.paid`` if this call made the
        transition. Shared by callbacks and the reconciliation sweep.

        Raises:
            PaymentNotFound: No payment with that transaction id
        """
        context = f"{PaymentService.__name__}.apply_gateway_status"
        status_code = map_gateway_status(transaction_status)

        async with self._transaction_locks.hold(transaction_id):
            payments = PaymentRepository(db)

            payment = await payments.find_by_transaction_id(transaction_id)
            if payment is None:
                logger.error(f"{context}: Payment not found for transaction {transaction_id}")
                raise PaymentNotFound(f"No payment for transaction {transaction_id}")

            if payment.status_code.is_terminal:
                self._log_replay(payment, status_code)
                return StatusUpdate(payment=payment, status_code=status_code, changed=False)

            try:
                changed = await payments.transition(payment, status_code)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

            await db.refresh(payment)

        if not changed:
            # Another worker settled it between our read and our UPDATE
            self._log_replay(payment, status_code)
            return StatusUpdate(payment=payment, status_code=status_code, changed=False)

        logger.info(f"{context}: Payment {payment.slug} {status_code.value} (transaction {transaction_id})")
        await self.publish_paid(payment)
        return StatusUpdate(payment=payment, status_code=status_code, changed=True)

    def _log_replay(self, payment: Payment, status_code: PaymentStatus) -> None:
        if payment.status_code == status_code:
            logger.info(f"Payment {payment.slug} already {status_code.value}; callback ignored")
        else:
            logger.warning(
                f"Payment {payment.slug} is {payment.status_code.value}; "
                f"ignoring gateway report of {status_code.value}"
            )

    async def publish_paid(self, payment: Payment) -> None:
        """Emit payment.paid for a terminal payment."""
        await self.events.publish(
            PaymentPaidEvent(
                order_id=payment.order_id,
                payment_slug=payment.slug,
                status_code=payment.status_code.value,
            )
        )
