"""
Payment Service Factory

Provides a single entry point for obtaining the payment service, wired with
the strategy table, the gateway client for the current ENV_MODE and the
event sink:

    - ENV_MODE=development → MockGatewayClient, in-process event bus with the
      order status projector subscribed
    - ENV_MODE=staging / production → AcbGatewayClient, Celery event sink

Usage:
    from order_api.services.payment import get_payment_service

    payment = await get_payment_service().initiate(db, "3f9a1c2b7d4e", "cash")
"""

import logging
from functools import lru_cache
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_api.core.config import get_settings
from order_api.database import get_session_maker
from order_api.events import BaseEventSink, CeleryEventSink, InProcessEventBus
from order_api.services.gateway import get_gateway_client
from order_api.services.gateway.base import BaseGatewayClient
from order_api.services.order_status import OrderStatusProjector
from order_api.services.payment.base import BasePaymentStrategy
from order_api.services.payment.bank_transfer import BankTransferStrategy
from order_api.services.payment.cash import CashStrategy
from order_api.services.payment.internal import InternalStrategy
from order_api.services.payment.reconciliation import PaymentReconciler, ReconciliationReport
from order_api.services.payment.selector import PaymentStrategySelector
from order_api.services.payment.service import PaymentService, StatusUpdate, map_gateway_status

logger = logging.getLogger(__name__)


def build_payment_service(
    gateway: BaseGatewayClient,
    events: Optional[BaseEventSink] = None,
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> PaymentService:
    """
    Wire a payment service.

    Without an explicit sink, an in-process bus is created and the order
    status projector is subscribed to it using ``session_maker``.
    """
    if events is None:
        bus = InProcessEventBus()
        OrderStatusProjector(session_maker or get_session_maker()).register(bus)
        events = bus

    selector = PaymentStrategySelector([
        CashStrategy(),
        BankTransferStrategy(gateway),
        InternalStrategy(),
    ])
    return PaymentService(selector=selector, events=events)


@lru_cache()
def get_payment_service() -> PaymentService:
    """Get the configured payment service (cached per process)."""
    settings = get_settings()
    gateway = get_gateway_client()

    if settings.use_real_services:
        logger.info(f"Payment events: Celery ({settings.env_mode.value} mode)")
        return build_payment_service(gateway, events=CeleryEventSink())

    logger.info("Payment events: in-process bus (development mode)")
    return build_payment_service(gateway)


def reset_payment_service() -> None:
    """Clear the cached service instance."""
    get_payment_service.cache_clear()


__all__ = [
    "build_payment_service",
    "get_payment_service",
    "reset_payment_service",
    "BasePaymentStrategy",
    "BankTransferStrategy",
    "CashStrategy",
    "InternalStrategy",
    "PaymentReconciler",
    "PaymentService",
    "PaymentStrategySelector",
    "ReconciliationReport",
    "StatusUpdate",
    "map_gateway_status",
]
