"""
Celery Tasks
Background work for payments:
    - projecting payment.paid events onto orders
    - exporting payments to the Excel ledger
    - reconciling bank transfers whose callback never arrived

Async services run under ``asyncio.run`` with a NullPool engine per task, so
no connection outlives the event loop that opened it.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any

from sqlalchemy.pool import NullPool

from order_api.celery_worker import celery_app
from order_api.core.config import get_settings
from order_api.database import build_engine, build_session_maker
from order_api.events import CeleryEventSink, PaymentPaidEvent
from order_api.services.excel_manager import ExcelManager
from order_api.services.gateway import AcbGatewayClient, get_gateway_client
from order_api.services.order_status import OrderStatusProjector
from order_api.services.payment import PaymentReconciler, build_payment_service

logger = logging.getLogger(__name__)


async def _project(event: PaymentPaidEvent) -> bool:
    engine = build_engine(get_settings().database_url, poolclass=NullPool)
    try:
        return await OrderStatusProjector(build_session_maker(engine)).handle(event)
    finally:
        await engine.dispose()


async def _reconcile() -> dict[str, Any]:
    settings = get_settings()
    engine = build_engine(settings.database_url, poolclass=NullPool)
    session_maker = build_session_maker(engine)

    # The HTTP client is tied to the loop it was created on
    gateway = AcbGatewayClient(settings) if settings.use_real_services else get_gateway_client()
    events = CeleryEventSink() if settings.use_real_services else None

    try:
        service = build_payment_service(gateway, events=events, session_maker=session_maker)
        reconciler = PaymentReconciler(
            service,
            gateway,
            older_than_minutes=settings.reconcile_after_minutes,
            batch_size=settings.reconcile_batch_size,
        )
        async with session_maker() as db:
            report = await reconciler.sweep(db)
        return report.to_dict()
    finally:
        if isinstance(gateway, AcbGatewayClient):
            await gateway.aclose()
        await engine.dispose()


@celery_app.task(
    bind=True,
    max_retries=5,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def project_payment_event(self, event_data: dict) -> dict:
    """
    Apply a payment.paid event to its order.
    Safe to retry: the projection only moves pending orders.
    """
    event = PaymentPaidEvent.from_dict(event_data)
    changed = asyncio.run(_project(event))
    logger.info(f"Task {self.request.id}: order {event.order_id} projected (changed={changed})")
    return {"order_id": event.order_id, "payment_slug": event.payment_slug, "changed": changed}


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def export_payment_to_excel(self, payment_data: dict) -> dict:
    """
    Export a payment to the Excel ledger.

    Args:
        payment_data: Dictionary of ledger columns

    Returns:
        dict: Result of the export operation
    """
    task_id = self.request.id
    slug = payment_data.get('payment_slug', 'unknown')

    logger.info(f"Task {task_id}: Exporting payment {slug}")
    start_time = time.time()

    try:
        result = ExcelManager().export_payment(payment_data)

        elapsed = round(time.time() - start_time, 3)
        result['task_id'] = task_id
        result['processing_time_seconds'] = elapsed

        if result['success']:
            logger.info(f"Task {task_id}: Payment {slug} done in {elapsed}s")
        else:
            logger.warning(f"Task {task_id}: Payment {slug} failed - {result['message']}")

        return result

    except Exception as e:
        elapsed = round(time.time() - start_time, 3)
        logger.error(f"Task {task_id}: Payment {slug} error after {elapsed}s - {e}")

        # Celery will auto-retry based on configuration
        raise


@celery_app.task
def reconcile_pending_payments() -> dict:
    """Poll the gateway for stale pending bank transfers."""
    return asyncio.run(_reconcile())


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
