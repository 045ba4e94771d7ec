"""
Pending Payment Reconciliation

Callbacks can be lost. This sweep asks the gateway about bank transfers that
have been pending for too long and applies any settled outcome through the
same path as a callback, so idempotency and event publication are identical.

A second step repairs lost projections: a completed payment whose order is
still pending gets its ``payment.paid`` event published again.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from order_api.core.exceptions import GatewayUnavailable
from order_api.repositories import PaymentRepository
from order_api.services.gateway.base import BaseGatewayClient
from order_api.services.payment.service import PaymentService

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    checked: int = 0
    settled: int = 0
    still_pending: int = 0
    republished: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "settled": self.settled,
            "still_pending": self.still_pending,
            "republished": self.republished,
            "errors": list(self.errors),
        }


class PaymentReconciler:

    def __init__(
        self,
        service: PaymentService,
        gateway: BaseGatewayClient,
        older_than_minutes: int = 15,
        batch_size: int = 100,
    ):
        self.service = service
        self.gateway = gateway
        self.older_than = timedelta(minutes=older_than_minutes)
        self.batch_size = batch_size

    async def sweep(
        self,
        db: AsyncSession,
        now: Optional[datetime] = None,
    ) -> ReconciliationReport:
        report = ReconciliationReport()
        await self._settle_stale(db, now, report)
        await self._republish_unprojected(db, report)

        logger.info(
            f"Reconciliation: checked={report.checked} settled={report.settled} "
            f"pending={report.still_pending} republished={report.republished} "
            f"errors={len(report.errors)}"
        )
        return report

    async def _settle_stale(
        self,
        db: AsyncSession,
        now: Optional[datetime],
        report: ReconciliationReport,
    ) -> None:
        cutoff = (now or datetime.now(timezone.utc)) - self.older_than
        stale = await PaymentRepository(db).find_stale_pending(
            older_than=cutoff,
            limit=self.batch_size,
        )
        if not stale:
            logger.info("No pending bank transfers to reconcile")
            return

        # Only the transaction ids are needed once the session starts committing
        transaction_ids = [payment.transaction_id for payment in stale]

        for transaction_id in transaction_ids:
            report.checked += 1
            try:
                result = await self.gateway.get_transaction_status(transaction_id)
            except GatewayUnavailable as e:
                logger.warning(f"Status lookup failed for {transaction_id}: {e}")
                report.errors.append(transaction_id)
                continue

            if not result.is_settled:
                report.still_pending += 1
                continue

            update = await self.service.apply_gateway_status(db, transaction_id, result.status)
            if update.changed:
                report.settled += 1
                logger.info(f"Reconciled {transaction_id} -> {update.status_code.value}")

    async def _republish_unprojected(self, db: AsyncSession, report: ReconciliationReport) -> None:
        unprojected = await PaymentRepository(db).find_completed_for_pending_orders(limit=self.batch_size)

        for payment in unprojected:
            logger.warning(f"Order {payment.order_id} still pending after payment {payment.slug} completed")
            await self.service.publish_paid(payment)
            report.republished += 1
