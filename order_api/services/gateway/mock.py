"""
Mock Gateway Client

Simulates the bank-transfer gateway without network calls. Used in
development mode (ENV_MODE=development) and in tests.

Behavior:
    - Simulates response times (configurable, zero by default)
    - Optionally fails a fraction of QR requests with GatewayUnavailable
    - Remembers issued transactions; ``settle()`` simulates the customer
      completing (or abandoning) the transfer
"""

import asyncio
import random
import logging
from typing import Optional

from order_api.core.exceptions import GatewayUnavailable
from order_api.services.gateway.base import (
    BaseGatewayClient,
    GatewayTransactionStatus,
    QrResult,
    TransactionStatusResult,
)

logger = logging.getLogger(__name__)


class MockGatewayClient(BaseGatewayClient):
    """
    Mock implementation of the gateway client.

    Attributes:
        failure_rate: Probability that a QR request fails (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds
        account_number: Account encoded in the QR payload
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        account_number: str = "0000000000",
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.account_number = account_number
        self.transactions: dict[str, str] = {}

        logger.info(
            f"MockGatewayClient initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> float:
        latency = random.uniform(self.min_latency, self.max_latency)
        if latency > 0:
            await asyncio.sleep(latency)
        return latency * 1000

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def create_qr(
        self,
        transaction_id: str,
        amount: float,
        description: Optional[str] = None,
    ) -> QrResult:
        latency_ms = await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock: QR request failed (simulated) for {transaction_id}")
            raise GatewayUnavailable("Simulated gateway outage")

        note = (description or transaction_id).replace("|", " ")
        qr_code = f"MOCKQR|{self.account_number}|{amount:.2f}|{transaction_id}|{note}"
        self.transactions[transaction_id] = GatewayTransactionStatus.PENDING.value

        logger.info(f"Mock: QR issued for {transaction_id} - {amount:.2f}")

        return QrResult(
            transaction_id=transaction_id,
            qr_code=qr_code,
            response_time_ms=latency_ms,
        )

    def settle(self, transaction_id: str, status: str = GatewayTransactionStatus.COMPLETED.value) -> None:
        """Simulate the customer's bank reporting the transfer outcome."""
        self.transactions[transaction_id] = status

    async def get_transaction_status(self, transaction_id: str) -> TransactionStatusResult:
        await self._simulate_latency()
        status = self.transactions.get(transaction_id, GatewayTransactionStatus.NOT_FOUND.value)
        return TransactionStatusResult(transaction_id=transaction_id, status=status)

    async def health_check(self) -> bool:
        logger.debug("Mock: Health check passed")
        return True
