"""
Payment Gateway Client Abstract Base Class

Defines the interface to the bank-transfer gateway. The gateway issues a QR
payload for each transaction we create, and later reports the transaction's
outcome (by callback, or when asked for its status).

Both MockGatewayClient and AcbGatewayClient implement these methods.
Transport failures are raised as GatewayUnavailable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class GatewayTransactionStatus(str, Enum):
    """Transaction statuses reported by the gateway."""
    COMPLETED = "COMPLETED"
    PENDING = "PENDING"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    NOT_FOUND = "NOT_FOUND"


class GatewayResponseCode(str, Enum):
    """Codes we answer the gateway's callback with."""
    SUCCESS = "SUCCESS"
    BAD_REQUEST = "BAD_REQUEST"


@dataclass
class QrResult:
    """
    QR payload issued for a transaction.

    Attributes:
        transaction_id: Our transaction id, echoed back as trace number
        qr_code: Payload the client renders as a QR image
        response_time_ms: Time taken by the gateway
    """
    transaction_id: str
    qr_code: str
    response_time_ms: float = 0.0


@dataclass
class TransactionStatusResult:
    """Outcome of a status lookup."""
    transaction_id: str
    status: str
    message: Optional[str] = None

    @property
    def is_settled(self) -> bool:
        # Statuses the gateway may add later are treated as still pending
        return self.status in (
            GatewayTransactionStatus.COMPLETED.value,
            GatewayTransactionStatus.FAILED.value,
            GatewayTransactionStatus.CANCELLED.value,
        )


class BaseGatewayClient(ABC):
    """Abstract base class for bank-transfer gateway clients."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def create_qr(
        self,
        transaction_id: str,
        amount: float,
        description: Optional[str] = None,
    ) -> QrResult:
        """
        Request a QR payload for a new transaction.

        Args:
            transaction_id: Correlation key the gateway will echo back
            amount: Amount the customer must transfer
            description: Transfer note shown to the customer

        Raises:
            GatewayUnavailable: The gateway could not be reached or refused
        """
        pass

    @abstractmethod
    async def get_transaction_status(self, transaction_id: str) -> TransactionStatusResult:
        """Look up the gateway's view of a transaction."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify connectivity to the gateway."""
        pass
