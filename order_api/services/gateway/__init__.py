"""
Gateway Client Factory

Returns the mock or the real bank-transfer gateway client based on ENV_MODE:
    - ENV_MODE=development → MockGatewayClient (no network calls)
    - ENV_MODE=staging / production → AcbGatewayClient
"""

import logging
from functools import lru_cache

from order_api.core.config import get_settings
from order_api.services.gateway.base import (
    BaseGatewayClient,
    GatewayResponseCode,
    GatewayTransactionStatus,
    QrResult,
    TransactionStatusResult,
)
from order_api.services.gateway.mock import MockGatewayClient
from order_api.services.gateway.acb import AcbGatewayClient

logger = logging.getLogger(__name__)


@lru_cache()
def get_gateway_client() -> BaseGatewayClient:
    """Get the configured gateway client (cached per process)."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Gateway: Using MockGatewayClient (development mode)")
        return MockGatewayClient(
            min_latency=0.1,
            max_latency=0.3,
            account_number=settings.gateway_account_number or "0000000000",
        )

    logger.info(f"Gateway: Using AcbGatewayClient ({settings.env_mode.value} mode)")
    return AcbGatewayClient(settings)


def reset_gateway_client() -> None:
    """Clear the cached client instance."""
    get_gateway_client.cache_clear()


__all__ = [
    "get_gateway_client",
    "reset_gateway_client",
    "BaseGatewayClient",
    "GatewayResponseCode",
    "GatewayTransactionStatus",
    "QrResult",
    "TransactionStatusResult",
    "MockGatewayClient",
    "AcbGatewayClient",
]
