"""
External service integrations and domain services.

Each integration exposes a factory that picks the mock or the real
implementation based on ENV_MODE.
"""

from order_api.services.gateway import get_gateway_client
from order_api.services.payment import get_payment_service

__all__ = ["get_gateway_client", "get_payment_service"]
