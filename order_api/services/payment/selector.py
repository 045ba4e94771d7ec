"""
Payment Strategy Selector

Holds a method -> strategy table and resolves the method requested by the
client.
"""

import logging
from typing import Iterable, Union

from order_api.core.exceptions import InvalidPaymentMethod
from order_api.models import PaymentMethod
from order_api.services.payment.base import BasePaymentStrategy

logger = logging.getLogger(__name__)


class PaymentStrategySelector:

    def __init__(self, strategies: Iterable[BasePaymentStrategy]):
        self._strategies: dict[PaymentMethod, BasePaymentStrategy] = {
            strategy.method: strategy for strategy in strategies
        }

    @property
    def methods(self) -> list[PaymentMethod]:
        return list(self._strategies)

    def select(self, method: Union[PaymentMethod, str]) -> BasePaymentStrategy:
        """
        Raises:
            InvalidPaymentMethod: Unknown or unsupported method
        """
        try:
            strategy = self._strategies[PaymentMethod(method)]
        except (KeyError, ValueError):
            logger.error(f"Invalid payment method: {method!r}")
            raise InvalidPaymentMethod(f"Unsupported payment method: {method!r}")
        return strategy
