"""
Application Error Codes and Exceptions

Every failure surfaced to API callers carries a stable numeric code and a
message. Codes are grouped by domain:

    130000 - 130999  payment
    131000 - 131999  order
    132000 - 132999  user
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ErrorCode:
    """A stable {code, message} pair."""
    code: int
    message: str

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


def create_error_code(code: int, message: str) -> ErrorCode:
    return ErrorCode(code=code, message=message)


class PaymentValidation:
    PAYMENT_METHOD_INVALID = create_error_code(130000, "Invalid payment method")
    PAYMENT_QUERY_INVALID = create_error_code(130001, "Payment query is invalid")
    TRANSACTION_NOT_FOUND = create_error_code(130002, "Transaction not found")
    PAYMENT_NOT_FOUND = create_error_code(130003, "Payment not found")
    GATEWAY_UNAVAILABLE = create_error_code(130004, "Payment gateway is unavailable")
    INSUFFICIENT_BALANCE = create_error_code(130005, "Insufficient balance")
    PAYMENT_CONFLICT = create_error_code(130006, "Another payment was initiated for this order")


class OrderValidation:
    ORDER_NOT_FOUND = create_error_code(131000, "Order not found")
    ORDER_NOT_PAYABLE = create_error_code(131001, "Order is not awaiting payment")


class UserValidation:
    USER_NOT_FOUND = create_error_code(132000, "User not found")


class AppException(Exception):
    """
    Base class for all expected application failures.

    Attributes:
        error: The {code, message} pair reported to the caller
        status_code: HTTP status used when rendered by the API
        detail: Optional extra context for logs
    """

    error: ErrorCode = create_error_code(100000, "Unexpected error")
    status_code: int = 400

    def __init__(self, detail: Optional[str] = None, error: Optional[ErrorCode] = None):
        if error is not None:
            self.error = error
        self.detail = detail
        super().__init__(detail or self.error.message)

    @property
    def code(self) -> int:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message


class PaymentException(AppException):
    pass


class InvalidPaymentMethod(PaymentException):
    error = PaymentValidation.PAYMENT_METHOD_INVALID


class QueryInvalid(PaymentException):
    error = PaymentValidation.PAYMENT_QUERY_INVALID


class TransactionNotFound(PaymentException):
    error = PaymentValidation.TRANSACTION_NOT_FOUND


class PaymentNotFound(PaymentException):
    error = PaymentValidation.PAYMENT_NOT_FOUND
    status_code = 404


class GatewayUnavailable(PaymentException):
    error = PaymentValidation.GATEWAY_UNAVAILABLE
    status_code = 502


class InsufficientBalance(PaymentException):
    error = PaymentValidation.INSUFFICIENT_BALANCE


class PaymentConflict(PaymentException):
    error = PaymentValidation.PAYMENT_CONFLICT
    status_code = 409


class OrderException(AppException):
    pass


class OrderNotFound(OrderException):
    error = OrderValidation.ORDER_NOT_FOUND
    status_code = 404


class OrderNotPayable(OrderException):
    error = OrderValidation.ORDER_NOT_PAYABLE
    status_code = 409


class UserNotFound(AppException):
    error = UserValidation.USER_NOT_FOUND
    status_code = 404
