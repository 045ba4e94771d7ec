"""
Pydantic Schemas for Request/Response Validation

Wire format is camelCase (``orderSlug``, ``transactionId``...). Python code
uses snake_case field names; both are accepted on input.

The gateway callback models mirror the gateway's envelope. Every level is
optional so that a payload without a transaction is reported as
TransactionNotFound rather than a validation error.
"""

import json
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from order_api.models import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# PAYMENT SCHEMAS
# =============================================================================

class CreatePaymentRequest(CamelModel):
    """Request schema for initiating a payment."""
    order_slug: str = Field(..., min_length=1, max_length=32, examples=["3f9a1c2b7d4e"])
    # Validated by the strategy selector so unknown values get a payment error code
    payment_method: str = Field(..., examples=["cash", "bank-transfer", "internal"])


class PaymentResponse(CamelModel):
    """Payment projection returned to clients."""
    slug: str
    transaction_id: str
    payment_method: PaymentMethod
    amount: float
    status_code: PaymentStatus
    status_message: Optional[str] = None
    qr_code: Optional[str] = None
    created_at: Optional[datetime] = None


# =============================================================================
# GATEWAY CALLBACK SCHEMAS
# =============================================================================

class TransactionEntityAttribute(CamelModel):
    trace_number: Optional[str] = None


class CallbackTransaction(CamelModel):
    """One transaction record reported by the gateway."""
    transaction_entity_attribute: Optional[TransactionEntityAttribute] = None
    transaction_status: Optional[str] = None
    amount: Optional[float] = None

    @property
    def trace_number(self) -> Optional[str]:
        if self.transaction_entity_attribute is None:
            return None
        return self.transaction_entity_attribute.trace_number


class CallbackRequestParams(CamelModel):
    transactions: List[CallbackTransaction] = Field(default_factory=list)


class CallbackRequest(CamelModel):
    request_params: Optional[CallbackRequestParams] = None


class CallbackRequestParameters(CamelModel):
    request: Optional[CallbackRequest] = None


class GatewayCallbackRequest(CamelModel):
    """Body the gateway posts when a transaction settles."""
    request_trace: Optional[str] = None
    request_date_time: Optional[str] = None
    request_parameters: Optional[CallbackRequestParameters] = None

    def first_transaction(self) -> Optional[CallbackTransaction]:
        params = self.request_parameters
        if params is None or params.request is None or params.request.request_params is None:
            return None
        transactions = params.request.request_params.transactions
        return transactions[0] if transactions else None


class GatewayResponseStatus(CamelModel):
    response_code: str
    response_message: Optional[str] = None


class GatewayResponseBody(CamelModel):
    index: int = 1
    reference_code: str


class GatewayCallbackResponse(CamelModel):
    """Acknowledgement returned to the gateway; shape fixed by its protocol."""
    request_trace: str
    response_date_time: str
    response_status: GatewayResponseStatus
    response_body: GatewayResponseBody


# =============================================================================
# ORDER & USER SCHEMAS
# =============================================================================

class OrderItemCreate(CamelModel):
    """Single item in an order."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Iced Latte"])
    quantity: int = Field(..., ge=1, le=99, examples=[2])
    unit_price: float = Field(..., gt=0, examples=[45000])

    @property
    def total_price(self) -> float:
        return round(self.quantity * self.unit_price, 2)


class OrderCreate(CamelModel):
    """Request schema for creating an order."""
    owner_slug: Optional[str] = Field(None, max_length=32)
    items: List[OrderItemCreate] = Field(..., min_length=1)


class OrderResponse(CamelModel):
    slug: str
    owner_slug: Optional[str] = None
    items: List[OrderItemCreate]
    subtotal: float
    status: OrderStatus
    payment: Optional[PaymentResponse] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_order(
        cls,
        order: Order,
        payment: Optional[Payment] = None,
        owner_slug: Optional[str] = None,
    ) -> "OrderResponse":
        return cls(
            slug=order.slug,
            owner_slug=owner_slug,
            items=json.loads(order.items),
            subtotal=order.subtotal,
            status=order.status,
            payment=PaymentResponse.model_validate(payment) if payment else None,
            created_at=order.created_at,
        )


class UserCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=100, examples=["Linh Tran"])
    phone: Optional[str] = Field(None, max_length=20)
    balance: float = Field(default=0.0, ge=0)


class UserResponse(CamelModel):
    slug: str
    name: str
    phone: Optional[str] = None
    balance: float


# =============================================================================
# COMMON SCHEMAS
# =============================================================================

class ErrorResponse(CamelModel):
    """Standard error response."""
    success: bool = False
    code: int
    message: str
    detail: Optional[str] = None


class ExportResponse(CamelModel):
    success: bool
    message: str
    task_id: Optional[str] = None


class HealthResponse(CamelModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    gateway: str
    timestamp: datetime
