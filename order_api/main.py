"""
FastAPI Application Entry Point

Cafe Order API - payment initiation and bank gateway reconciliation.
Uses the mock gateway in development and the real gateway in staging/production.

Endpoints:
    - POST /payments: Initiate a payment for an order
    - GET /payments?transaction=<id>: Look up a payment
    - POST /payments/callback: Bank gateway callback
    - POST /payments/{slug}/export: Queue export to the Excel ledger
    - POST /orders, GET /orders/{slug}: Orders
    - POST /users: Order owners with an internal balance
    - GET /health: System health check
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
import redis

from order_api.core.config import get_settings, setup_logging
from order_api.core.exceptions import AppException, OrderNotFound, PaymentNotFound, UserNotFound
from order_api.database import get_db, get_engine, init_db
from order_api.models import Order, User
from order_api.repositories import OrderRepository, PaymentRepository, UserRepository
from order_api.schemas import (
    CreatePaymentRequest,
    ErrorResponse,
    ExportResponse,
    GatewayCallbackRequest,
    GatewayCallbackResponse,
    HealthResponse,
    OrderCreate,
    OrderResponse,
    PaymentResponse,
    UserCreate,
    UserResponse,
)
from order_api.services.gateway import get_gateway_client
from order_api.services.payment import PaymentService, get_payment_service
from order_api.tasks import export_payment_to_excel
from order_api.utils import generate_slug

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("✅ Database initialized")

    gateway = get_gateway_client()
    logger.info(f"✅ Gateway: {gateway.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("✅ Application ready!")

    yield  # Application runs

    logger.info("Shutting down...")
    await get_engine().dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Café ordering backend: payment initiation by cash, bank transfer (QR) "
        "or internal balance, and bank gateway callback reconciliation."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify all system components are operational."""

    db_status = "healthy"
    try:
        await db.execute(select(func.count(Order.id)))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    gateway_status = "healthy" if await get_gateway_client().health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, gateway_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        gateway=gateway_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# USER & ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Users"],
)
async def create_user(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Create an order owner with an internal balance."""
    user = User(
        slug=generate_slug(),
        name=user_data.name,
        phone=user_data.phone,
        balance=user_data.balance,
    )
    await UserRepository(db).save(user)
    await db.commit()

    logger.info(f"User {user.slug} created")
    return UserResponse.model_validate(user)


@app.post(
    "/orders",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def create_order(
    order_data: OrderCreate,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Create a pending order."""
    owner_id = None
    if order_data.owner_slug:
        owner = await UserRepository(db).find_by_slug(order_data.owner_slug)
        if owner is None:
            raise UserNotFound(f"User {order_data.owner_slug} not found")
        owner_id = owner.id

    subtotal = round(sum(item.total_price for item in order_data.items), 2)
    order = Order(
        slug=generate_slug(),
        owner_id=owner_id,
        items=json.dumps([item.model_dump() for item in order_data.items]),
        subtotal=subtotal,
    )
    await OrderRepository(db).save(order)
    await db.commit()
    await db.refresh(order)

    logger.info(f"Order {order.slug} created - {subtotal:.2f}")
    return OrderResponse.from_order(order, owner_slug=order_data.owner_slug)


@app.get(
    "/orders/{slug}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    slug: str,
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Get an order and its active payment."""
    order = await OrderRepository(db).find_by_slug(slug)
    if order is None:
        raise OrderNotFound(f"Order {slug} not found")

    payment = None
    if order.payment_id is not None:
        payment = await PaymentRepository(db).find_by_id(order.payment_id)

    owner_slug = None
    if order.owner_id is not None:
        owner = await UserRepository(db).find_by_id(order.owner_id)
        owner_slug = owner.slug if owner else None

    return OrderResponse.from_order(order, payment=payment, owner_slug=owner_slug)


# =============================================================================
# PAYMENT ENDPOINTS
# =============================================================================

@app.post(
    "/payments",
    response_model=PaymentResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    tags=["Payments"],
    summary="Initiate Payment",
)
async def initiate_payment(
    request_data: CreatePaymentRequest,
    db: AsyncSession = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentResponse:
    """
    Create a payment for an order.

    Bank transfers return a pending payment with the QR payload to render;
    cash and internal payments are completed immediately.
    """
    payment = await payment_service.initiate(
        db,
        order_slug=request_data.order_slug,
        payment_method=request_data.payment_method,
    )
    return PaymentResponse.model_validate(payment)


@app.get(
    "/payments",
    response_model=PaymentResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Payments"],
)
async def get_specific_payment(
    transaction: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentResponse:
    """Look up a payment by transaction id."""
    query = {"transaction": transaction} if transaction else {}
    payment = await payment_service.get_specific(db, query)
    return PaymentResponse.model_validate(payment)


@app.post(
    "/payments/callback",
    response_model=GatewayCallbackResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Gateway"],
    summary="Bank Gateway Callback",
)
async def gateway_callback(
    request_data: GatewayCallbackRequest,
    db: AsyncSession = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service),
) -> GatewayCallbackResponse:
    """
    Receive a transaction outcome from the bank gateway.

    The gateway may deliver the same notification more than once; replays
    are acknowledged without changing anything.
    """
    logger.info(f"Gateway callback received: trace={request_data.request_trace}")
    return await payment_service.callback(db, request_data)


@app.post(
    "/payments/{slug}/export",
    response_model=ExportResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={404: {"model": ErrorResponse}},
    tags=["Payments"],
)
async def export_payment(
    slug: str,
    db: AsyncSession = Depends(get_db),
) -> ExportResponse:
    """Queue the payment for export to the Excel ledger."""
    payment = await PaymentRepository(db).find_by_slug(slug)
    if payment is None:
        raise PaymentNotFound(f"Payment {slug} not found")
    order = await OrderRepository(db).find_by_id(payment.order_id)

    task = export_payment_to_excel.delay({
        "payment_slug": payment.slug,
        "transaction_id": payment.transaction_id,
        "order_slug": order.slug if order else None,
        "payment_method": payment.payment_method.value,
        "amount": payment.amount,
        "status_code": payment.status_code.value,
        "status_message": payment.status_message,
        "created_at": payment.created_at.isoformat() if payment.created_at else None,
    })

    return ExportResponse(
        success=True,
        message=f"Payment {slug} queued for export",
        task_id=task.id,
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render expected failures as {success, code, message}."""
    logger.warning(f"{request.method} {request.url.path} -> {exc.code} {exc.message}: {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            code=exc.code,
            message=exc.message,
            detail=exc.detail if settings.debug else None,
        ).model_dump(by_alias=True),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    content: dict[str, Any] = {
        "success": False,
        "code": 100000,
        "message": "Internal Server Error",
        "detail": str(exc) if settings.debug else "An unexpected error occurred",
    }
    return JSONResponse(status_code=500, content=content)
