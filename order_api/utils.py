"""
Small helpers shared across the application.
"""

import uuid
from datetime import datetime
from typing import Optional

GATEWAY_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def generate_slug() -> str:
    """Short public identifier for orders, payments and users."""
    return uuid.uuid4().hex[:12]


def generate_transaction_id() -> str:
    """Correlation key shared with the payment gateway."""
    return uuid.uuid4().hex.upper()


def generate_request_trace() -> str:
    return str(uuid.uuid4())


def format_gateway_datetime(value: Optional[datetime] = None) -> str:
    """Format a timestamp the way the gateway expects (local time)."""
    return (value or datetime.now()).strftime(GATEWAY_DATETIME_FORMAT)
