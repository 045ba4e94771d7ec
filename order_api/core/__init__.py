"""
Core module initialization.
Exports configuration, logging and error utilities.
"""

from order_api.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from order_api.core.exceptions import AppException, ErrorCode

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "AppException",
    "ErrorCode",
]
