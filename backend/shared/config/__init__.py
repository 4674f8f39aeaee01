"""
Configuration module: Settings, logging, constants.
"""

from shared.config.settings import settings, DATABASE_URL
from shared.config.logging import get_logger, setup_logging, mask_phone
from shared.config.constants import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Commands,
    Limits,
)

__all__ = [
    # settings
    "settings",
    "DATABASE_URL",
    # logging
    "get_logger",
    "setup_logging",
    "mask_phone",
    # constants
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "Commands",
    "Limits",
]
