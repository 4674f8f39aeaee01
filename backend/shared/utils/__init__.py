"""
Utilities module: Exceptions.
"""

from shared.utils.exceptions import (
    AppException,
    ValidationError,
    NotFoundError,
    PersistenceError,
    GatewayError,
    DispatchError,
)

__all__ = [
    "AppException",
    "ValidationError",
    "NotFoundError",
    "PersistenceError",
    "GatewayError",
    "DispatchError",
]
