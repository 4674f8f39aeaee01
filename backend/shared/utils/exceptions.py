"""
Centralized exceptions for consistent error handling.

Every exception logs itself on construction with its context, so callers
that translate an error into a chat reply do not need to log it again.

Usage:
    from shared.utils.exceptions import NotFoundError, GatewayError

    raise NotFoundError("Order", order_id, tenant_id=tenant_id)
    raise GatewayError("create payment link", provider_status=502)
"""

from typing import Any

from fastapi import status

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(Exception):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    ``status_code`` is used when the error escapes to the HTTP layer.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        self.status_code = status_code
        self.detail = detail
        super().__init__(detail)


# =============================================================================
# 400 Validation Errors
# =============================================================================


class ValidationError(AppException):
    """
    Malformed or out-of-range user input (400).

    The conversation re-prompts and keeps its current state.
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="info",
            **log_context,
        )


class UnknownItemError(ValidationError):
    """Selected menu item is not in the session's loaded catalog."""

    def __init__(self, item_id: str, **log_context: Any):
        self.item_id = item_id
        super().__init__(f"Item {item_id} is not on the menu", item_id=item_id, **log_context)


class InvalidQuantityError(ValidationError):
    """Quantity reply is not a positive integer."""

    def __init__(self, raw: str, **log_context: Any):
        super().__init__(f"Invalid quantity {raw!r}", raw=raw, **log_context)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Order", "12345678")
        raise NotFoundError("Tenant", tenant_id)
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} with ID {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="info",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


# =============================================================================
# 500 Internal Errors
# =============================================================================


class PersistenceError(AppException):
    """
    Order store operation failed (500).

    The in-progress cart is kept so the user can retry.
    """

    def __init__(self, operation: str, **log_context: Any):
        self.operation = operation
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database error during {operation}",
            log_level="error",
            operation=operation,
            **log_context,
        )


# =============================================================================
# 502/503 External Service Errors
# =============================================================================


class ExternalServiceError(AppException):
    """Error from an external service (payment provider, messaging API)."""

    def __init__(
        self,
        service: str,
        operation: str,
        detail: str | None = None,
        status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE,
        **log_context: Any,
    ):
        self.service = service
        self.operation = operation
        message = detail or f"{service} failed to {operation}"
        super().__init__(
            status_code=status_code,
            detail=message,
            log_level="error",
            service=service,
            operation=operation,
            **log_context,
        )


class GatewayError(ExternalServiceError):
    """Payment gateway call failed or the circuit is open."""

    def __init__(self, operation: str, detail: str | None = None, **log_context: Any):
        super().__init__(
            "payment_gateway",
            operation,
            detail=detail,
            status_code=status.HTTP_502_BAD_GATEWAY,
            **log_context,
        )


class DispatchError(ExternalServiceError):
    """Outbound message could not be delivered to the messaging transport."""

    def __init__(self, detail: str | None = None, **log_context: Any):
        super().__init__(
            "whatsapp",
            "send message",
            detail=detail,
            status_code=status.HTTP_502_BAD_GATEWAY,
            **log_context,
        )
