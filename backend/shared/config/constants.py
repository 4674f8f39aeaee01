"""
Centralized constants for the ordering agent.
Avoid magic strings for order statuses and conversation command ids.

Usage:
    from shared.config.constants import OrderStatus, Commands

    if order.status == OrderStatus.PENDING:
        ...

    if text == Commands.PLACE_ORDER:
        ...
"""

from typing import Final


# =============================================================================
# Order Status Constants
# =============================================================================


class OrderStatus:
    """
    Order status constants.

    Values are stored verbatim in the order table and written by the
    fulfillment side (kitchen staff or the CLI), hence the capitalised form.
    """

    PENDING: Final[str] = "Pending"
    ACCEPTED: Final[str] = "Accepted"
    REJECTED: Final[str] = "Rejected"
    COOKING: Final[str] = "Cooking"
    READY: Final[str] = "Ready"
    CANCELLED: Final[str] = "Cancelled"
    COMPLETED: Final[str] = "Completed"

    ALL: Final[list[str]] = [PENDING, ACCEPTED, REJECTED, COOKING, READY, CANCELLED, COMPLETED]
    # No further updates are expected for these
    TERMINAL: Final[list[str]] = [READY, REJECTED, CANCELLED, COMPLETED]
    # The customer may still cancel from these
    CANCELLABLE: Final[list[str]] = [PENDING]


class PaymentMethod:
    """Payment method constants."""

    CASH: Final[str] = "Cash"
    ONLINE: Final[str] = "Online"

    ALL: Final[list[str]] = [CASH, ONLINE]


class PaymentStatus:
    """Payment status constants."""

    PENDING: Final[str] = "Pending"
    PAID: Final[str] = "Paid"
    FAILED: Final[str] = "Failed"

    ALL: Final[list[str]] = [PENDING, PAID, FAILED]


# =============================================================================
# Conversation Commands (button / list reply ids)
# =============================================================================


class Commands:
    """Reply ids sent back by interactive buttons and list rows."""

    GREETINGS: Final[frozenset[str]] = frozenset({"hi", "hii", "start"})

    VIEW_MENU: Final[str] = "ViewMenu"
    PLACE_ORDER: Final[str] = "PlaceOrder"
    EDIT_ORDER: Final[str] = "EditOrder"
    PAY_CASH: Final[str] = "PayCash"
    PAY_ONLINE: Final[str] = "PayOnline"
    PAYMENT_COMPLETED: Final[str] = "PaymentCompleted"
    CANCEL_ORDER: Final[str] = "CancelOrder"
    TRACK_ORDER_STATUS: Final[str] = "TrackOrderStatus"
    TRACK_CURRENT_ORDER: Final[str] = "TrackCurrentOrder"
    TRACK_ORDER_BY_ID: Final[str] = "TrackOrderByID"
    DISCONNECT_HOTEL: Final[str] = "DisconnectHotel"
    MAIN_MENU: Final[str] = "MainMenu"
    ORDER_AGAIN: Final[str] = "OrderAgain"

    # Prefixed ids carry a payload after the prefix
    ITEM_PREFIX: Final[str] = "Item_"
    QTY_PREFIX: Final[str] = "Qty_"
    REMOVE_PREFIX: Final[str] = "Remove_"
    CANCEL_ORDER_PREFIX: Final[str] = "CancelOrder_"


# =============================================================================
# Validation Constants
# =============================================================================


class Limits:
    """Conversation and order limits."""

    # Quantity list offered after an item is picked
    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY_CHOICES: Final[int] = 10

    # WhatsApp interactive message limits
    MAX_LIST_ROWS: Final[int] = 10
    MAX_BUTTONS: Final[int] = 3
    MAX_BUTTON_LABEL_LENGTH: Final[int] = 20
    MAX_ROW_TITLE_LENGTH: Final[int] = 24
    MAX_ROW_DESCRIPTION_LENGTH: Final[int] = 72
    MAX_SECTION_TITLE_LENGTH: Final[int] = 24

    # Menu defaults
    DEFAULT_ESTIMATED_TIME_MINUTES: Final[int] = 15

    # Order ids are 8-digit numbers
    ORDER_ID_MIN: Final[int] = 10_000_000
    ORDER_ID_MAX: Final[int] = 99_999_999
    ORDER_ID_ATTEMPTS: Final[int] = 5

    # Hotel identifiers
    MAX_TENANT_ID_LENGTH: Final[int] = 100
