"""
Reply directives and builders.

The conversation engine produces transport-neutral directives; the WhatsApp
dispatcher renders them into API payloads.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Union

from order_agent.repositories.catalog import MenuItemRef
from order_agent.services.conversation.cart import (
    average_estimated_minutes,
    format_amount,
    render_current_order,
)
from order_agent.services.session.registry import CartLine
from shared.config.constants import Commands, Limits

if TYPE_CHECKING:
    from order_agent.models import Order


# =============================================================================
# Directive types
# =============================================================================


@dataclass(frozen=True)
class PlainText:
    body: str


@dataclass(frozen=True)
class ButtonOption:
    id: str
    label: str


@dataclass(frozen=True)
class QuickReplyButtons:
    """Message with up to three reply buttons."""

    body: str
    options: list[ButtonOption]


@dataclass(frozen=True)
class ListRow:
    id: str
    label: str
    description: str = ""


@dataclass(frozen=True)
class ListSection:
    title: str
    rows: list[ListRow]


@dataclass(frozen=True)
class SelectionList:
    """Message that opens a list of selectable rows."""

    header: str
    body: str
    sections: list[ListSection]
    button: str
    footer: str | None = None


Reply = Union[PlainText, QuickReplyButtons, SelectionList]


# =============================================================================
# Message texts
# =============================================================================


class Messages:
    """Fixed customer-facing texts."""

    WELCOME: Final[str] = "Welcome! Please scan the QR code on the table or enter the Hotel ID to proceed:"
    HOTEL_PROMPT_TIMEOUT: Final[str] = "Hotel ID input timed out. Please send 'hi' to start again."
    HOTEL_VERIFIED: Final[str] = "Hotel ID verified. How can we assist you today?"
    HOTEL_INVALID: Final[str] = "Invalid Hotel ID. Please check the Hotel ID and try again:"
    HOTEL_LOOKUP_FAILED: Final[str] = "Error validating Hotel ID. Please try again:"
    DISCONNECTED: Final[str] = "You have been disconnected from the hotel. Please enter a new Hotel ID to proceed:"

    MAIN_MENU_BODY: Final[str] = "How can we assist you today?"
    ORDER_AGAIN_BODY: Final[str] = "Would you like to place another order? Here is the menu:"
    MENU_UNAVAILABLE: Final[str] = "Menu is not available. Please try again later."
    UNKNOWN_ITEM: Final[str] = "Sorry, that item is not on the menu. Please pick an item from the menu list."
    MORE_ITEMS_HINT: Final[str] = "\n\n*You can select more items from the menu which was sent earlier, or choose an option.*"

    NO_ITEMS: Final[str] = "You have no items in your order.\nSend 'hi' to order something."
    CART_EMPTY: Final[str] = "Your order is empty."
    CART_EMPTY_CHECKOUT: Final[str] = "Your order is empty. Please add items to your order."
    ITEM_REMOVED: Final[str] = "Removed item from your order."
    ITEM_NOT_IN_CART: Final[str] = "That item is not in your order."
    CHOOSE_PAYMENT: Final[str] = "\n\nPlease choose a payment method:"

    ORDER_PLACED: Final[str] = "Your order has been placed and will be processed shortly."
    ORDER_SAVE_FAILED: Final[str] = "We couldn't place your order right now. Your items are still in your order, please try again."
    PAYMENT_LINK_FAILED: Final[str] = "Failed to create payment link. Please try again later."
    PAYMENT_RECEIVED: Final[str] = "Payment received successfully! Your order has been placed."
    ITEMS_KEPT: Final[str] = "Items you added after the payment link was sent were not part of this payment and are still in your order."
    PAYMENT_LINK_RESTORED: Final[str] = "You still have an open payment link for this hotel."
    PAYMENT_NOT_COMPLETED: Final[str] = "Payment not completed yet. Please complete the payment using the link below."
    PAYMENT_VERIFY_FAILED: Final[str] = "Failed to verify payment. Please try again later."
    NO_PAYMENT_LINK: Final[str] = "No payment link found. Please try placing the order again."
    CART_CANCELLED: Final[str] = "Your order has been cancelled."

    TRACK_BODY: Final[str] = "Choose an option to track your order:"
    ENTER_ORDER_ID: Final[str] = "Please enter your Order ID:"
    NO_ORDERS: Final[str] = "No orders found."
    ORDER_NOT_FOUND: Final[str] = "No order found with the provided ID."
    CANNOT_CANCEL: Final[str] = "Cannot cancel the order. Either the order does not exist or it is not in a cancellable state."
    LOOKUP_FAILED: Final[str] = "Oops, something went wrong.... Please try again."

    FALLBACK: Final[str] = "Sorry, I didn't understand that.\nPlease type 'Hi' to begin."
    GENERIC_ERROR: Final[str] = "An error occurred. Please try again."
    STATUS_PROMPT: Final[str] = (
        "Click the button below to check your order status or disconnect the hotel.\n"
        "Send 'hi' to place a new order"
    )


# =============================================================================
# Builders
# =============================================================================


def disconnect_button() -> ButtonOption:
    return ButtonOption(Commands.DISCONNECT_HOTEL, "Disconnect Hotel")


def with_status_prompt(body: str) -> list[Reply]:
    """Plain text followed by the order-status / main-menu buttons."""
    return [
        PlainText(body=body),
        QuickReplyButtons(
            body=Messages.STATUS_PROMPT,
            options=[
                ButtonOption(Commands.TRACK_ORDER_STATUS, "Check Order Status"),
                ButtonOption(Commands.MAIN_MENU, "Main Menu"),
                disconnect_button(),
            ],
        ),
    ]


def main_menu(body: str = Messages.MAIN_MENU_BODY) -> SelectionList:
    return SelectionList(
        header="Welcome to Our Food Service",
        body=body,
        button="Choose an option",
        sections=[
            ListSection(
                title="Main Menu",
                rows=[
                    ListRow(Commands.VIEW_MENU, "View Menu", "Browse our delicious menu items"),
                    ListRow(Commands.PLACE_ORDER, "Place Order", "Complete your current order"),
                    ListRow(Commands.EDIT_ORDER, "Edit Order", "Modify or remove items from your order"),
                    ListRow(Commands.TRACK_ORDER_STATUS, "Track Order", "Track the status of your current order"),
                    ListRow(Commands.DISCONNECT_HOTEL, "Disconnect Hotel", "Connect to a different hotel"),
                ],
            )
        ],
    )


def menu_lists(catalog: Sequence[MenuItemRef]) -> list[SelectionList]:
    """
    One list message per category, split into pages of at most
    Limits.MAX_LIST_ROWS rows.
    """
    categories: dict[str, list[MenuItemRef]] = {}
    for item in catalog:
        categories.setdefault(item.category, []).append(item)

    lists = []
    for category, items in categories.items():
        pages = [
            items[start:start + Limits.MAX_LIST_ROWS]
            for start in range(0, len(items), Limits.MAX_LIST_ROWS)
        ]
        for page_number, page in enumerate(pages, start=1):
            lists.append(
                SelectionList(
                    header=category,
                    body=f"Please choose an item from {category}:",
                    footer="Select an item to add to your order",
                    button="Menu Items",
                    sections=[
                        ListSection(
                            title=f"Page {page_number}" if len(page) > 1 else "",
                            rows=[
                                ListRow(
                                    f"{Commands.ITEM_PREFIX}{item.item_id}",
                                    item.title,
                                    format_amount(item.price_cents),
                                )
                                for item in page
                            ],
                        )
                    ],
                )
            )
    return lists


def quantity_list(item: MenuItemRef) -> SelectionList:
    return SelectionList(
        header=f"Select quantity for {item.title}",
        body=f"Choose a quantity for {item.title}:",
        button="Select Quantity",
        sections=[
            ListSection(
                title="Quantities",
                rows=[
                    ListRow(f"{Commands.QTY_PREFIX}{n}", str(n))
                    for n in range(Limits.MIN_QUANTITY, Limits.MAX_QUANTITY_CHOICES + 1)
                ],
            )
        ],
    )


def order_options(body: str) -> QuickReplyButtons:
    """Place / Edit buttons shown while the customer is still adding items."""
    return QuickReplyButtons(
        body=body + Messages.MORE_ITEMS_HINT,
        options=[
            ButtonOption(Commands.PLACE_ORDER, "Place Order"),
            ButtonOption(Commands.EDIT_ORDER, "Edit Order"),
        ],
    )


def item_added(line_title: str, quantity: int, cart: list[CartLine]) -> QuickReplyButtons:
    return order_options(
        f"Added {quantity} x {line_title} to your order.\n{render_current_order(cart)}"
    )


def payment_method_buttons(summary: str) -> QuickReplyButtons:
    return QuickReplyButtons(
        body=summary + Messages.CHOOSE_PAYMENT,
        options=[
            ButtonOption(Commands.PAY_ONLINE, "Pay Online"),
            ButtonOption(Commands.PAY_CASH, "Pay Cash"),
            disconnect_button(),
        ],
    )


def payment_link_buttons(short_link: str, total: int) -> QuickReplyButtons:
    return QuickReplyButtons(
        body=(
            f"Your total bill amount is {format_amount(total)}. "
            f"Please click the link below to pay via Razorpay:\n\n{short_link}"
        ),
        options=[
            ButtonOption(Commands.PAYMENT_COMPLETED, "Payment Completed"),
            ButtonOption(Commands.CANCEL_ORDER, "Cancel Order"),
            disconnect_button(),
        ],
    )


def edit_order_lists(cart: list[CartLine]) -> list[SelectionList]:
    """Removable cart lines, one list message per page of Limits.MAX_LIST_ROWS."""
    pages = [
        cart[start:start + Limits.MAX_LIST_ROWS]
        for start in range(0, len(cart), Limits.MAX_LIST_ROWS)
    ]
    return [
        SelectionList(
            header="Edit Order",
            body="Select an item to remove from your order:",
            footer="Choose an item to remove",
            button="Order Items",
            sections=[
                ListSection(
                    title="Current Order" if len(pages) == 1 else f"Current Order {page_number}",
                    rows=[
                        ListRow(
                            f"{Commands.REMOVE_PREFIX}{line.item_id}",
                            line.title,
                            f"Quantity: {line.quantity}",
                        )
                        for line in page
                    ],
                )
            ],
        )
        for page_number, page in enumerate(pages, start=1)
    ]


def track_options() -> QuickReplyButtons:
    return QuickReplyButtons(
        body=Messages.TRACK_BODY,
        options=[
            ButtonOption(Commands.TRACK_CURRENT_ORDER, "Track Current Order"),
            ButtonOption(Commands.TRACK_ORDER_BY_ID, "Track Order by ID"),
            disconnect_button(),
        ],
    )


def receipt(order: "Order") -> PlainText:
    """Receipt for a freshly persisted order."""
    body = f"Order Receipt:\nOrder ID: {order.order_id}\n\n"
    for item in order.items:
        body += f"{item.title} x {item.quantity} = {format_amount(item.line_total_cents)}\n"
    body += f"\nTotal Amount: {format_amount(order.total_cents)}\n"
    body += f"Payment Method: {order.payment_method}\n"
    body += f"Order Status: {order.status}\n"
    body += f"*Your Order Will Be Ready in* : {average_estimated_minutes(order.items)} minutes\n"
    body += "\nThank you for your order!"
    return PlainText(body=body)
