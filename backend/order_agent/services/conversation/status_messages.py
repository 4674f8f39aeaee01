"""
Order status to customer message mapping.

Shared by order tracking and the fulfillment notifier so both say the same
thing for the same status.
"""

from shared.config.constants import Commands, OrderStatus

from order_agent.services.conversation.replies import (
    ButtonOption,
    QuickReplyButtons,
    Reply,
    disconnect_button,
)

STATUS_TEXT: dict[str, str] = {
    OrderStatus.ACCEPTED: "Your order is confirmed.",
    OrderStatus.REJECTED: "Sorry to say this, \nWe couldn't complete your order.\nSEND 'hi' to order again.",
    OrderStatus.COOKING: "Your food is being prepared.",
    OrderStatus.READY: "Your order is ready. Please collect your item.",
    OrderStatus.CANCELLED: "Your order was cancelled.",
    OrderStatus.COMPLETED: "Your order has been completed. Thank you!",
    OrderStatus.PENDING: "Wait while your order is being confirmed.",
}

CANCEL_HINT = "\nIf you wish to cancel your order, click the button below."


def is_terminal(status: str) -> bool:
    return status in OrderStatus.TERMINAL


def status_text(status: str) -> str:
    return STATUS_TEXT.get(status, STATUS_TEXT[OrderStatus.PENDING])


def follow_up_buttons(body: str, terminal: bool) -> QuickReplyButtons:
    """Buttons offered after a status message."""
    if terminal:
        options = [
            ButtonOption(Commands.ORDER_AGAIN, "Order Again"),
            ButtonOption(Commands.MAIN_MENU, "Main Menu"),
            disconnect_button(),
        ]
    else:
        options = [
            ButtonOption(Commands.TRACK_ORDER_STATUS, "Check Order Status"),
            ButtonOption(Commands.MAIN_MENU, "Main Menu"),
            disconnect_button(),
        ]
    return QuickReplyButtons(body=body, options=options)


def status_reply(order_id: str, status: str, prefix: str = "") -> Reply:
    """
    Reply describing an order's status.

    Pending orders offer a cancel button bound to the order id; terminal
    statuses offer to order again.
    """
    body = prefix + status_text(status)
    if status == OrderStatus.PENDING:
        return QuickReplyButtons(
            body=body + CANCEL_HINT,
            options=[
                ButtonOption(f"{Commands.CANCEL_ORDER_PREFIX}{order_id}", "Cancel Order"),
                disconnect_button(),
            ],
        )
    return follow_up_buttons(body, terminal=is_terminal(status))
