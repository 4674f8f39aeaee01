"""
Cart arithmetic and rendering.

Amounts are integer paise; only the display helpers convert to rupees.
"""

import math
from dataclasses import replace

from order_agent.repositories.catalog import MenuItemRef
from order_agent.services.session.registry import CartLine


def format_amount(cents: int) -> str:
    """Render paise as rupees: 25000 -> "₹250", 25050 -> "₹250.50"."""
    rupees, paise = divmod(cents, 100)
    if paise:
        return f"₹{rupees}.{paise:02d}"
    return f"₹{rupees}"


def add_item(cart: list[CartLine], item: MenuItemRef, quantity: int) -> CartLine:
    """Add quantity of an item, merging with an existing line for the same item."""
    for line in cart:
        if line.item_id == item.item_id:
            line.quantity += quantity
            return line

    line = CartLine(
        item_id=item.item_id,
        title=item.title,
        unit_price_cents=item.price_cents,
        quantity=quantity,
        estimated_time_minutes=item.estimated_time_minutes,
    )
    cart.append(line)
    return line


def remove_item(cart: list[CartLine], item_id: str) -> bool:
    """Drop the line for item_id. Returns False if it was not in the cart."""
    before = len(cart)
    cart[:] = [line for line in cart if line.item_id != item_id]
    return len(cart) != before


def unpaid_lines(cart: list[CartLine], paid: list[CartLine]) -> list[CartLine]:
    """Cart lines left over once the paid quantities are taken out."""
    paid_quantity: dict[str, int] = {}
    for line in paid:
        paid_quantity[line.item_id] = paid_quantity.get(line.item_id, 0) + line.quantity

    remaining = []
    for line in cart:
        left = line.quantity - paid_quantity.get(line.item_id, 0)
        if left > 0:
            remaining.append(replace(line, quantity=left))
    return remaining


def total_cents(cart: list[CartLine]) -> int:
    return sum(line.line_total_cents for line in cart)


def average_estimated_minutes(cart: list[CartLine]) -> int:
    """
    Quantity-weighted average preparation time, rounded up.

    Raises ValueError on an empty cart.
    """
    total_quantity = sum(line.quantity for line in cart)
    if total_quantity == 0:
        raise ValueError("cannot estimate preparation time of an empty cart")
    weighted = sum(line.estimated_time_minutes * line.quantity for line in cart)
    return math.ceil(weighted / total_quantity)


def render_current_order(cart: list[CartLine]) -> str:
    """Numbered cart listing shown after each addition."""
    lines = ["Your Current Order:"]
    for index, line in enumerate(cart, start=1):
        lines.append(
            f"{index}. {line.title} x {line.quantity} = {format_amount(line.line_total_cents)}"
        )
    return "\n".join(lines) + "\n"


def render_summary(cart: list[CartLine]) -> str:
    """Checkout summary with total and estimated waiting time."""
    text = "Order Summary:\n"
    for line in cart:
        text += f"{line.title} x {line.quantity} = {format_amount(line.line_total_cents)}\n"
    text += f"Total Amount: {format_amount(total_cents(cart))}\n"
    text += f"Estimated Waiting Time: {average_estimated_minutes(cart)} minutes\n"
    return text
