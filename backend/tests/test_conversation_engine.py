"""
Tests for the conversation state machine.

Drive ConversationEngine.handle turn by turn against a seeded SQLite order
store, a fake payment gateway and a recording dispatcher.
"""

from unittest.mock import AsyncMock

import pytest

from order_agent.services.conversation import replies
from order_agent.services.conversation.replies import (
    Messages,
    PlainText,
    QuickReplyButtons,
    SelectionList,
)
from order_agent.services.messaging.inbound import InboundMessage
from order_agent.services.session import CartLine, ConversationState
from shared.config.constants import Commands, OrderStatus, PaymentMethod, PaymentStatus
from shared.infrastructure.correlation import sender_var
from shared.utils.exceptions import PersistenceError
from tests.conftest import OTHER_SENDER, SENDER


async def bind(conversation, sender=SENDER, hotel="H1"):
    await conversation.handle(sender, "hi")
    return await conversation.handle(sender, hotel)


async def add_to_cart(conversation, item_id="1", quantity=2, sender=SENDER):
    await conversation.handle(sender, f"Item_{item_id}")
    return await conversation.handle(sender, f"Qty_{quantity}")


def option_ids(reply):
    return [option.id for option in reply.options]


# =============================================================================
# Hotel binding
# =============================================================================


class TestHotelBinding:
    """Greeting, hotel id resolution and disconnect."""

    @pytest.mark.asyncio
    async def test_greeting_asks_for_hotel_id(self, conversation):
        result = await conversation.handle(SENDER, "Hi")

        assert result == [PlainText(Messages.WELCOME)]
        assert conversation.registry.get(SENDER).state == ConversationState.AWAITING_HOTEL_ID

    @pytest.mark.asyncio
    async def test_unbound_non_greeting_gets_fallback(self, conversation):
        result = await conversation.handle(SENDER, "ViewMenu")

        assert result == [PlainText(Messages.FALLBACK)]
        assert conversation.registry.get(SENDER).state == ConversationState.UNBOUND

    @pytest.mark.asyncio
    async def test_valid_hotel_id_binds_and_shows_main_menu(self, conversation):
        result = await bind(conversation)

        assert result == [replies.main_menu(Messages.HOTEL_VERIFIED)]
        session = conversation.registry.get(SENDER)
        assert session.tenant_id == "H1"
        assert session.state == ConversationState.IDLE
        # Unavailable items are not loaded
        assert sorted(item.item_id for item in session.catalog) == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_hotel_id_is_trimmed(self, conversation):
        await conversation.handle(SENDER, "hi")
        await conversation.handle(SENDER, "  H1 ")

        assert conversation.registry.get(SENDER).tenant_id == "H1"

    @pytest.mark.asyncio
    async def test_unknown_hotel_id_reprompts(self, conversation):
        await conversation.handle(SENDER, "hi")
        result = await conversation.handle(SENDER, "NOPE")

        assert result == [PlainText(Messages.HOTEL_INVALID)]
        session = conversation.registry.get(SENDER)
        assert session.state == ConversationState.AWAITING_HOTEL_ID
        assert session.is_bound is False

    @pytest.mark.asyncio
    async def test_inactive_hotel_is_rejected(self, conversation):
        await conversation.handle(SENDER, "hi")
        result = await conversation.handle(SENDER, "CLOSED")

        assert result == [PlainText(Messages.HOTEL_INVALID)]

    @pytest.mark.asyncio
    async def test_catalog_failure_reports_lookup_error(self, conversation, catalog_repo):
        catalog_repo.exists = AsyncMock(side_effect=PersistenceError("tenant lookup"))
        await conversation.handle(SENDER, "hi")

        result = await conversation.handle(SENDER, "H1")

        assert result == [PlainText(Messages.HOTEL_LOOKUP_FAILED)]
        assert conversation.registry.get(SENDER).state == ConversationState.AWAITING_HOTEL_ID

    @pytest.mark.asyncio
    async def test_hotel_prompt_times_out(self, conversation, clock):
        await conversation.handle(SENDER, "hi")
        clock.advance(301)

        result = await conversation.handle(SENDER, "H1")

        assert result == [PlainText(Messages.HOTEL_PROMPT_TIMEOUT)]
        session = conversation.registry.get(SENDER)
        assert session.state == ConversationState.UNBOUND
        assert session.is_bound is False

    @pytest.mark.asyncio
    async def test_greeting_after_prompt_timeout_starts_over(self, conversation, clock):
        await conversation.handle(SENDER, "hi")
        clock.advance(301)

        result = await conversation.handle(SENDER, "hi")

        assert result == [PlainText(Messages.WELCOME)]
        assert conversation.registry.get(SENDER).state == ConversationState.AWAITING_HOTEL_ID

    @pytest.mark.asyncio
    async def test_greeting_while_bound_shows_main_menu(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, "hii")

        assert result == [replies.main_menu()]
        assert conversation.registry.get(SENDER).tenant_id == "H1"

    @pytest.mark.asyncio
    async def test_disconnect_clears_binding_and_cart(self, conversation):
        await bind(conversation)
        await add_to_cart(conversation)

        result = await conversation.handle(SENDER, Commands.DISCONNECT_HOTEL)

        assert result == [PlainText(Messages.DISCONNECTED)]
        session = conversation.registry.get(SENDER)
        assert session.is_bound is False
        assert session.cart == []
        assert session.state == ConversationState.AWAITING_HOTEL_ID

    @pytest.mark.asyncio
    async def test_binding_expires_after_an_hour(self, conversation, clock):
        await bind(conversation)
        await add_to_cart(conversation)
        clock.advance(3600)

        result = await conversation.handle(SENDER, Commands.VIEW_MENU)

        assert result == [PlainText(Messages.FALLBACK)]
        session = conversation.registry.get(SENDER)
        assert session.is_bound is False
        assert session.cart == []

    @pytest.mark.asyncio
    async def test_senders_are_independent(self, conversation):
        await bind(conversation, SENDER, "H1")
        await bind(conversation, OTHER_SENDER, "H2")
        await add_to_cart(conversation, sender=SENDER)

        assert conversation.registry.get(SENDER).tenant_id == "H1"
        assert conversation.registry.get(OTHER_SENDER).tenant_id == "H2"
        assert conversation.registry.get(OTHER_SENDER).cart == []


# =============================================================================
# Menu and cart
# =============================================================================


class TestMenuAndCart:
    """Browsing the menu and building the cart."""

    @pytest.mark.asyncio
    async def test_view_menu_sends_one_list_per_category(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, Commands.VIEW_MENU)

        assert all(isinstance(reply, SelectionList) for reply in result)
        assert [reply.header for reply in result] == ["Beverages", "Breakfast", "Main Course"]
        breakfast = result[1]
        row = breakfast.sections[0].rows[0]
        assert row.id == "Item_1"
        assert row.label == "Masala Dosa"
        assert row.description == "₹120"

    @pytest.mark.asyncio
    async def test_selecting_item_asks_for_quantity(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, "Item_1")

        assert len(result) == 1
        rows = result[0].sections[0].rows
        assert [row.id for row in rows] == [f"Qty_{n}" for n in range(1, 11)]
        assert conversation.registry.get(SENDER).state == ConversationState.AWAITING_QUANTITY

    @pytest.mark.asyncio
    async def test_quantity_adds_to_cart(self, conversation):
        await bind(conversation)

        result = await add_to_cart(conversation, "1", 2)

        reply = result[0]
        assert isinstance(reply, QuickReplyButtons)
        assert reply.body.startswith("Added 2 x Masala Dosa to your order.")
        assert "1. Masala Dosa x 2 = ₹240" in reply.body
        assert option_ids(reply) == [Commands.PLACE_ORDER, Commands.EDIT_ORDER]

        session = conversation.registry.get(SENDER)
        assert session.state == ConversationState.IDLE
        assert [(line.item_id, line.quantity) for line in session.cart] == [("1", 2)]

    @pytest.mark.asyncio
    async def test_same_item_twice_merges(self, conversation):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await add_to_cart(conversation, "1", 3)

        cart = conversation.registry.get(SENDER).cart
        assert [(line.item_id, line.quantity) for line in cart] == [("1", 5)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer", ["abc", "Qty_0", "Qty_-1", "Qty_x", "ViewMenu"])
    async def test_invalid_quantity_reprompts(self, conversation, answer):
        await bind(conversation)
        await conversation.handle(SENDER, "Item_1")

        result = await conversation.handle(SENDER, answer)

        assert len(result) == 1
        assert result[0].header == "Select quantity for Masala Dosa"
        session = conversation.registry.get(SENDER)
        assert session.state == ConversationState.AWAITING_QUANTITY
        assert session.cart == []

    @pytest.mark.asyncio
    async def test_disconnect_escapes_quantity_prompt(self, conversation):
        await bind(conversation)
        await conversation.handle(SENDER, "Item_1")

        result = await conversation.handle(SENDER, Commands.DISCONNECT_HOTEL)

        assert result == [PlainText(Messages.DISCONNECTED)]
        assert conversation.registry.get(SENDER).is_bound is False

    @pytest.mark.asyncio
    async def test_unknown_item_is_rejected(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, "Item_4")

        assert result == [PlainText(Messages.UNKNOWN_ITEM)]
        assert conversation.registry.get(SENDER).state == ConversationState.IDLE

    @pytest.mark.asyncio
    async def test_edit_order_lists_cart_lines(self, conversation):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)

        result = await conversation.handle(SENDER, Commands.EDIT_ORDER)

        rows = result[0].sections[0].rows
        assert [(row.id, row.description) for row in rows] == [("Remove_1", "Quantity: 2")]

    @pytest.mark.asyncio
    async def test_edit_order_pages_long_cart(self, conversation):
        await bind(conversation)
        cart = conversation.registry.get(SENDER).cart
        for n in range(12):
            cart.append(CartLine(f"x{n}", f"Dish {n}", 1000, 1, 5))

        result = await conversation.handle(SENDER, Commands.EDIT_ORDER)

        assert [len(page.sections[0].rows) for page in result] == [10, 2]
        assert result[1].sections[0].rows[-1].id == "Remove_x11"

        removed = await conversation.handle(SENDER, "Remove_x11")

        assert removed == [replies.order_options(Messages.ITEM_REMOVED)]
        assert len(cart) == 11

    @pytest.mark.asyncio
    async def test_edit_empty_order(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, Commands.EDIT_ORDER)

        assert result == [PlainText(Messages.CART_EMPTY)]

    @pytest.mark.asyncio
    async def test_remove_item(self, conversation):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await add_to_cart(conversation, "3", 1)

        result = await conversation.handle(SENDER, "Remove_1")

        assert result == [replies.order_options(Messages.ITEM_REMOVED)]
        cart = conversation.registry.get(SENDER).cart
        assert [line.item_id for line in cart] == ["3"]

    @pytest.mark.asyncio
    async def test_remove_item_not_in_cart(self, conversation):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)

        result = await conversation.handle(SENDER, "Remove_2")

        assert result[0] == PlainText(Messages.ITEM_NOT_IN_CART)
        assert isinstance(result[1], SelectionList)
        assert len(conversation.registry.get(SENDER).cart) == 1

    @pytest.mark.asyncio
    async def test_unrecognised_text_while_bound(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, "what's up")

        assert result == replies.with_status_prompt(Messages.FALLBACK)


# =============================================================================
# Checkout
# =============================================================================


class TestCheckout:
    """Placing orders with cash and online payment."""

    @pytest.mark.asyncio
    async def test_place_order_with_empty_cart(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, Commands.PLACE_ORDER)

        assert result == [PlainText(Messages.NO_ITEMS)]

    @pytest.mark.asyncio
    async def test_place_order_shows_summary_and_payment_choice(self, conversation):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)

        result = await conversation.handle(SENDER, Commands.PLACE_ORDER)

        reply = result[0]
        assert reply.body.startswith("Order Summary:\nMasala Dosa x 2 = ₹240\n")
        assert "Total Amount: ₹240" in reply.body
        assert "Estimated Waiting Time: 10 minutes" in reply.body
        assert option_ids(reply) == [
            Commands.PAY_ONLINE,
            Commands.PAY_CASH,
            Commands.DISCONNECT_HOTEL,
        ]
        assert conversation.registry.get(SENDER).state == ConversationState.AWAITING_PAYMENT_METHOD

    @pytest.mark.asyncio
    async def test_pay_cash_persists_order(self, conversation, order_repo):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await add_to_cart(conversation, "2", 1)
        await conversation.handle(SENDER, Commands.PLACE_ORDER)

        result = await conversation.handle(SENDER, Commands.PAY_CASH)

        order = await order_repo.find_latest("H1", SENDER)
        assert order is not None
        assert len(order.order_id) == 8 and order.order_id.isdigit()
        assert order.total_cents == 2 * 12000 + 25000
        assert order.payment_method == PaymentMethod.CASH
        assert order.payment_status == PaymentStatus.PENDING
        assert order.status == OrderStatus.PENDING
        assert order.last_notified_status == OrderStatus.PENDING
        assert [(item.item_id, item.quantity) for item in order.items] == [("1", 2), ("2", 1)]

        receipt, placed = result
        assert f"Order ID: {order.order_id}" in receipt.body
        assert "Total Amount: ₹490" in receipt.body
        assert "Payment Method: Cash" in receipt.body
        assert placed == PlainText(Messages.ORDER_PLACED)

        session = conversation.registry.get(SENDER)
        assert session.cart == []
        assert session.state == ConversationState.IDLE

    @pytest.mark.asyncio
    async def test_pay_cash_with_empty_cart(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, Commands.PAY_CASH)

        assert result == [PlainText(Messages.CART_EMPTY_CHECKOUT)]

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_cart(self, conversation, order_repo):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        order_repo.create = AsyncMock(side_effect=PersistenceError("create order"))

        result = await conversation.handle(SENDER, Commands.PAY_CASH)

        assert result == [PlainText(Messages.ORDER_SAVE_FAILED)]
        assert len(conversation.registry.get(SENDER).cart) == 1

    @pytest.mark.asyncio
    async def test_pay_online_sends_payment_link(self, conversation, gateway):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)

        result = await conversation.handle(SENDER, Commands.PAY_ONLINE)

        assert len(gateway.created) == 1
        created = gateway.created[0]
        assert created["amount_minor"] == 24000
        assert created["currency"] == "INR"
        assert created["customer_ref"] == SENDER

        reply = result[0]
        assert "https://rzp.io/i/plink_1" in reply.body
        assert "₹240" in reply.body
        assert option_ids(reply) == [
            Commands.PAYMENT_COMPLETED,
            Commands.CANCEL_ORDER,
            Commands.DISCONNECT_HOTEL,
        ]

        session = conversation.registry.get(SENDER)
        assert session.state == ConversationState.AWAITING_ONLINE_PAYMENT
        assert session.pending_payment.intent_id == "plink_1"
        assert session.pending_payment.total_cents == 24000

    @pytest.mark.asyncio
    async def test_pay_online_gateway_failure(self, conversation, gateway):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        gateway.fail_create = True

        result = await conversation.handle(SENDER, Commands.PAY_ONLINE)

        assert result == replies.with_status_prompt(Messages.PAYMENT_LINK_FAILED)
        session = conversation.registry.get(SENDER)
        assert session.pending_payment is None
        assert len(session.cart) == 1

    @pytest.mark.asyncio
    async def test_payment_not_completed_resends_link(self, conversation, order_repo):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await conversation.handle(SENDER, Commands.PAY_ONLINE)

        result = await conversation.handle(SENDER, Commands.PAYMENT_COMPLETED)

        assert result[0] == PlainText(Messages.PAYMENT_NOT_COMPLETED)
        assert "https://rzp.io/i/plink_1" in result[1].body
        assert await order_repo.find_latest("H1", SENDER) is None
        assert conversation.registry.get(SENDER).pending_payment is not None

    @pytest.mark.asyncio
    async def test_payment_completed_persists_paid_order(self, conversation, gateway, order_repo):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await conversation.handle(SENDER, Commands.PAY_ONLINE)
        gateway.paid.add("plink_1")

        result = await conversation.handle(SENDER, Commands.PAYMENT_COMPLETED)

        order = await order_repo.find_latest("H1", SENDER)
        assert order.payment_method == PaymentMethod.ONLINE
        assert order.payment_status == PaymentStatus.PAID
        assert order.total_cents == 24000
        assert result[1] == PlainText(Messages.PAYMENT_RECEIVED)

        session = conversation.registry.get(SENDER)
        assert session.cart == []
        assert session.pending_payment is None

    @pytest.mark.asyncio
    async def test_paid_order_uses_cart_from_link_time(self, conversation, gateway, order_repo):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await conversation.handle(SENDER, Commands.PAY_ONLINE)
        # Items added after the link was created are not part of the payment
        await add_to_cart(conversation, "3", 1)
        gateway.paid.add("plink_1")

        await conversation.handle(SENDER, Commands.PAYMENT_COMPLETED)

        order = await order_repo.find_latest("H1", SENDER)
        assert [(item.item_id, item.quantity) for item in order.items] == [("1", 2)]
        assert order.total_cents == 24000

    @pytest.mark.asyncio
    async def test_items_added_after_link_stay_in_cart(self, conversation, gateway):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await conversation.handle(SENDER, Commands.PAY_ONLINE)
        await add_to_cart(conversation, "1", 1)
        await add_to_cart(conversation, "3", 1)
        gateway.paid.add("plink_1")

        result = await conversation.handle(SENDER, Commands.PAYMENT_COMPLETED)

        cart = conversation.registry.get(SENDER).cart
        assert [(line.item_id, line.quantity) for line in cart] == [("1", 1), ("3", 1)]
        assert len(result) == 3
        assert result[2].body.startswith(Messages.ITEMS_KEPT)
        assert option_ids(result[2]) == [Commands.PLACE_ORDER, Commands.EDIT_ORDER]

    @pytest.mark.asyncio
    async def test_payment_link_survives_binding_expiry(
        self, conversation, gateway, order_repo, clock
    ):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        clock.advance(3500)
        await conversation.handle(SENDER, Commands.PAY_ONLINE)
        gateway.paid.add("plink_1")
        clock.advance(200)

        await conversation.handle(SENDER, "hi")
        rebound = await conversation.handle(SENDER, "H1")

        assert rebound[0] == replies.main_menu(Messages.HOTEL_VERIFIED)
        assert rebound[1] == PlainText(Messages.PAYMENT_LINK_RESTORED)
        assert "https://rzp.io/i/plink_1" in rebound[2].body

        result = await conversation.handle(SENDER, Commands.PAYMENT_COMPLETED)

        assert result[1] == PlainText(Messages.PAYMENT_RECEIVED)
        order = await order_repo.find_latest("H1", SENDER)
        assert order.payment_status == PaymentStatus.PAID
        assert [(item.item_id, item.quantity) for item in order.items] == [("1", 2)]
        assert order.total_cents == 24000
        assert gateway.cancelled == []
        assert conversation.registry.get(SENDER).pending_payment is None

    @pytest.mark.asyncio
    async def test_expired_link_cancelled_when_binding_other_hotel(self, conversation, gateway, clock):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await conversation.handle(SENDER, Commands.PAY_ONLINE)
        clock.advance(3600)

        await conversation.handle(SENDER, "hi")
        result = await conversation.handle(SENDER, "H2")

        assert result == [replies.main_menu(Messages.HOTEL_VERIFIED)]
        assert gateway.cancelled == ["plink_1"]
        assert conversation.registry.get(SENDER).pending_payment is None

    @pytest.mark.asyncio
    async def test_payment_verification_failure(self, conversation, gateway):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await conversation.handle(SENDER, Commands.PAY_ONLINE)
        gateway.fail_fetch = True

        result = await conversation.handle(SENDER, Commands.PAYMENT_COMPLETED)

        assert result == replies.with_status_prompt(Messages.PAYMENT_VERIFY_FAILED)
        assert conversation.registry.get(SENDER).pending_payment is not None

    @pytest.mark.asyncio
    async def test_payment_completed_without_link(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, Commands.PAYMENT_COMPLETED)

        assert result == replies.with_status_prompt(Messages.NO_PAYMENT_LINK)

    @pytest.mark.asyncio
    async def test_cancel_cart_cancels_payment_link(self, conversation, gateway):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await conversation.handle(SENDER, Commands.PAY_ONLINE)

        result = await conversation.handle(SENDER, Commands.CANCEL_ORDER)

        assert result == replies.with_status_prompt(Messages.CART_CANCELLED)
        assert gateway.cancelled == ["plink_1"]
        session = conversation.registry.get(SENDER)
        assert session.cart == []
        assert session.pending_payment is None
        assert session.state == ConversationState.IDLE

    @pytest.mark.asyncio
    async def test_cancel_cart_survives_gateway_failure(self, conversation, gateway):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await conversation.handle(SENDER, Commands.PAY_ONLINE)
        gateway.fail_cancel = True

        result = await conversation.handle(SENDER, Commands.CANCEL_ORDER)

        assert result == replies.with_status_prompt(Messages.CART_CANCELLED)
        assert conversation.registry.get(SENDER).pending_payment is None

    @pytest.mark.asyncio
    async def test_switching_to_cash_cancels_open_link(self, conversation, gateway, order_repo):
        await bind(conversation)
        await add_to_cart(conversation, "1", 2)
        await conversation.handle(SENDER, Commands.PAY_ONLINE)

        await conversation.handle(SENDER, Commands.PAY_CASH)

        assert gateway.cancelled == ["plink_1"]
        order = await order_repo.find_latest("H1", SENDER)
        assert order.payment_method == PaymentMethod.CASH
        assert conversation.registry.get(SENDER).pending_payment is None


# =============================================================================
# Tracking and cancellation
# =============================================================================


async def place_cash_order(conversation, order_repo, sender=SENDER, hotel="H1"):
    await add_to_cart(conversation, "1", 1, sender=sender)
    await conversation.handle(sender, Commands.PAY_CASH)
    return await order_repo.find_latest(hotel, sender)


class TestTracking:
    """Order status lookups and customer cancellation."""

    @pytest.mark.asyncio
    async def test_track_options(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, Commands.TRACK_ORDER_STATUS)

        assert result == [replies.track_options()]

    @pytest.mark.asyncio
    async def test_track_current_without_orders(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, Commands.TRACK_CURRENT_ORDER)

        assert result[0].body == Messages.NO_ORDERS

    @pytest.mark.asyncio
    async def test_track_current_pending_order_offers_cancel(self, conversation, order_repo):
        await bind(conversation)
        order = await place_cash_order(conversation, order_repo)

        result = await conversation.handle(SENDER, Commands.TRACK_CURRENT_ORDER)

        reply = result[0]
        assert reply.body.startswith("Wait while your order is being confirmed.")
        assert option_ids(reply) == [f"CancelOrder_{order.order_id}", Commands.DISCONNECT_HOTEL]

    @pytest.mark.asyncio
    async def test_track_current_returns_latest(self, conversation, order_repo):
        await bind(conversation)
        first = await place_cash_order(conversation, order_repo)
        first.status = OrderStatus.READY
        await order_repo.save(first)
        second = await place_cash_order(conversation, order_repo)

        result = await conversation.handle(SENDER, Commands.TRACK_CURRENT_ORDER)

        assert second.order_id != first.order_id
        assert f"CancelOrder_{second.order_id}" in option_ids(result[0])

    @pytest.mark.asyncio
    async def test_track_by_id(self, conversation, order_repo):
        await bind(conversation)
        order = await place_cash_order(conversation, order_repo)
        order.status = OrderStatus.COOKING
        await order_repo.save(order)

        prompt = await conversation.handle(SENDER, Commands.TRACK_ORDER_BY_ID)
        assert prompt == [PlainText(Messages.ENTER_ORDER_ID)]
        assert conversation.registry.get(SENDER).state == ConversationState.AWAITING_ORDER_ID

        result = await conversation.handle(SENDER, f" {order.order_id} ")

        assert result[0].body == "Your food is being prepared."
        assert conversation.registry.get(SENDER).state == ConversationState.IDLE

    @pytest.mark.asyncio
    async def test_track_by_unknown_id(self, conversation):
        await bind(conversation)
        await conversation.handle(SENDER, Commands.TRACK_ORDER_BY_ID)

        result = await conversation.handle(SENDER, "12345678")

        assert result[0].body == Messages.ORDER_NOT_FOUND
        assert conversation.registry.get(SENDER).state == ConversationState.IDLE

    @pytest.mark.asyncio
    async def test_orders_of_other_hotels_are_invisible(self, conversation, order_repo):
        await bind(conversation, hotel="H1")
        order = await place_cash_order(conversation, order_repo)
        await conversation.handle(SENDER, Commands.DISCONNECT_HOTEL)
        await conversation.handle(SENDER, "H2")
        await conversation.handle(SENDER, Commands.TRACK_ORDER_BY_ID)

        result = await conversation.handle(SENDER, order.order_id)

        assert result[0].body == Messages.ORDER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_orders_of_other_senders_are_invisible(self, conversation, order_repo):
        await bind(conversation)
        order = await place_cash_order(conversation, order_repo)
        await bind(conversation, OTHER_SENDER)
        await conversation.handle(OTHER_SENDER, Commands.TRACK_ORDER_BY_ID)

        result = await conversation.handle(OTHER_SENDER, order.order_id)

        assert result[0].body == Messages.ORDER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_terminal_status_offers_order_again(self, conversation, order_repo):
        await bind(conversation)
        order = await place_cash_order(conversation, order_repo)
        order.status = OrderStatus.COMPLETED
        await order_repo.save(order)

        result = await conversation.handle(SENDER, Commands.TRACK_CURRENT_ORDER)

        assert Commands.ORDER_AGAIN in option_ids(result[0])

    @pytest.mark.asyncio
    async def test_cancel_pending_order(self, conversation, order_repo):
        await bind(conversation)
        order = await place_cash_order(conversation, order_repo)

        result = await conversation.handle(SENDER, f"CancelOrder_{order.order_id}")

        assert result == replies.with_status_prompt(
            f"Your order with ID {order.order_id} has been cancelled."
        )
        stored = await order_repo.find_by_id("H1", order.order_id, SENDER)
        assert stored.status == OrderStatus.CANCELLED
        # Already told in the reply; no notifier follow-up
        assert stored.last_notified_status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cannot_cancel_accepted_order(self, conversation, order_repo):
        await bind(conversation)
        order = await place_cash_order(conversation, order_repo)
        order.status = OrderStatus.ACCEPTED
        await order_repo.save(order)

        result = await conversation.handle(SENDER, f"CancelOrder_{order.order_id}")

        assert result == replies.with_status_prompt(Messages.CANNOT_CANCEL)
        stored = await order_repo.find_by_id("H1", order.order_id, SENDER)
        assert stored.status == OrderStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_cannot_cancel_unknown_order(self, conversation):
        await bind(conversation)

        result = await conversation.handle(SENDER, "CancelOrder_12345678")

        assert result == replies.with_status_prompt(Messages.CANNOT_CANCEL)


# =============================================================================
# Delivery
# =============================================================================


class TestDelivery:
    """process() sends replies; failures never escape a turn."""

    @pytest.mark.asyncio
    async def test_process_sends_replies_in_order(self, conversation, dispatcher):
        await conversation.process(InboundMessage(sender=SENDER, text="hi"))

        assert dispatcher.sent == [(SENDER, PlainText(Messages.WELCOME))]

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_contained(self, conversation, dispatcher):
        dispatcher.fail = True

        result = await conversation.process(InboundMessage(sender=SENDER, text="hi"))

        assert result == [PlainText(Messages.WELCOME)]
        assert dispatcher.sent == []
        # The turn still happened
        assert conversation.registry.get(SENDER).state == ConversationState.AWAITING_HOTEL_ID

    @pytest.mark.asyncio
    async def test_unexpected_error_gives_generic_reply(self, conversation, catalog_repo):
        catalog_repo.exists = AsyncMock(side_effect=RuntimeError("boom"))
        await conversation.handle(SENDER, "hi")

        result = await conversation.handle(SENDER, "H1")

        assert result == [PlainText(Messages.GENERIC_ERROR)]

    @pytest.mark.asyncio
    async def test_turn_logs_are_tagged_with_masked_sender(self, conversation, dispatcher):
        seen = []

        async def send(sender, reply):
            seen.append(sender_var.get())

        dispatcher.send = send

        await conversation.process(InboundMessage(sender="919876543210", text="hi"))

        assert seen == ["91******3210"]
        assert sender_var.get() == ""
