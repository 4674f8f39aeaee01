"""
Conversation State Machine.

Consumes one inbound message for a sender, mutates that sender's session
(and, at checkout, the order store) and returns the replies to send.

Dispatch order for a bound sender:
1. AWAITING_QUANTITY: only a quantity (or DisconnectHotel) is accepted
2. AWAITING_ORDER_ID: the text is taken as an order id (or DisconnectHotel)
3. otherwise free dispatch on the command id or its prefix
"""

from __future__ import annotations

import copy
from collections.abc import Awaitable, Callable

from order_agent.models import Order
from order_agent.repositories.catalog import CatalogRepository, MenuItemRef
from order_agent.repositories.order import OrderDraft, OrderRepository, generate_order_id
from order_agent.services.conversation import cart as cart_ops
from order_agent.services.conversation import replies
from order_agent.services.conversation.replies import Messages, PlainText, Reply
from order_agent.services.conversation.status_messages import follow_up_buttons, status_reply
from order_agent.services.messaging.dispatcher import ReplyDispatcher
from order_agent.services.messaging.inbound import InboundMessage
from order_agent.services.payments.gateway import PaymentGateway
from order_agent.services.session.registry import (
    ConversationState,
    PendingPayment,
    Session,
    SessionRegistry,
)
from shared.config.constants import Commands, Limits, OrderStatus, PaymentMethod, PaymentStatus
from shared.config.logging import get_logger, mask_phone
from shared.config.settings import settings
from shared.infrastructure.correlation import sender_context
from shared.utils.exceptions import (
    DispatchError,
    GatewayError,
    InvalidQuantityError,
    NotFoundError,
    PersistenceError,
    UnknownItemError,
)

logger = get_logger(__name__)

Handler = Callable[[Session], Awaitable[list[Reply]]]


class ConversationEngine:
    """
    Per-sender ordering workflow.

    Usage:
        engine = ConversationEngine(registry, catalog, orders, gateway, dispatcher)
        await engine.process(InboundMessage(sender="9198...", text="hi"))

    ``handle`` returns the replies without sending them and is what the
    tests drive directly.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        catalog: CatalogRepository,
        orders: OrderRepository,
        gateway: PaymentGateway,
        dispatcher: ReplyDispatcher | None = None,
        currency: str | None = None,
    ):
        self._registry = registry
        self._catalog = catalog
        self._orders = orders
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._currency = currency or settings.payment_currency

        self._commands: dict[str, Handler] = {
            Commands.VIEW_MENU: self._view_menu,
            Commands.PLACE_ORDER: self._place_order,
            Commands.EDIT_ORDER: self._edit_order,
            Commands.MAIN_MENU: self._main_menu,
            Commands.ORDER_AGAIN: self._order_again,
            Commands.TRACK_ORDER_STATUS: self._track_options,
            Commands.TRACK_CURRENT_ORDER: self._track_current,
            Commands.TRACK_ORDER_BY_ID: self._ask_order_id,
            Commands.PAY_CASH: self._pay_cash,
            Commands.PAY_ONLINE: self._pay_online,
            Commands.PAYMENT_COMPLETED: self._payment_completed,
            Commands.CANCEL_ORDER: self._cancel_cart,
            Commands.DISCONNECT_HOTEL: self._disconnect,
        }

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    # =========================================================================
    # Entry points
    # =========================================================================

    async def process(self, message: InboundMessage) -> list[Reply]:
        """Handle an inbound message and send the replies."""
        with sender_context(message.sender):
            result = await self.handle(message.sender, message.text)
            await self._deliver(message.sender, result)
        return result

    async def handle(self, sender: str, text: str) -> list[Reply]:
        """Run one conversation turn and return the replies."""
        session = self._registry.touch(sender)
        try:
            return await self._dispatch(session, text)
        except Exception:
            logger.error(
                "Failed to handle message",
                sender=mask_phone(sender),
                text=text,
                state=session.state.value,
                exc_info=True,
            )
            return [PlainText(Messages.GENERIC_ERROR)]

    async def _deliver(self, sender: str, result: list[Reply]) -> None:
        if self._dispatcher is None:
            return
        for index, reply in enumerate(result):
            try:
                await self._dispatcher.send(sender, reply)
            except DispatchError:
                # Later replies depend on earlier ones; stop at the first failure
                logger.warning(
                    "Reply not delivered",
                    sender=mask_phone(sender),
                    undelivered=len(result) - index,
                )
                return

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _dispatch(self, session: Session, text: str) -> list[Reply]:
        stripped = text.strip()
        is_greeting = stripped.lower() in Commands.GREETINGS

        if self._registry.hotel_prompt_expired(session):
            self._registry.expire_hotel_prompt(session.sender)
            if not is_greeting:
                return [PlainText(Messages.HOTEL_PROMPT_TIMEOUT)]

        if not session.is_bound:
            if is_greeting:
                return self._start(session)
            if session.state == ConversationState.AWAITING_HOTEL_ID:
                return await self._resolve_hotel(session, stripped)
            return [PlainText(Messages.FALLBACK)]

        if session.state == ConversationState.AWAITING_QUANTITY:
            if stripped == Commands.DISCONNECT_HOTEL:
                return await self._disconnect(session)
            return self._receive_quantity(session, stripped)

        if session.state == ConversationState.AWAITING_ORDER_ID:
            if stripped == Commands.DISCONNECT_HOTEL:
                return await self._disconnect(session)
            return await self._track_by_id(session, stripped)

        if is_greeting:
            return [replies.main_menu()]

        handler = self._commands.get(stripped)
        if handler is not None:
            return await handler(session)

        if stripped.startswith(Commands.ITEM_PREFIX):
            return self._select_item(session, stripped[len(Commands.ITEM_PREFIX):])
        if stripped.startswith(Commands.REMOVE_PREFIX):
            return self._remove_item(session, stripped[len(Commands.REMOVE_PREFIX):])
        if stripped.startswith(Commands.CANCEL_ORDER_PREFIX):
            return await self._cancel_placed_order(
                session, stripped[len(Commands.CANCEL_ORDER_PREFIX):]
            )

        return replies.with_status_prompt(Messages.FALLBACK)

    # =========================================================================
    # Hotel binding
    # =========================================================================

    def _start(self, session: Session) -> list[Reply]:
        self._registry.arm_hotel_prompt(session.sender, self._notify_prompt_timeout)
        return [PlainText(Messages.WELCOME)]

    async def _resolve_hotel(self, session: Session, candidate: str) -> list[Reply]:
        if not candidate or len(candidate) > Limits.MAX_TENANT_ID_LENGTH:
            return [PlainText(Messages.HOTEL_INVALID)]

        try:
            if not await self._catalog.exists(candidate):
                logger.info("Unknown hotel id", sender=mask_phone(session.sender), tenant_id=candidate)
                return [PlainText(Messages.HOTEL_INVALID)]
            menu = await self._catalog.list_available(candidate)
        except PersistenceError:
            return [PlainText(Messages.HOTEL_LOOKUP_FAILED)]

        stale = session.pending_payment
        if stale is not None and stale.tenant_id != candidate:
            # Link from an expired binding to another hotel
            await self._cancel_intent(stale.intent_id)

        session = self._registry.bind(session.sender, candidate, menu)
        result: list[Reply] = [replies.main_menu(Messages.HOTEL_VERIFIED)]
        pending = session.pending_payment
        if pending is not None:
            result.append(PlainText(Messages.PAYMENT_LINK_RESTORED))
            result.append(replies.payment_link_buttons(pending.short_link, pending.total_cents))
        return result

    async def _disconnect(self, session: Session) -> list[Reply]:
        logger.info(
            "Sender disconnected from hotel",
            sender=mask_phone(session.sender),
            tenant_id=session.tenant_id,
        )
        self._registry.clear(session.sender)
        self._registry.arm_hotel_prompt(session.sender, self._notify_prompt_timeout)
        return [PlainText(Messages.DISCONNECTED)]

    async def _notify_prompt_timeout(self, sender: str) -> None:
        if self._dispatcher is not None:
            await self._dispatcher.send(sender, PlainText(Messages.HOTEL_PROMPT_TIMEOUT))

    # =========================================================================
    # Menu and cart
    # =========================================================================

    async def _main_menu(self, session: Session) -> list[Reply]:
        return [replies.main_menu()]

    async def _order_again(self, session: Session) -> list[Reply]:
        return [replies.main_menu(Messages.ORDER_AGAIN_BODY)]

    async def _view_menu(self, session: Session) -> list[Reply]:
        if not session.catalog:
            return replies.with_status_prompt(Messages.MENU_UNAVAILABLE)
        return list(replies.menu_lists(session.catalog))

    @staticmethod
    def _require_item(session: Session, item_id: str) -> MenuItemRef:
        item = session.find_item(item_id)
        if item is None:
            raise UnknownItemError(item_id, tenant_id=session.tenant_id)
        return item

    def _select_item(self, session: Session, item_id: str) -> list[Reply]:
        try:
            item = self._require_item(session, item_id)
        except UnknownItemError:
            return [PlainText(Messages.UNKNOWN_ITEM)]

        session.pending_item = item
        session.state = ConversationState.AWAITING_QUANTITY
        return [replies.quantity_list(item)]

    def _receive_quantity(self, session: Session, text: str) -> list[Reply]:
        item = session.pending_item
        if item is None:
            session.state = ConversationState.IDLE
            return replies.with_status_prompt(Messages.FALLBACK)

        try:
            quantity = self._parse_quantity(text)
        except InvalidQuantityError:
            return [replies.quantity_list(item)]

        cart_ops.add_item(session.cart, item, quantity)
        session.pending_item = None
        session.state = ConversationState.IDLE
        return [replies.item_added(item.title, quantity, session.cart)]

    @staticmethod
    def _parse_quantity(text: str) -> int:
        if not text.startswith(Commands.QTY_PREFIX):
            raise InvalidQuantityError(text)
        raw = text[len(Commands.QTY_PREFIX):]
        try:
            quantity = int(raw)
        except ValueError:
            raise InvalidQuantityError(text) from None
        if quantity < Limits.MIN_QUANTITY:
            raise InvalidQuantityError(text)
        return quantity

    def _remove_item(self, session: Session, item_id: str) -> list[Reply]:
        if not session.cart:
            return [PlainText(Messages.CART_EMPTY)]
        if not cart_ops.remove_item(session.cart, item_id):
            return [PlainText(Messages.ITEM_NOT_IN_CART), *replies.edit_order_lists(session.cart)]
        return [replies.order_options(Messages.ITEM_REMOVED)]

    async def _edit_order(self, session: Session) -> list[Reply]:
        if not session.cart:
            return [PlainText(Messages.CART_EMPTY)]
        return list(replies.edit_order_lists(session.cart))

    # =========================================================================
    # Checkout
    # =========================================================================

    async def _place_order(self, session: Session) -> list[Reply]:
        if not session.cart:
            return [PlainText(Messages.NO_ITEMS)]
        session.state = ConversationState.AWAITING_PAYMENT_METHOD
        return [replies.payment_method_buttons(cart_ops.render_summary(session.cart))]

    async def _pay_cash(self, session: Session) -> list[Reply]:
        if not session.cart:
            return [PlainText(Messages.CART_EMPTY_CHECKOUT)]

        # Switching from an unpaid online link to cash
        if session.pending_payment is not None:
            await self._cancel_intent(session.pending_payment.intent_id)
            session.pending_payment = None

        draft = OrderDraft(
            sender=session.sender,
            lines=list(session.cart),
            total_cents=cart_ops.total_cents(session.cart),
            payment_method=PaymentMethod.CASH,
            payment_status=PaymentStatus.PENDING,
        )
        try:
            order = await self._orders.create(session.tenant_id, draft)
        except PersistenceError:
            return [PlainText(Messages.ORDER_SAVE_FAILED)]

        session.cart = []
        session.state = ConversationState.IDLE
        return [replies.receipt(order), PlainText(Messages.ORDER_PLACED)]

    async def _pay_online(self, session: Session) -> list[Reply]:
        if not session.cart:
            return [PlainText(Messages.CART_EMPTY_CHECKOUT)]

        if session.pending_payment is not None:
            await self._cancel_intent(session.pending_payment.intent_id)
            session.pending_payment = None

        total = cart_ops.total_cents(session.cart)
        try:
            intent = await self._gateway.create_intent(
                total,
                self._currency,
                session.sender,
                reference=generate_order_id(),
            )
        except GatewayError:
            return replies.with_status_prompt(Messages.PAYMENT_LINK_FAILED)

        session.pending_payment = PendingPayment(
            intent_id=intent.intent_id,
            short_link=intent.short_link,
            total_cents=total,
            lines=copy.deepcopy(session.cart),
            tenant_id=session.tenant_id,
        )
        session.state = ConversationState.AWAITING_ONLINE_PAYMENT
        return [replies.payment_link_buttons(intent.short_link, total)]

    async def _payment_completed(self, session: Session) -> list[Reply]:
        pending = session.pending_payment
        if pending is None:
            return replies.with_status_prompt(Messages.NO_PAYMENT_LINK)

        try:
            status = await self._gateway.fetch_status(pending.intent_id)
        except GatewayError:
            return replies.with_status_prompt(Messages.PAYMENT_VERIFY_FAILED)

        if not status.paid:
            return [
                PlainText(Messages.PAYMENT_NOT_COMPLETED),
                replies.payment_link_buttons(pending.short_link, pending.total_cents),
            ]

        draft = OrderDraft(
            sender=session.sender,
            lines=pending.lines or list(session.cart),
            total_cents=pending.total_cents,
            payment_method=PaymentMethod.ONLINE,
            payment_status=PaymentStatus.PAID,
        )
        try:
            order = await self._orders.create(pending.tenant_id or session.tenant_id, draft)
        except PersistenceError:
            # Keep the pending payment so PaymentCompleted can be retried
            return [PlainText(Messages.ORDER_SAVE_FAILED)]

        session.cart = cart_ops.unpaid_lines(session.cart, draft.lines)
        session.pending_payment = None
        session.state = ConversationState.IDLE
        result: list[Reply] = [replies.receipt(order), PlainText(Messages.PAYMENT_RECEIVED)]
        if session.cart:
            result.append(
                replies.order_options(
                    f"{Messages.ITEMS_KEPT}\n{cart_ops.render_current_order(session.cart)}"
                )
            )
        return result

    async def _cancel_cart(self, session: Session) -> list[Reply]:
        if session.pending_payment is not None:
            await self._cancel_intent(session.pending_payment.intent_id)

        session.cart = []
        session.pending_payment = None
        session.pending_item = None
        session.state = ConversationState.IDLE
        return replies.with_status_prompt(Messages.CART_CANCELLED)

    async def _cancel_intent(self, intent_id: str) -> None:
        """Cancel a payment link; failures are only logged."""
        try:
            await self._gateway.cancel(intent_id)
        except GatewayError:
            logger.warning("Payment link left open", intent_id=intent_id)

    # =========================================================================
    # Tracking
    # =========================================================================

    async def _track_options(self, session: Session) -> list[Reply]:
        return [replies.track_options()]

    async def _ask_order_id(self, session: Session) -> list[Reply]:
        session.state = ConversationState.AWAITING_ORDER_ID
        return [PlainText(Messages.ENTER_ORDER_ID)]

    async def _require_order(self, session: Session, order_id: str | None = None) -> Order:
        """
        The sender's order with this id, or their latest order.

        Raises NotFoundError when there is none; orders of other senders
        and other hotels are never visible.
        """
        if order_id is None:
            order = await self._orders.find_latest(session.tenant_id, session.sender)
        else:
            order = await self._orders.find_by_id(session.tenant_id, order_id, session.sender)
        if order is None:
            raise NotFoundError(
                "Order",
                order_id,
                tenant_id=session.tenant_id,
                sender=mask_phone(session.sender),
            )
        return order

    async def _track_current(self, session: Session) -> list[Reply]:
        try:
            order = await self._require_order(session)
        except NotFoundError:
            return [follow_up_buttons(Messages.NO_ORDERS, terminal=False)]
        except PersistenceError:
            return [follow_up_buttons(Messages.LOOKUP_FAILED, terminal=False)]
        return [status_reply(order.order_id, order.status)]

    async def _track_by_id(self, session: Session, order_id: str) -> list[Reply]:
        session.state = ConversationState.IDLE
        try:
            order = await self._require_order(session, order_id)
        except NotFoundError:
            return [follow_up_buttons(Messages.ORDER_NOT_FOUND, terminal=False)]
        except PersistenceError:
            return [follow_up_buttons(Messages.LOOKUP_FAILED, terminal=False)]
        return [status_reply(order.order_id, order.status)]

    async def _cancel_placed_order(self, session: Session, order_id: str) -> list[Reply]:
        try:
            order = await self._require_order(session, order_id)
            if order.status not in OrderStatus.CANCELLABLE:
                return replies.with_status_prompt(Messages.CANNOT_CANCEL)

            order.status = OrderStatus.CANCELLED
            # The customer is told right here; the notifier has nothing to add
            order.last_notified_status = OrderStatus.CANCELLED
            await self._orders.save(order)
        except NotFoundError:
            return replies.with_status_prompt(Messages.CANNOT_CANCEL)
        except PersistenceError:
            return replies.with_status_prompt(Messages.LOOKUP_FAILED)

        logger.info(
            "Order cancelled by customer",
            sender=mask_phone(session.sender),
            tenant_id=session.tenant_id,
            order_id=order_id,
        )
        return replies.with_status_prompt(f"Your order with ID {order_id} has been cancelled.")
