"""
Session Registry.

Process-wide mapping of sender phone number to its ephemeral conversation
session. State lives in memory only and is lost on restart.

A hotel binding is valid for ``binding_ttl`` seconds after it was made.
Expiry is checked lazily: any access through ``get``/``touch`` after the
window has passed evicts the binding together with the cart. An open payment
link outlives the binding and is restored when the sender binds to the same
hotel again. The hotel-id prompt has its own shorter timeout, enforced both
lazily and by a best-effort timer that posts a notice.

Sessions idle for longer than ``idle_ttl`` and without an open payment link
are dropped entirely.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from order_agent.repositories.catalog import MenuItemRef
from shared.config.logging import get_logger, mask_phone
from shared.config.settings import settings

logger = get_logger(__name__)


class ConversationState(str, Enum):
    """Where a sender is in the ordering workflow."""
    UNBOUND = "UNBOUND"                                  # No hotel selected
    AWAITING_HOTEL_ID = "AWAITING_HOTEL_ID"              # Welcome sent, waiting for hotel id
    IDLE = "IDLE"                                        # Bound, free dispatch
    AWAITING_QUANTITY = "AWAITING_QUANTITY"              # Item picked, waiting for Qty_<n>
    AWAITING_PAYMENT_METHOD = "AWAITING_PAYMENT_METHOD"  # Summary shown
    AWAITING_ONLINE_PAYMENT = "AWAITING_ONLINE_PAYMENT"  # Payment link sent
    AWAITING_ORDER_ID = "AWAITING_ORDER_ID"              # Waiting for typed order id


@dataclass
class CartLine:
    """One menu item in the cart with its accumulated quantity."""

    item_id: str
    title: str
    unit_price_cents: int
    quantity: int
    estimated_time_minutes: int

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass
class PendingPayment:
    """Payment link created for the current cart and not yet settled."""

    intent_id: str
    short_link: str
    total_cents: int
    # Cart as it was when the link was created; this is what gets paid for
    lines: list[CartLine] = field(default_factory=list)
    tenant_id: str | None = None


@dataclass
class Session:
    """Ephemeral per-sender conversation state."""

    sender: str
    tenant_id: str | None = None
    tenant_bound_at: float = 0.0
    state: ConversationState = ConversationState.UNBOUND
    pending_item: MenuItemRef | None = None
    catalog: list[MenuItemRef] = field(default_factory=list)
    cart: list[CartLine] = field(default_factory=list)
    pending_payment: PendingPayment | None = None
    last_interaction_at: float = 0.0
    hotel_prompt_at: float | None = None

    @property
    def is_bound(self) -> bool:
        return self.tenant_id is not None

    def find_item(self, item_id: str) -> MenuItemRef | None:
        for item in self.catalog:
            if item.item_id == item_id:
                return item
        return None

    def reset_binding(self) -> None:
        """Drop the hotel binding and everything that depends on it."""
        self.tenant_id = None
        self.tenant_bound_at = 0.0
        self.state = ConversationState.UNBOUND
        self.pending_item = None
        self.catalog = []
        self.cart = []
        self.pending_payment = None
        self.hotel_prompt_at = None

    def expire_binding(self) -> None:
        """Drop the hotel binding and cart; an open payment link is kept."""
        pending = self.pending_payment
        self.reset_binding()
        self.pending_payment = pending


TimeoutNotice = Callable[[str], Awaitable[None]]


class SessionRegistry:
    """
    In-memory sender → Session map.

    Usage:
        registry = SessionRegistry()
        session = registry.touch(sender)
        registry.bind(sender, "H1", catalog)
    """

    def __init__(
        self,
        binding_ttl: float | None = None,
        hotel_prompt_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
        idle_ttl: float | None = None,
    ):
        self._sessions: dict[str, Session] = {}
        self._prompt_timers: dict[str, asyncio.Task] = {}
        self._binding_ttl = binding_ttl if binding_ttl is not None else settings.binding_ttl_seconds
        self._idle_ttl = idle_ttl if idle_ttl is not None else settings.messaging_window_seconds
        self._prompt_timeout = (
            hotel_prompt_timeout
            if hotel_prompt_timeout is not None
            else settings.hotel_prompt_timeout_seconds
        )
        self._clock = clock

    @property
    def hotel_prompt_timeout(self) -> float:
        return self._prompt_timeout

    def now(self) -> float:
        return self._clock()

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, sender: str) -> Session | None:
        """Session of a sender, with an expired binding already evicted."""
        session = self._sessions.get(sender)
        if session is not None:
            self._evict_if_expired(session)
        return session

    def touch(self, sender: str) -> Session:
        """Get or create the session and record the interaction time."""
        session = self.get(sender)
        if session is None:
            self.sweep_idle()
            session = Session(sender=sender)
            self._sessions[sender] = session
        session.last_interaction_at = self.now()
        return session

    def last_interaction(self, sender: str) -> float | None:
        """When the sender last messaged us, or None if never."""
        session = self._sessions.get(sender)
        if session is None or not session.last_interaction_at:
            return None
        return session.last_interaction_at

    def active_bindings(self) -> list[tuple[str, str]]:
        """(sender, tenant_id) pairs whose binding is still valid."""
        self.sweep_idle()
        bindings = []
        for sender in list(self._sessions):
            session = self.get(sender)
            if session is not None and session.tenant_id is not None:
                bindings.append((sender, session.tenant_id))
        return bindings

    def is_binding_active(self, session: Session) -> bool:
        return (
            session.tenant_id is not None
            and self.now() - session.tenant_bound_at < self._binding_ttl
        )

    # =========================================================================
    # Mutation
    # =========================================================================

    def bind(self, sender: str, tenant_id: str, catalog: list[MenuItemRef]) -> Session:
        """
        Attach a sender to a hotel and load its menu.

        A payment link left over from an expired binding to the same hotel is
        restored and the session goes back to AWAITING_ONLINE_PAYMENT; a link
        for another hotel is dropped (the caller cancels it).
        """
        session = self.touch(sender)
        self._cancel_prompt_timer(sender)
        pending = session.pending_payment
        session.reset_binding()
        session.tenant_id = tenant_id
        session.tenant_bound_at = self.now()
        session.catalog = list(catalog)
        session.state = ConversationState.IDLE
        if pending is not None and pending.tenant_id == tenant_id:
            session.pending_payment = pending
            session.state = ConversationState.AWAITING_ONLINE_PAYMENT
        logger.info(
            "Sender bound to hotel",
            sender=mask_phone(sender),
            tenant_id=tenant_id,
            menu_items=len(catalog),
        )
        return session

    def clear(self, sender: str) -> None:
        """Forget the binding, cart and pending payment of a sender."""
        self._cancel_prompt_timer(sender)
        session = self._sessions.get(sender)
        if session is not None:
            session.reset_binding()

    def arm_hotel_prompt(
        self,
        sender: str,
        on_timeout: TimeoutNotice | None = None,
    ) -> Session:
        """
        Move the sender to AWAITING_HOTEL_ID and start the prompt timeout.

        When an event loop is running and ``on_timeout`` is given, a timer
        task reverts the session to UNBOUND and calls ``on_timeout(sender)``
        if the prompt is still unanswered when it fires.
        """
        session = self.touch(sender)
        self._cancel_prompt_timer(sender)
        session.state = ConversationState.AWAITING_HOTEL_ID
        armed_at = self.now()
        session.hotel_prompt_at = armed_at

        if on_timeout is not None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                self._prompt_timers[sender] = loop.create_task(
                    self._prompt_timer(sender, armed_at, on_timeout),
                    name=f"hotel-prompt-{sender}",
                )
        return session

    def hotel_prompt_expired(self, session: Session) -> bool:
        """True if the sender was asked for a hotel id too long ago."""
        return (
            session.state == ConversationState.AWAITING_HOTEL_ID
            and session.hotel_prompt_at is not None
            and self.now() - session.hotel_prompt_at >= self._prompt_timeout
        )

    def expire_hotel_prompt(self, sender: str) -> None:
        """Revert an unanswered hotel-id prompt to UNBOUND."""
        self._cancel_prompt_timer(sender)
        session = self._sessions.get(sender)
        if session is not None and session.state == ConversationState.AWAITING_HOTEL_ID:
            session.state = ConversationState.UNBOUND
            session.hotel_prompt_at = None

    def sweep_idle(self) -> int:
        """Forget sessions idle past idle_ttl that have no open payment link."""
        now = self.now()
        stale = [
            sender
            for sender, session in self._sessions.items()
            if session.pending_payment is None
            and sender not in self._prompt_timers
            and now - session.last_interaction_at >= self._idle_ttl
        ]
        for sender in stale:
            del self._sessions[sender]
        if stale:
            logger.info("Idle sessions dropped", count=len(stale))
        return len(stale)

    async def shutdown(self) -> None:
        """Cancel outstanding prompt timers."""
        timers = list(self._prompt_timers.values())
        self._prompt_timers.clear()
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._sessions)

    # =========================================================================
    # Internals
    # =========================================================================

    def _evict_if_expired(self, session: Session) -> None:
        if session.tenant_id is not None and not self.is_binding_active(session):
            logger.info(
                "Hotel binding expired",
                sender=mask_phone(session.sender),
                tenant_id=session.tenant_id,
            )
            session.expire_binding()

    def _cancel_prompt_timer(self, sender: str) -> None:
        task = self._prompt_timers.pop(sender, None)
        if task is None:
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def _prompt_timer(
        self,
        sender: str,
        armed_at: float,
        on_timeout: TimeoutNotice,
    ) -> None:
        await asyncio.sleep(self._prompt_timeout)

        session = self._sessions.get(sender)
        # The sender answered or re-armed the prompt meanwhile
        if (
            session is None
            or session.state != ConversationState.AWAITING_HOTEL_ID
            or session.hotel_prompt_at != armed_at
        ):
            return

        self._prompt_timers.pop(sender, None)
        session.state = ConversationState.UNBOUND
        session.hotel_prompt_at = None
        logger.info("Hotel ID prompt timed out", sender=mask_phone(sender))

        try:
            await on_timeout(sender)
        except Exception as e:
            logger.warning(
                "Failed to send hotel prompt timeout notice",
                sender=mask_phone(sender),
                error=str(e),
            )
