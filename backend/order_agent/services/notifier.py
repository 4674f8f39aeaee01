"""
Fulfillment Notifier.

Closes the gap between an order's status (moved forward by the kitchen) and
the last status the customer was told about. Runs as a background task
started from the FastAPI lifespan:

- every interval, for each sender with an active hotel binding, fetch the
  orders whose status differs from last_notified_status
- send the status message; only after a successful send persist
  last_notified_status := status
- a failed send leaves the order for the next tick; one failing order does
  not hold back the others

Delivery is at-least-once: a crash between send and save repeats the notice.
"""

import asyncio

from order_agent.repositories.order import OrderRepository
from order_agent.services.conversation.status_messages import status_reply
from order_agent.services.messaging.dispatcher import ReplyDispatcher
from order_agent.services.session.registry import SessionRegistry
from shared.config.logging import get_logger, mask_phone
from shared.config.settings import settings
from shared.infrastructure.correlation import new_request_id, sender_context
from shared.utils.exceptions import DispatchError, PersistenceError

logger = get_logger(__name__)


class FulfillmentNotifier:
    """
    Polls the order store for status drift and notifies customers.

    Usage:
        notifier = FulfillmentNotifier(registry, orders, dispatcher)
        await notifier.start()
        ...
        await notifier.stop()

    ``tick`` runs a single pass and returns the number of notices sent.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        orders: OrderRepository,
        dispatcher: ReplyDispatcher,
        interval_seconds: float | None = None,
    ):
        self._registry = registry
        self._orders = orders
        self._dispatcher = dispatcher
        self._interval = (
            interval_seconds if interval_seconds is not None else settings.notifier_interval_seconds
        )
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the polling loop."""
        if self._running:
            logger.warning("Fulfillment notifier already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="fulfillment-notifier")
        logger.info("Fulfillment notifier started", interval_seconds=self._interval)

    async def stop(self) -> None:
        """Stop the loop and wait for the current pass to be cancelled."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Fulfillment notifier stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            new_request_id()
            try:
                await self.tick()
            except Exception as e:
                logger.error("Fulfillment notifier error", error=str(e), exc_info=True)

    async def tick(self) -> int:
        """Notify every bound sender about drifted orders."""
        sent = 0
        for sender, tenant_id in self._registry.active_bindings():
            try:
                orders = await self._orders.find_with_status_drift(tenant_id, sender)
            except PersistenceError:
                continue

            with sender_context(sender):
                for order in orders:
                    if await self._notify(sender, order):
                        sent += 1

        if sent:
            logger.info("Status notices sent", count=sent)
        return sent

    async def _notify(self, sender: str, order) -> bool:
        status = order.status
        reply = status_reply(order.order_id, status, prefix=f"Order {order.order_id}: ")
        try:
            await self._dispatcher.send(sender, reply)
        except DispatchError:
            return False

        try:
            await self._orders.mark_notified(order, status)
        except PersistenceError:
            # Sent but not recorded; the notice will be repeated next tick
            return True

        logger.info(
            "Customer notified of status change",
            sender=mask_phone(sender),
            order_id=order.order_id,
            status=status,
        )
        return True
