"""
Order Store.

Persists checked-out orders per tenant and serves the lookups used by order
tracking and the fulfillment notifier.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from order_agent.models import Order, OrderItem
from order_agent.repositories.base import BaseRepository
from shared.config.constants import Limits, OrderStatus, PaymentStatus
from shared.config.logging import get_logger, mask_phone
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import PersistenceError

if TYPE_CHECKING:
    from order_agent.services.session.registry import CartLine

logger = get_logger(__name__)


def generate_order_id() -> str:
    """Random 8-digit order identifier."""
    return str(random.randint(Limits.ORDER_ID_MIN, Limits.ORDER_ID_MAX))


@dataclass
class OrderDraft:
    """Everything needed to persist a cart as an order."""

    sender: str
    lines: Sequence["CartLine"]
    total_cents: int
    payment_method: str
    payment_status: str = PaymentStatus.PENDING


class OrderRepository(BaseRepository):
    """
    Tenant-scoped order persistence.

    Status writes are last-write-wins: ``save`` issues a single UPDATE by
    primary key without reading the row first.

    Usage:
        orders = OrderRepository(SessionLocal)
        order = await orders.create("H1", OrderDraft(...))
        drifted = await orders.find_with_status_drift("H1", sender)
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        id_factory: Callable[[], str] = generate_order_id,
        **kwargs,
    ):
        super().__init__(session_factory, **kwargs)
        self._id_factory = id_factory

    # =========================================================================
    # Public API
    # =========================================================================

    async def create(self, tenant_id: str, draft: OrderDraft) -> Order:
        """
        Persist a new order with status Pending.

        A fresh 8-digit id is drawn for each attempt; collisions within the
        tenant are retried up to Limits.ORDER_ID_ATTEMPTS times.
        """
        return await self._run("create order", self._create_sync, tenant_id, draft)

    async def find_by_id(self, tenant_id: str, order_id: str, sender: str) -> Order | None:
        """Order with this id placed by this sender, if any."""
        return await self._run(
            "find order", self._find_by_id_sync, tenant_id, order_id, sender
        )

    async def find_latest(self, tenant_id: str, sender: str) -> Order | None:
        """Most recently created order of a sender."""
        return await self._run("find latest order", self._find_latest_sync, tenant_id, sender)

    async def find_with_status_drift(
        self,
        tenant_id: str,
        sender: str | None = None,
    ) -> list[Order]:
        """Orders whose status changed since the customer was last told."""
        return await self._run(
            "find status drift", self._find_drift_sync, tenant_id, sender
        )

    async def save(self, order: Order) -> None:
        """Write back the mutable fields of an order."""
        await self._run("save order", self._save_sync, order)

    async def mark_notified(self, order: Order, status: str) -> None:
        """Record that the customer was told about status; leaves status itself alone."""
        await self._run("mark order notified", self._mark_notified_sync, order.id, status)
        order.last_notified_status = status

    async def order_id_taken(self, tenant_id: str, order_id: str) -> bool:
        """True if the tenant already has an order with this id."""
        return await self._run("check order id", self._taken_sync, tenant_id, order_id)

    async def list_for_tenant(self, tenant_id: str, limit: int = 50) -> list[Order]:
        """Newest orders of a tenant (operator tooling)."""
        return await self._run("list orders", self._list_sync, tenant_id, limit)

    # =========================================================================
    # Synchronous implementations (run in worker threads)
    # =========================================================================

    def _base_query(self, tenant_id: str):
        return (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.tenant_id == tenant_id)
        )

    def _create_sync(self, db: Session, tenant_id: str, draft: OrderDraft) -> Order:
        for attempt in range(1, Limits.ORDER_ID_ATTEMPTS + 1):
            order_id = self._id_factory()
            if self._taken_sync(db, tenant_id, order_id):
                logger.info("Order id collision", tenant_id=tenant_id, attempt=attempt)
                continue

            order = Order(
                tenant_id=tenant_id,
                order_id=order_id,
                sender=draft.sender,
                total_cents=draft.total_cents,
                payment_method=draft.payment_method,
                payment_status=draft.payment_status,
                status=OrderStatus.PENDING,
                last_notified_status=OrderStatus.PENDING,
                items=[
                    OrderItem(
                        item_id=line.item_id,
                        title=line.title,
                        unit_price_cents=line.unit_price_cents,
                        quantity=line.quantity,
                        estimated_time_minutes=line.estimated_time_minutes,
                    )
                    for line in draft.lines
                ],
            )
            db.add(order)
            try:
                safe_commit(db)
            except IntegrityError:
                # Concurrent insert took the id between the check and the commit
                logger.info("Order id collision on insert", tenant_id=tenant_id, attempt=attempt)
                continue
            db.refresh(order, attribute_names=["created_at"])

            logger.info(
                "Order persisted",
                tenant_id=tenant_id,
                order_id=order.order_id,
                sender=mask_phone(draft.sender),
                total_cents=draft.total_cents,
                payment_method=draft.payment_method,
            )
            return order

        raise PersistenceError(
            "create order",
            reason="order id space exhausted",
            tenant_id=tenant_id,
            attempts=Limits.ORDER_ID_ATTEMPTS,
        )

    def _find_by_id_sync(
        self, db: Session, tenant_id: str, order_id: str, sender: str
    ) -> Order | None:
        return db.scalar(
            self._base_query(tenant_id).where(
                Order.order_id == order_id,
                Order.sender == sender,
            )
        )

    def _find_latest_sync(self, db: Session, tenant_id: str, sender: str) -> Order | None:
        return db.scalar(
            self._base_query(tenant_id)
            .where(Order.sender == sender)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(1)
        )

    def _find_drift_sync(
        self, db: Session, tenant_id: str, sender: str | None
    ) -> list[Order]:
        query = self._base_query(tenant_id).where(
            Order.status != Order.last_notified_status
        )
        if sender is not None:
            query = query.where(Order.sender == sender)
        return list(db.scalars(query.order_by(Order.id)).all())

    def _save_sync(self, db: Session, order: Order) -> None:
        db.execute(
            update(Order)
            .where(Order.id == order.id)
            .values(
                status=order.status,
                last_notified_status=order.last_notified_status,
                payment_status=order.payment_status,
            )
        )
        safe_commit(db)

    def _mark_notified_sync(self, db: Session, order_pk: int, status: str) -> None:
        db.execute(
            update(Order)
            .where(Order.id == order_pk)
            .values(last_notified_status=status)
        )
        safe_commit(db)

    def _taken_sync(self, db: Session, tenant_id: str, order_id: str) -> bool:
        count = db.scalar(
            select(func.count())
            .select_from(Order)
            .where(Order.tenant_id == tenant_id, Order.order_id == order_id)
        )
        return (count or 0) > 0

    def _list_sync(self, db: Session, tenant_id: str, limit: int) -> list[Order]:
        return list(
            db.scalars(
                self._base_query(tenant_id)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .limit(limit)
            ).all()
        )
