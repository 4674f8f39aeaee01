"""
Order Models: Order, OrderItem.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import Limits, OrderStatus, PaymentStatus

from .base import Base, BigIntPK


class Order(Base):
    """
    A checked-out cart.

    Created with status Pending when the customer pays cash or after an
    online payment is confirmed. The fulfillment side moves the status
    forward; the notifier tells the customer and then catches
    last_notified_status up with status. Never deleted.
    """

    __tablename__ = "customer_order"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(Limits.MAX_TENANT_ID_LENGTH), ForeignKey("tenant.id"), nullable=False, index=True
    )
    # 8-digit customer-facing identifier, unique within a tenant
    order_id: Mapped[str] = mapped_column(String(8), nullable=False)
    # WhatsApp phone number of the customer
    sender: Mapped[str] = mapped_column(String(32), nullable=False)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_method: Mapped[str] = mapped_column(Text, nullable=False)
    payment_status: Mapped[str] = mapped_column(
        Text, default=PaymentStatus.PENDING, nullable=False
    )
    status: Mapped[str] = mapped_column(Text, default=OrderStatus.PENDING, nullable=False)
    last_notified_status: Mapped[str] = mapped_column(
        Text, default=OrderStatus.PENDING, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "order_id", name="uq_customer_order_tenant_order_id"),
        Index("ix_customer_order_tenant_sender", "tenant_id", "sender"),
    )

    def __repr__(self) -> str:
        return f"<Order(order_id='{self.order_id}', tenant_id='{self.tenant_id}', status='{self.status}')>"


class OrderItem(Base):
    """
    Snapshot of a cart line at checkout.
    Title and price are copied so later menu edits don't alter past orders.
    """

    __tablename__ = "customer_order_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_pk: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("customer_order.id"), nullable=False, index=True
    )
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_time_minutes: Mapped[int] = mapped_column(
        Integer, default=Limits.DEFAULT_ESTIMATED_TIME_MINUTES, nullable=False
    )

    order: Mapped["Order"] = relationship(back_populates="items")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity
