"""
Catalog Model: MenuItem.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import Limits

from .base import AuditMixin, Base, BigIntPK

if TYPE_CHECKING:
    from .tenant import Tenant


class MenuItem(AuditMixin, Base):
    """
    A dish on a hotel's menu.
    Read-only to the conversation engine; maintained by hotel staff.
    Prices are stored in paise (1 INR = 100 paise).
    """

    __tablename__ = "menu_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(
        String(Limits.MAX_TENANT_ID_LENGTH), ForeignKey("tenant.id"), nullable=False, index=True
    )
    # Identifier sent back in "Item_<item_id>" list replies
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="Menu")
    availability: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    estimated_time_minutes: Mapped[int] = mapped_column(
        Integer, default=Limits.DEFAULT_ESTIMATED_TIME_MINUTES, nullable=False
    )

    tenant: Mapped["Tenant"] = relationship(back_populates="menu_items")

    __table_args__ = (
        UniqueConstraint("tenant_id", "item_id", name="uq_menu_item_tenant_item"),
        Index("ix_menu_item_tenant_available", "tenant_id", "availability"),
    )

    def __repr__(self) -> str:
        return f"<MenuItem(item_id='{self.item_id}', title='{self.title}', price_cents={self.price_cents})>"
