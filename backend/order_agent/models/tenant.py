"""
Multi-Tenancy Model: Tenant (hotel).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import Limits

from .base import AuditMixin, Base

if TYPE_CHECKING:
    from .catalog import MenuItem


class Tenant(AuditMixin, Base):
    """
    Represents a hotel that customers connect to by typing its identifier.
    Menu items and orders belong to a tenant for complete data isolation.
    Inherits: is_active, created_at, updated_at from AuditMixin.
    """

    __tablename__ = "tenant"

    # Free-text identifier printed on the table QR code
    id: Mapped[str] = mapped_column(String(Limits.MAX_TENANT_ID_LENGTH), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)

    menu_items: Mapped[list["MenuItem"]] = relationship(back_populates="tenant")

    def __repr__(self) -> str:
        return f"<Tenant(id='{self.id}', name='{self.name}')>"
