"""
Tenant Catalog Accessor.

Pure read interface over tenants and their menus.
"""

from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from order_agent.models import MenuItem, Tenant
from order_agent.repositories.base import BaseRepository


@dataclass(frozen=True)
class MenuItemRef:
    """Menu item as loaded into a conversation session."""

    item_id: str
    title: str
    price_cents: int
    category: str
    estimated_time_minutes: int


class CatalogRepository(BaseRepository):
    """
    Resolves a hotel identifier to its menu.

    Usage:
        catalog = CatalogRepository(SessionLocal)
        if await catalog.exists("H1"):
            items = await catalog.list_available("H1")
    """

    async def exists(self, tenant_id: str) -> bool:
        """True if an active tenant with this identifier exists."""
        return await self._run("tenant lookup", self._exists_sync, tenant_id)

    async def list_available(self, tenant_id: str) -> list[MenuItemRef]:
        """Available menu items of a tenant, grouped by category."""
        return await self._run("menu lookup", self._list_available_sync, tenant_id)

    def _exists_sync(self, db: Session, tenant_id: str) -> bool:
        count = db.scalar(
            select(func.count())
            .select_from(Tenant)
            .where(Tenant.id == tenant_id, Tenant.is_active.is_(True))
        )
        return (count or 0) > 0

    def _list_available_sync(self, db: Session, tenant_id: str) -> list[MenuItemRef]:
        rows = db.scalars(
            select(MenuItem)
            .where(
                MenuItem.tenant_id == tenant_id,
                MenuItem.availability.is_(True),
                MenuItem.is_active.is_(True),
            )
            .order_by(MenuItem.category, MenuItem.id)
        ).all()
        return [
            MenuItemRef(
                item_id=row.item_id,
                title=row.title,
                price_cents=row.price_cents,
                category=row.category,
                estimated_time_minutes=row.estimated_time_minutes,
            )
            for row in rows
        ]
