"""
Repository layer: data access for tenants, menus and orders.

All repositories take a session factory and expose coroutines; the actual
queries run in worker threads.
"""

from order_agent.repositories.base import BaseRepository
from order_agent.repositories.catalog import CatalogRepository, MenuItemRef
from order_agent.repositories.order import OrderDraft, OrderRepository, generate_order_id

__all__ = [
    "BaseRepository",
    "CatalogRepository",
    "MenuItemRef",
    "OrderDraft",
    "OrderRepository",
    "generate_order_id",
]
