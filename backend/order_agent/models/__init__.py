"""
SQLAlchemy ORM Models Package.

- base: Base class and AuditMixin
- tenant: Tenant (hotel)
- catalog: MenuItem
- order: Order, OrderItem
"""

from .base import Base, AuditMixin
from .tenant import Tenant
from .catalog import MenuItem
from .order import Order, OrderItem

__all__ = [
    "Base",
    "AuditMixin",
    "Tenant",
    "MenuItem",
    "Order",
    "OrderItem",
]
