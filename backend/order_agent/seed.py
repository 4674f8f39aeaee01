"""
Demo data for development and manual testing.
Creates one hotel with a small menu spread over a few categories.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from order_agent.models import MenuItem, Tenant
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit

logger = get_logger(__name__)

DEMO_TENANT_ID = "H1"
DEMO_TENANT_NAME = "Demo Hotel"

# (item_id, title, price in paise, category, estimated minutes)
DEMO_MENU = [
    ("1", "Masala Dosa", 12000, "Breakfast", 10),
    ("2", "Idli Vada", 9000, "Breakfast", 8),
    ("3", "Poha", 7000, "Breakfast", 6),
    ("4", "Paneer Butter Masala", 25000, "Main Course", 20),
    ("5", "Veg Biryani", 22000, "Main Course", 25),
    ("6", "Dal Tadka", 16000, "Main Course", 15),
    ("7", "Butter Naan", 4000, "Breads", 5),
    ("8", "Masala Chai", 3000, "Beverages", 3),
    ("9", "Sweet Lassi", 6000, "Beverages", 4),
]


def seed(db: Session, tenant_id: str = DEMO_TENANT_ID) -> bool:
    """
    Create the demo hotel and its menu.
    Idempotent: returns False without changes if the hotel already exists.
    """
    if db.scalar(select(Tenant.id).where(Tenant.id == tenant_id)):
        logger.info("Demo hotel already seeded, skipping", tenant_id=tenant_id)
        return False

    db.add(Tenant(id=tenant_id, name=DEMO_TENANT_NAME))
    for item_id, title, price_cents, category, minutes in DEMO_MENU:
        db.add(
            MenuItem(
                tenant_id=tenant_id,
                item_id=item_id,
                title=title,
                price_cents=price_cents,
                category=category,
                estimated_time_minutes=minutes,
            )
        )
    safe_commit(db)

    logger.info("Demo hotel seeded", tenant_id=tenant_id, menu_items=len(DEMO_MENU))
    return True
