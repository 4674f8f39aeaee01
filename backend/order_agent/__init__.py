"""
WhatsApp hotel ordering agent.

Package layout:
- models: SQLAlchemy ORM models (Tenant, MenuItem, Order, OrderItem)
- repositories: Tenant catalog accessor and order store
- services: Session registry, conversation engine, payments, messaging, notifier
- routers: Webhook endpoints
- core: Application lifespan
"""
