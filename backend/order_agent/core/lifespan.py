"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI

from order_agent.models import Base
from order_agent.repositories import CatalogRepository, OrderRepository
from order_agent.services.conversation.engine import ConversationEngine
from order_agent.services.messaging import WhatsAppDispatcher
from order_agent.services.notifier import FulfillmentNotifier
from order_agent.services.payments import RazorpayGateway
from order_agent.services.session import SessionRegistry
from shared.config.logging import app_logger as logger
from shared.config.logging import setup_logging
from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal, engine


@dataclass
class AgentComponents:
    """Long-lived objects shared by every request."""

    registry: SessionRegistry
    catalog: CatalogRepository
    orders: OrderRepository
    gateway: RazorpayGateway
    dispatcher: WhatsAppDispatcher
    conversation: ConversationEngine
    notifier: FulfillmentNotifier


def build_components() -> AgentComponents:
    registry = SessionRegistry()
    catalog = CatalogRepository(SessionLocal)
    orders = OrderRepository(SessionLocal)
    gateway = RazorpayGateway()
    dispatcher = WhatsAppDispatcher(last_interaction=registry.last_interaction)
    conversation = ConversationEngine(registry, catalog, orders, gateway, dispatcher)
    notifier = FulfillmentNotifier(registry, orders, dispatcher)
    return AgentComponents(
        registry=registry,
        catalog=catalog,
        orders=orders,
        gateway=gateway,
        dispatcher=dispatcher,
        conversation=conversation,
        notifier=notifier,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Initialize logging
    setup_logging()

    # Validate production secrets before startup
    secret_errors = settings.validate_production_secrets()
    if secret_errors:
        for error in secret_errors:
            logger.error("Configuration error: %s", error)
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(secret_errors)}. "
                "Server will not start with insecure configuration."
            )
        else:
            logger.warning(
                "Running with insecure defaults (acceptable for development only)"
            )

    # Startup
    logger.info("Starting order agent", port=settings.api_port, env=settings.environment)

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    components = build_components()
    app.state.components = components

    if settings.notifier_enabled:
        await components.notifier.start()

    yield

    # Shutdown
    logger.info("Shutting down order agent")

    await components.notifier.stop()
    await components.registry.shutdown()
    await components.gateway.aclose()
    await components.dispatcher.aclose()
    logger.info("HTTP clients closed")
