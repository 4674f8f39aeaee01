"""HTTP routers."""

from order_agent.routers.webhook import router as webhook_router

__all__ = ["webhook_router"]
