"""
Order agent main application.
Entry point for the FastAPI server that receives the WhatsApp webhook.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from order_agent.core.lifespan import lifespan
from order_agent.routers import webhook_router
from order_agent.services.payments.circuit_breaker import get_all_breaker_stats
from shared.config.logging import app_logger as logger
from shared.config.settings import settings
from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.infrastructure.db import SessionLocal
from shared.utils.exceptions import AppException


# Create FastAPI application
app = FastAPI(
    title="Hotel Order Agent",
    description="WhatsApp ordering assistant for hotel restaurants",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(CorrelationIdMiddleware)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Errors that escape a route keep the status they were raised with."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/")
def banner():
    """Plain banner so the deployment can be smoke-tested in a browser."""
    return {"message": "Hotel order agent is running"}


# =============================================================================
# Health Check
# =============================================================================


@app.get("/api/health")
def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "order-agent",
        "environment": settings.environment,
    }


@app.get("/api/health/detailed")
def detailed_health_check():
    """
    Detailed health check that verifies connectivity to dependencies.
    Returns database status and the state of the outbound circuit breakers.
    """
    checks = {
        "service": "order-agent",
        "environment": settings.environment,
        "dependencies": {},
    }
    all_healthy = True

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        checks["dependencies"]["database"] = {"status": "healthy"}
    except Exception as e:
        checks["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        all_healthy = False

    checks["circuit_breakers"] = get_all_breaker_stats()

    components = getattr(app.state, "components", None)
    if components is not None:
        checks["sessions"] = len(components.registry)
        checks["notifier_running"] = components.notifier.running

    checks["status"] = "healthy" if all_healthy else "degraded"

    # Return 503 if any dependency is down
    if not all_healthy:
        return JSONResponse(content=checks, status_code=503)

    return checks


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(webhook_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "order_agent.main:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=settings.debug,
    )
