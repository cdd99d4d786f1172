"""Application factory for the FastAPI app.

Builds the gateway (metadata, middleware, handlers, routers) in one place
so tests can create isolated instances.
"""

from fastapi import FastAPI

from coach_gateway.api.routes import functions_router, health_router
from coach_gateway.core.config import settings
from coach_gateway.core.exception_handlers import setup_exception_handlers
from coach_gateway.core.logging import configure_logging
from coach_gateway.core.middleware import request_id_middleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Sales Coach Gateway",
        description=(
            "Serverless-style HTTP functions wrapping an LLM for sales coaching: "
            "sales-analysis, habits-verification and ai-consultant. Every call "
            "passes a security gate (method, content type, payload size, JSON "
            "sanitization, per-caller sliding-window rate limit) and is audited."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(functions_router)
    app.include_router(health_router)

    return app
