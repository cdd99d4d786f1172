from __future__ import annotations

from coach_gateway.api.routes.functions import router as functions_router
from coach_gateway.api.routes.health import router as health_router

__all__ = ["functions_router", "health_router"]
