from __future__ import annotations

from app.api.routes.food import router as food_router
from app.api.routes.health import router as health_router

__all__ = ["food_router", "health_router"]
