"""
FastAPI application factory.

* Registers routes for the driver portal and admin.
* Creates the driver session registry on startup and closes every session
  on shutdown via lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ridepilot.api.middleware import limiter
from ridepilot.api.routes import admin, trips
from ridepilot.config import settings
from ridepilot.infrastructure.database import async_session_factory
from ridepilot.infrastructure.gateway import TripGateway
from ridepilot.workers.sessions import SessionRegistry

logging.basicConfig(level=settings.log_level)


def build_registry() -> SessionRegistry:
    # one gateway per session so the procedure capability probe is per session
    return SessionRegistry(
        gateway_factory=lambda: TripGateway(async_session_factory, settings),
        config=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the session registry on startup; log everyone out on shutdown."""
    app.state.sessions = build_registry()
    yield
    await app.state.sessions.close_all()


def create_app() -> FastAPI:
    app = FastAPI(
        title="RidePilot Driver Trips API",
        description=(
            "Driver-facing trip lifecycle: fetch assigned trips, accept or "
            "decline, start and complete them.  Falls back to direct table "
            "writes where the store's procedures are not deployed."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Routers
    app.include_router(trips.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
