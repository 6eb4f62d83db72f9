"""FastAPI dependency injection helpers."""

import redis.asyncio as aioredis
from fastapi import HTTPException, Request

from ridepilot.infrastructure.redis_client import get_redis
from ridepilot.workers.sessions import SessionRegistry, TripSession


def get_registry(request: Request) -> SessionRegistry:
    """The session registry created in the app lifespan."""
    return request.app.state.sessions


async def get_lock_client() -> aioredis.Redis:
    return await get_redis()


def require_session(registry: SessionRegistry, driver_id: str) -> TripSession:
    session = registry.get(driver_id)
    if session is None or session.closed:
        raise HTTPException(
            status_code=404, detail=f"No open session for driver {driver_id}"
        )
    return session
