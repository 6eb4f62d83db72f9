"""
Per-trip transition lock in Redis.

A driver may have the portal open on more than one device, and the API may
run as several processes.  Holding ``trip-transition:<trip_id>`` while a
transition is written keeps two requests for the same trip from reaching
the store at once; transitions on different trips never contend.

Acquire is SET NX PX with a random token; release deletes the key only if
the token still matches (Lua, so check-and-delete is atomic).
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class TransitionLockHeld(Exception):
    def __init__(self, trip_id: str):
        super().__init__(f"A transition for trip {trip_id} is already in progress")
        self.trip_id = trip_id


class TripTransitionLock:
    def __init__(
        self, client: aioredis.Redis, trip_id: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.trip_id = trip_id
        self.key = f"trip-transition:{trip_id}"
        self.ttl_ms = ttl_seconds * 1000
        self.token = uuid.uuid4().hex
        self.held = False

    async def acquire(self) -> bool:
        self.held = bool(
            await self.redis.set(self.key, self.token, nx=True, px=self.ttl_ms)
        )
        return self.held

    async def release(self) -> None:
        if not self.held:
            return
        await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)
        self.held = False

    async def __aenter__(self) -> "TripTransitionLock":
        if not await self.acquire():
            raise TransitionLockHeld(self.trip_id)
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.release()
