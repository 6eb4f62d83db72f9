"""
Driver Trip Sessions
====================

One ``TripSession`` per logged-in driver.  It owns the driver's trip cache,
the retry controller for fetches, and the reference data shown next to the
trips.  ``SessionRegistry`` maps driver ids to live sessions.

Fetching
--------
* ``start()`` runs the first fetch on login; ``refresh()`` is the manual
  "try again" action and resets the retry counter.
* At most one fetch is in flight.  A refresh issued while a fetch is
  running waits for that fetch instead of starting a second one.
* A transient failure schedules an automatic attempt after the controller's
  delay (1 s, 2 s, 3 s by default).  After the last attempt the session
  stays in ``exhausted`` until the next manual refresh.

Transitions
-----------
``transition()`` checks the event with the state machine before anything
goes over the wire, against the cached trip or, for a trip this driver has
not fetched, the stored one.  It refuses a second transition on a trip that
already has one in flight, and writes the stored result back into the cache
when the gateway reports success.

Teardown
--------
``close()`` (logout) cancels any scheduled retry and clears the cache.
Fetches and transitions still in flight finish, but their results are
dropped instead of being written into the discarded cache.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ridepilot.config import Settings, settings as default_settings
from ridepilot.domain.cache import TripCache
from ridepilot.domain.entities import Driver, ReferenceData, Trip
from ridepilot.domain.enums import TripEvent
from ridepilot.domain.retry import FetchPhase, RetryController
from ridepilot.domain.state_machine import NotOwner, TransitionError, try_transition
from ridepilot.infrastructure.gateway import (
    DriverNotFound,
    StoreError,
    TransientStoreError,
    TripGateway,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class SessionClosed(Exception):
    """The driver logged out; the session no longer accepts work."""


class TransitionInProgress(Exception):
    def __init__(self, trip_id: str):
        super().__init__(f"A transition for trip {trip_id} is already in progress")
        self.trip_id = trip_id


class TransitionRejected(Exception):
    """The store refused a transition the local state machine allowed."""

    def __init__(self, trip_id: str, reason: Optional[TransitionError]):
        super().__init__(str(reason) if reason else f"Trip {trip_id}: update rejected")
        self.trip_id = trip_id
        self.reason = reason

    @property
    def code(self) -> str:
        return self.reason.code if self.reason else "rejected"


@dataclass(frozen=True)
class SessionStatus:
    driver_id: str
    phase: FetchPhase
    attempt_count: int
    max_attempts: int
    retrying: bool
    error: Optional[str]
    trip_count: int


class TripSession:
    def __init__(
        self,
        driver_id: str,
        gateway: TripGateway,
        retry: Optional[RetryController] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.driver_id = driver_id
        self.gateway = gateway
        self.retry = retry or RetryController()
        self.cache = TripCache()
        self.reference = ReferenceData()
        self.driver: Optional[Driver] = None
        self._sleep = sleep
        self._inflight: Optional[asyncio.Future] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._transitions: set[str] = set()
        self._closed = False

    # ── Public API ────────────────────────────────────────────────────

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last_error(self) -> Optional[Exception]:
        return self.retry.last_error

    def status(self) -> SessionStatus:
        error = self.retry.last_error
        return SessionStatus(
            driver_id=self.driver_id,
            phase=self.retry.phase,
            attempt_count=self.retry.attempt_count,
            max_attempts=self.retry.max_attempts,
            retrying=self.retry.retrying,
            error=str(error) if error and self.retry.phase is not FetchPhase.IDLE else None,
            trip_count=len(self.cache),
        )

    async def start(self) -> None:
        """Initial load on login."""
        await self.refresh()
        if self._closed or self.retry.phase is not FetchPhase.IDLE:
            return
        try:
            self.driver = await self.gateway.fetch_driver(self.driver_id)
            await self.gateway.touch_last_login(self.driver_id)
        except StoreError as exc:
            logger.warning("Could not update driver %s info: %s", self.driver_id, exc)

    async def refresh(self) -> None:
        """Manual refresh: reset retry state and fetch."""
        self._ensure_open()
        if self.retry.in_flight:
            if self._inflight is not None:
                await asyncio.shield(self._inflight)
            return
        self._cancel_retry()
        self.retry.reset()
        if self.retry.begin_fetch():
            await self._fetch()

    async def transition(self, trip_id: str, event: TripEvent) -> Trip:
        self._ensure_open()
        trip = self.cache.get(trip_id)
        if trip is None:
            # not in this driver's fetch: assigned since, elsewhere, or gone
            trip = await self.gateway.fetch_trip(trip_id)
            if trip is None:
                raise NotOwner(trip_id, "Trip not found or not assigned to this driver")
        try_transition(trip, event, self.driver_id)

        if trip_id in self._transitions:
            raise TransitionInProgress(trip_id)
        self._transitions.add(trip_id)
        try:
            outcome = await self.gateway.apply_transition(trip_id, self.driver_id, event)
        finally:
            self._transitions.discard(trip_id)

        if not outcome.applied or outcome.trip is None:
            raise TransitionRejected(trip_id, outcome.reason)

        stored = outcome.trip
        if self._closed:
            logger.debug("Dropping transition result for trip %s after logout", trip_id)
            return stored
        if trip_id not in self.cache:
            # picked up by the next fetch
            return stored
        return self.cache.apply_local(
            trip_id,
            stored.acceptance_status,
            stored.lifecycle_status,
            accepted_at=stored.accepted_at,
            accepted_by=stored.accepted_by,
            started_at=stored.started_at,
            completed_at=stored.completed_at,
            completed_by=stored.completed_by,
        )

    def is_transitioning(self, trip_id: str) -> bool:
        return trip_id in self._transitions

    async def wait_settled(self) -> None:
        """Wait until no fetch is running and no automatic retry is scheduled."""
        while True:
            task = self._retry_task
            if task is not None and not task.done():
                await asyncio.wait({task})
                continue
            if self._inflight is not None:
                await asyncio.shield(self._inflight)
                continue
            return

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # a retry that is already fetching runs to completion and drops its result
        if not self.retry.in_flight:
            self._cancel_retry()
        self.cache.clear()
        logger.info("Closed trip session for driver %s", self.driver_id)

    # ── Internals ─────────────────────────────────────────────────────

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosed(f"Session for driver {self.driver_id} is closed")

    def _cancel_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
        self._retry_task = None

    async def _fetch(self) -> None:
        done = asyncio.get_running_loop().create_future()
        self._inflight = done
        try:
            await self._fetch_once()
        finally:
            self._inflight = None
            done.set_result(None)

    async def _fetch_once(self) -> None:
        since = self.cache.version
        try:
            trips = await self.gateway.fetch_driver_trips(self.driver_id)
            reference = await self.gateway.fetch_reference_data()
        except TransientStoreError as exc:
            self._fetch_failed(exc, retryable=True)
            return
        except StoreError as exc:
            self._fetch_failed(exc, retryable=False)
            return
        except Exception as exc:
            logger.exception("Unexpected error fetching trips for driver %s", self.driver_id)
            self._fetch_failed(exc, retryable=False)
            return

        if self._closed:
            logger.debug("Dropping fetch result for driver %s after logout", self.driver_id)
            return
        self.cache.load(trips, since=since)
        self.reference = reference
        self.retry.record_success()

    def _fetch_failed(self, exc: Exception, retryable: bool) -> None:
        if self._closed:
            return
        delay = self.retry.record_failure(exc, retryable=retryable)
        if delay is None:
            logger.error(
                "Giving up fetching trips for driver %s after %d retries: %s",
                self.driver_id,
                self.retry.attempt_count,
                exc,
            )
            return
        logger.warning(
            "Fetching trips for driver %s failed (%s); retry %d/%d in %.1fs",
            self.driver_id,
            exc,
            self.retry.attempt_count,
            self.retry.max_attempts,
            delay,
        )
        self._retry_task = asyncio.create_task(self._retry_after(delay))

    async def _retry_after(self, delay: float) -> None:
        await self._sleep(delay)
        if self._closed or not self.retry.begin_retry():
            return
        await self._fetch()


class SessionRegistry:
    """Live trip sessions keyed by driver id."""

    def __init__(
        self,
        gateway_factory: Callable[[], TripGateway],
        config: Settings = default_settings,
        sleep: Sleep = asyncio.sleep,
    ):
        self._gateway_factory = gateway_factory
        self._config = config
        self._sleep = sleep
        self._sessions: dict[str, TripSession] = {}

    async def open(self, driver_id: str) -> TripSession:
        """Log a driver in.  Re-opening returns the live session."""
        existing = self._sessions.get(driver_id)
        if existing is not None and not existing.closed:
            return existing

        session = TripSession(
            driver_id,
            self._gateway_factory(),
            RetryController(
                max_attempts=self._config.fetch_max_retries,
                base_delay=self._config.fetch_retry_base_delay_seconds,
            ),
            sleep=self._sleep,
        )
        self._sessions[driver_id] = session
        await session.start()

        if isinstance(session.last_error, DriverNotFound):
            await self.close(driver_id)
            raise session.last_error
        logger.info("Opened trip session for driver %s", driver_id)
        return session

    def get(self, driver_id: str) -> Optional[TripSession]:
        return self._sessions.get(driver_id)

    async def close(self, driver_id: str) -> bool:
        session = self._sessions.pop(driver_id, None)
        if session is None:
            return False
        await session.close()
        return True

    async def close_all(self) -> None:
        for driver_id in list(self._sessions):
            await self.close(driver_id)

    def active(self) -> list[SessionStatus]:
        return [s.status() for s in self._sessions.values()]
