"""
Remote Store Gateway
====================

The trip core's only view of the hosted store.

Primary / fallback
------------------
Each trip operation has two strategies sharing one interface:

* ``ProcedureTripStore`` -- calls the server-side procedures, which check
  ownership and the transition atomically inside the database.
* ``DirectTripStore``    -- filtered reads and a conditional ``UPDATE``
  keyed by trip id, driver id and current status.

The procedures are not deployed in every environment.  ``StoreCapabilities``
is the single strategy-selection point: the first "undefined function"
error for an operation marks that procedure missing for the lifetime of the
gateway (one gateway per driver session), and every later call goes to the
direct store without probing again.  Within one call the fallback runs at
most once; a fallback failure is classified like any other.

Consistency note
----------------
The direct path trades atomicity for a best-effort conditional write.  The
status guard in the WHERE clause stops two devices from both applying
accept/decline to the same pending trip, but side effects that the
procedure would bundle into the same transaction are not covered.

Error classification
--------------------
* SQLSTATE ``42883`` (undefined function) -> ``ProcedureUnavailable``
* SQLSTATE ``P0002`` (raised by the fetch procedure) -> ``DriverNotFound``
* connection / operational / timeout failures -> ``TransientStoreError``
* anything else -> ``StoreError``
"""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterator, Optional, Protocol, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .repositories import (
    DriverRepository,
    ReferenceRepository,
    TripRepository,
    trip_from_row,
)
from ridepilot.config import Settings, settings as default_settings
from ridepilot.domain.entities import Driver, ReferenceData, Trip
from ridepilot.domain.enums import TripEvent
from ridepilot.domain.state_machine import (
    InvalidTransition,
    NotOwner,
    TransitionError,
    source_state,
    target_state,
    transition_changes,
    try_transition,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNDEFINED_FUNCTION = "42883"
NO_DATA_FOUND = "P0002"

FETCH = "fetch_driver_trips"
TRANSITION = "apply_transition"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


# ── Errors ────────────────────────────────────────────────────────────


class StoreError(Exception):
    """A store call failed and should not be retried automatically."""


class TransientStoreError(StoreError):
    """Network, timeout or server-side failure; safe to retry."""


class ProcedureUnavailable(StoreError):
    """The server-side procedure is not deployed in this environment."""


class DriverNotFound(StoreError):
    def __init__(self, driver_id: str):
        super().__init__(f"Driver {driver_id} not found")
        self.driver_id = driver_id


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


def classify_db_error(exc: DBAPIError, driver_id: Optional[str] = None) -> StoreError:
    code = _sqlstate(exc)
    if code == UNDEFINED_FUNCTION:
        return ProcedureUnavailable(str(exc.orig))
    if code == NO_DATA_FOUND and driver_id is not None:
        return DriverNotFound(driver_id)
    if exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError)):
        return TransientStoreError(str(exc.orig))
    return StoreError(str(exc.orig))


@contextmanager
def translate_store_errors(driver_id: Optional[str] = None) -> Iterator[None]:
    try:
        yield
    except DBAPIError as exc:
        raise classify_db_error(exc, driver_id) from exc
    except (OSError, asyncio.TimeoutError) as exc:
        raise TransientStoreError(str(exc) or type(exc).__name__) from exc


# ── Results ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TransitionOutcome:
    applied: bool
    trip: Optional[Trip] = None
    reason: Optional[TransitionError] = None


@dataclass
class StoreCapabilities:
    """Which server-side procedures are known to be missing."""

    missing: set[str] = field(default_factory=set)

    def supports(self, operation: str) -> bool:
        return operation not in self.missing

    def mark_missing(self, operation: str) -> None:
        self.missing.add(operation)


# ── Store strategies ──────────────────────────────────────────────────


class TripStore(Protocol):
    async def driver_trips(self, driver_id: str) -> list[Trip]: ...

    async def apply(
        self, trip_id: str, driver_id: str, event: TripEvent, at: datetime
    ) -> Optional[Trip]: ...

    async def find(self, trip_id: str) -> Optional[Trip]: ...


class ProcedureTripStore:
    def __init__(self, session: AsyncSession, config: Settings):
        for name in (config.fetch_procedure, config.transition_procedure):
            if not _IDENTIFIER.match(name):
                raise ValueError(f"Invalid procedure name: {name!r}")
        self.session = session
        self.fetch_procedure = config.fetch_procedure
        self.transition_procedure = config.transition_procedure

    async def driver_trips(self, driver_id: str) -> list[Trip]:
        result = await self.session.execute(
            text(f"SELECT * FROM {self.fetch_procedure}(:driver_uuid)"),
            {"driver_uuid": driver_id},
        )
        return [trip_from_row(row) for row in result.mappings()]

    async def apply(
        self, trip_id: str, driver_id: str, event: TripEvent, at: datetime
    ) -> Optional[Trip]:
        # The procedure stamps its own timestamps; *at* is only used by the direct path.
        result = await self.session.execute(
            text(
                f"SELECT * FROM {self.transition_procedure}"
                "(:project_uuid, :driver_uuid, :new_status)"
            ),
            {
                "project_uuid": trip_id,
                "driver_uuid": driver_id,
                "new_status": target_state(event).value,
            },
        )
        row = result.mappings().first()
        return trip_from_row(row) if row else None

    async def find(self, trip_id: str) -> Optional[Trip]:
        return await TripRepository(self.session).get_by_id(trip_id)


class DirectTripStore:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.trips = TripRepository(session)
        self.drivers = DriverRepository(session)

    async def driver_trips(self, driver_id: str) -> list[Trip]:
        if not await self.drivers.exists(driver_id):
            raise DriverNotFound(driver_id)
        return await self.trips.list_for_driver(driver_id)

    async def apply(
        self, trip_id: str, driver_id: str, event: TripEvent, at: datetime
    ) -> Optional[Trip]:
        changed = await self.trips.update_if_current(
            trip_id,
            driver_id,
            expected=source_state(event),
            changes=transition_changes(event, driver_id, at),
        )
        if not changed:
            return None
        return await self.trips.get_by_id(trip_id)

    async def find(self, trip_id: str) -> Optional[Trip]:
        return await self.trips.get_by_id(trip_id)


def _rejection_reason(
    trip_id: str, driver_id: str, event: TripEvent, current: Optional[Trip]
) -> TransitionError:
    if current is None or current.driver_id != driver_id:
        return NotOwner(
            trip_id, "Trip not found or not assigned to this driver"
        )
    try:
        try_transition(current, event, driver_id)
    except TransitionError as exc:
        return exc
    return InvalidTransition(
        trip_id, f"Trip {trip_id} changed while '{event.value}' was being applied"
    )


# ── Gateway ───────────────────────────────────────────────────────────


StoreFactory = Callable[[AsyncSession], TripStore]


class TripGateway:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: Settings = default_settings,
        *,
        procedure_store: Optional[StoreFactory] = None,
        direct_store: StoreFactory = DirectTripStore,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._session_factory = session_factory
        self._procedure_store = procedure_store or (
            lambda session: ProcedureTripStore(session, config)
        )
        self._direct_store = direct_store
        self._clock = clock
        self.capabilities = StoreCapabilities()

    async def _run(
        self,
        operation: str,
        call: Callable[[TripStore], Awaitable[T]],
        driver_id: Optional[str] = None,
    ) -> T:
        async with self._session_factory() as session:
            if self.capabilities.supports(operation):
                try:
                    with translate_store_errors(driver_id):
                        result = await call(self._procedure_store(session))
                        await session.commit()
                    return result
                except ProcedureUnavailable:
                    self.capabilities.mark_missing(operation)
                    logger.info(
                        "Procedure for %s not found, using direct query", operation
                    )
                    await session.rollback()

            with translate_store_errors(driver_id):
                result = await call(self._direct_store(session))
                await session.commit()
            return result

    async def fetch_driver_trips(self, driver_id: str) -> list[Trip]:
        trips = await self._run(
            FETCH, lambda store: store.driver_trips(driver_id), driver_id
        )
        logger.info("Fetched %d trips for driver %s", len(trips), driver_id)
        return trips

    async def apply_transition(
        self, trip_id: str, driver_id: str, event: TripEvent
    ) -> TransitionOutcome:
        at = self._clock()

        async def call(store: TripStore) -> TransitionOutcome:
            trip = await store.apply(trip_id, driver_id, event, at)
            if trip is not None:
                return TransitionOutcome(applied=True, trip=trip)
            current = await store.find(trip_id)
            return TransitionOutcome(
                applied=False,
                reason=_rejection_reason(trip_id, driver_id, event, current),
            )

        outcome = await self._run(TRANSITION, call)
        if outcome.applied:
            logger.info("Trip %s: %s applied by driver %s", trip_id, event.value, driver_id)
        else:
            logger.info(
                "Trip %s: %s rejected for driver %s (%s)",
                trip_id,
                event.value,
                driver_id,
                outcome.reason.code if outcome.reason else "unknown",
            )
        return outcome

    async def fetch_trip(self, trip_id: str) -> Optional[Trip]:
        """Current stored copy of one trip, whoever it is assigned to."""
        async with self._session_factory() as session:
            with translate_store_errors():
                return await TripRepository(session).get_by_id(trip_id)

    async def fetch_reference_data(self) -> ReferenceData:
        async with self._session_factory() as session:
            with translate_store_errors():
                repo = ReferenceRepository(session)
                return ReferenceData(
                    companies=await repo.companies(),
                    car_types=await repo.car_types(),
                )

    async def fetch_driver(self, driver_id: str) -> Optional[Driver]:
        async with self._session_factory() as session:
            with translate_store_errors():
                return await DriverRepository(session).get_by_id(driver_id)

    async def touch_last_login(self, driver_id: str) -> None:
        async with self._session_factory() as session:
            with translate_store_errors():
                await DriverRepository(session).touch_last_login(driver_id, self._clock())
                await session.commit()
