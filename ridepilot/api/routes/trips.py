"""
Driver portal endpoints
=======================

POST   /api/v1/drivers/{driver_id}/session                -- log in (open trip session)
DELETE /api/v1/drivers/{driver_id}/session                -- log out
GET    /api/v1/drivers/{driver_id}/trips                  -- trip board, stats, fetch status
POST   /api/v1/drivers/{driver_id}/trips/refresh          -- manual refresh ("try again")
POST   /api/v1/drivers/{driver_id}/trips/{trip_id}/{event} -- accept / decline / start / complete
"""

from __future__ import annotations

from datetime import datetime, timedelta

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ridepilot.api.dependencies import get_lock_client, get_registry, require_session
from ridepilot.api.middleware import limiter
from ridepilot.api.schemas import (
    DriverStatsResponse,
    DriverTripsResponse,
    ErrorResponse,
    SessionStatusResponse,
    TripBoardResponse,
    TripResponse,
)
from ridepilot.config import settings
from ridepilot.domain.board import build_board, summarize
from ridepilot.domain.enums import TripEvent
from ridepilot.domain.state_machine import NotOwner, TransitionError
from ridepilot.infrastructure.gateway import DriverNotFound, StoreError, TransientStoreError
from ridepilot.infrastructure.locks import TransitionLockHeld, TripTransitionLock
from ridepilot.workers.sessions import (
    SessionClosed,
    SessionRegistry,
    TransitionInProgress,
    TransitionRejected,
    TripSession,
)

router = APIRouter(prefix="/drivers/{driver_id}", tags=["trips"])


def _trips_response(session: TripSession) -> DriverTripsResponse:
    trips = session.cache.sorted_trips()
    board = build_board(
        trips,
        now=datetime.now(),
        urgent_window=timedelta(hours=settings.urgent_window_hours),
    )
    return DriverTripsResponse(
        status=SessionStatusResponse.from_status(session.status()),
        board=TripBoardResponse.from_board(board, session.reference),
        stats=DriverStatsResponse.from_stats(summarize(trips)),
    )


def _error(status_code: int, exc: Exception, code: str) -> HTTPException:
    return HTTPException(
        status_code=status_code, detail=str(exc), headers={"X-Error-Code": code}
    )


@router.post(
    "/session",
    status_code=201,
    response_model=SessionStatusResponse,
    summary="Open a driver's trip session",
)
@limiter.limit("30/minute")
async def open_session(
    request: Request,
    driver_id: str,
    registry: SessionRegistry = Depends(get_registry),
):
    try:
        session = await registry.open(driver_id)
    except DriverNotFound as exc:
        raise _error(404, exc, "driver_not_found")
    return SessionStatusResponse.from_status(session.status())


@router.delete("/session", status_code=204, summary="Close a driver's trip session")
@limiter.limit("30/minute")
async def close_session(
    request: Request,
    driver_id: str,
    registry: SessionRegistry = Depends(get_registry),
):
    if not await registry.close(driver_id):
        raise HTTPException(status_code=404, detail=f"No open session for driver {driver_id}")
    return Response(status_code=204)


@router.get(
    "/trips",
    response_model=DriverTripsResponse,
    summary="Driver's trips grouped by urgency",
)
@limiter.limit("100/minute")
async def get_trips(
    request: Request,
    driver_id: str,
    registry: SessionRegistry = Depends(get_registry),
):
    return _trips_response(require_session(registry, driver_id))


@router.post(
    "/trips/refresh",
    response_model=DriverTripsResponse,
    summary="Re-fetch trips and reset retry state",
)
@limiter.limit("30/minute")
async def refresh_trips(
    request: Request,
    driver_id: str,
    registry: SessionRegistry = Depends(get_registry),
):
    session = require_session(registry, driver_id)
    await session.refresh()
    return _trips_response(session)


@router.post(
    "/trips/{trip_id}/{event}",
    response_model=TripResponse,
    summary="Apply a driver event to a trip",
    description=(
        "Validates the event locally, then writes it through the store "
        "(server-side procedure, or a conditional update where the procedure "
        "is not deployed).  Only one transition per trip runs at a time."
    ),
    responses={
        403: {"model": ErrorResponse, "description": "Trip not assigned to this driver"},
        404: {"model": ErrorResponse, "description": "No open session"},
        409: {"model": ErrorResponse, "description": "Event not allowed or already in progress"},
        502: {"model": ErrorResponse, "description": "Store refused the write"},
        503: {"model": ErrorResponse, "description": "Store unreachable; retry"},
    },
)
@limiter.limit("100/minute")
async def apply_event(
    request: Request,
    driver_id: str,
    trip_id: str,
    event: TripEvent,
    registry: SessionRegistry = Depends(get_registry),
    redis: aioredis.Redis = Depends(get_lock_client),
):
    session = require_session(registry, driver_id)
    try:
        async with TripTransitionLock(
            redis, trip_id, ttl_seconds=settings.transition_lock_ttl_seconds
        ):
            trip = await session.transition(trip_id, event)
    except (TransitionLockHeld, TransitionInProgress) as exc:
        raise _error(409, exc, "in_progress")
    except NotOwner as exc:
        raise _error(403, exc, exc.code)
    except TransitionError as exc:
        raise _error(409, exc, exc.code)
    except TransitionRejected as exc:
        raise _error(403 if exc.code == NotOwner.code else 409, exc, exc.code)
    except SessionClosed as exc:
        raise _error(404, exc, "session_closed")
    except TransientStoreError as exc:
        raise _error(503, exc, "transient")
    except StoreError as exc:
        raise _error(502, exc, "store_error")
    return TripResponse.from_trip(trip, session.reference)
