"""Pydantic response schemas for the driver portal API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ridepilot.domain.board import DriverStats, TripBoard
from ridepilot.domain.entities import ReferenceData, Trip
from ridepilot.domain.state_machine import allowed_events
from ridepilot.workers.sessions import SessionStatus


# ── Trips ─────────────────────────────────────────────────────────────


class TripResponse(BaseModel):
    id: str
    driver_id: str
    state: str
    acceptance_status: str
    lifecycle_status: str
    scheduled_at: datetime
    price: float
    driver_fee: Optional[float] = None
    earnings: float
    payment_status: str
    company_id: Optional[str] = None
    company_name: Optional[str] = None
    car_type_id: Optional[str] = None
    car_type_name: Optional[str] = None
    client_name: str
    client_phone: str
    pickup_location: str
    dropoff_location: str
    passengers: int
    description: Optional[str] = None
    booking_id: Optional[str] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    allowed_events: list[str] = []

    @classmethod
    def from_trip(
        cls, trip: Trip, reference: Optional[ReferenceData] = None
    ) -> "TripResponse":
        return cls(
            id=trip.id,
            driver_id=trip.driver_id,
            state=trip.state.value,
            acceptance_status=trip.acceptance_status.value,
            lifecycle_status=trip.lifecycle_status.value,
            scheduled_at=trip.scheduled_at,
            price=trip.price,
            driver_fee=trip.driver_fee,
            earnings=trip.earnings,
            payment_status=trip.payment_status.value,
            company_id=trip.company_id,
            company_name=reference.company_name(trip.company_id) if reference else None,
            car_type_id=trip.car_type_id,
            car_type_name=reference.car_type_name(trip.car_type_id) if reference else None,
            client_name=trip.client_name,
            client_phone=trip.client_phone,
            pickup_location=trip.pickup_location,
            dropoff_location=trip.dropoff_location,
            passengers=trip.passengers,
            description=trip.description,
            booking_id=trip.booking_id,
            accepted_at=trip.accepted_at,
            started_at=trip.started_at,
            completed_at=trip.completed_at,
            allowed_events=sorted(e.value for e in allowed_events(trip)),
        )


class TripBoardResponse(BaseModel):
    urgent: list[TripResponse] = []
    today: list[TripResponse] = []
    upcoming: list[TripResponse] = []
    completed: list[TripResponse] = []

    @classmethod
    def from_board(cls, board: TripBoard, reference: ReferenceData) -> "TripBoardResponse":
        def convert(trips: list[Trip]) -> list[TripResponse]:
            return [TripResponse.from_trip(t, reference) for t in trips]

        return cls(
            urgent=convert(board.urgent),
            today=convert(board.today),
            upcoming=convert(board.upcoming),
            completed=convert(board.completed),
        )


class DriverStatsResponse(BaseModel):
    pending: int
    accepted: int
    completed: int
    total_earnings: float

    @classmethod
    def from_stats(cls, stats: DriverStats) -> "DriverStatsResponse":
        return cls(
            pending=stats.pending,
            accepted=stats.accepted,
            completed=stats.completed,
            total_earnings=stats.total_earnings,
        )


# ── Sessions ──────────────────────────────────────────────────────────


class SessionStatusResponse(BaseModel):
    driver_id: str
    phase: str
    attempt_count: int
    max_attempts: int
    retrying: bool
    error: Optional[str] = None
    trip_count: int

    @classmethod
    def from_status(cls, status: SessionStatus) -> "SessionStatusResponse":
        return cls(
            driver_id=status.driver_id,
            phase=status.phase.value,
            attempt_count=status.attempt_count,
            max_attempts=status.max_attempts,
            retrying=status.retrying,
            error=status.error,
            trip_count=status.trip_count,
        )


class DriverTripsResponse(BaseModel):
    status: SessionStatusResponse
    board: TripBoardResponse
    stats: DriverStatsResponse


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    """Error body; the machine-readable code is sent in ``X-Error-Code``."""

    detail: str
