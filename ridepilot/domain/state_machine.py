"""
Trip state machine.

The only authority on which driver events are legal for a trip.  Every
function here is pure: no I/O, no clock reads, no mutation of its inputs.

Check order in ``try_transition`` is fixed:

1. ownership -- a driver may only act on trips assigned to them;
2. terminal  -- declined and completed trips accept nothing;
3. table     -- the event must be defined for the current state.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Any

from .entities import Trip
from .enums import (
    TERMINAL_STATES,
    TRIP_TRANSITIONS,
    AcceptanceStatus,
    LifecycleStatus,
    TripEvent,
    TripState,
)


class TransitionError(Exception):
    """Base for transitions refused by the state machine or the store."""

    code = "transition_error"

    def __init__(self, trip_id: str, message: str):
        super().__init__(message)
        self.trip_id = trip_id


class NotOwner(TransitionError):
    code = "not_owner"


class InvalidTransition(TransitionError):
    code = "invalid_transition"


class AlreadyTerminal(TransitionError):
    code = "already_terminal"


def try_transition(trip: Trip, event: TripEvent, requester_driver_id: str) -> Trip:
    """Return *trip* with *event* applied, or raise a ``TransitionError``."""
    if requester_driver_id != trip.driver_id:
        raise NotOwner(trip.id, f"Trip {trip.id} is not assigned to driver {requester_driver_id}")

    state = trip.state
    if state in TERMINAL_STATES:
        raise AlreadyTerminal(trip.id, f"Trip {trip.id} is already {state.value}")

    if event not in TRIP_TRANSITIONS[state]:
        raise InvalidTransition(
            trip.id, f"Cannot {event.value} trip {trip.id} while it is {state.value}"
        )

    return dataclasses.replace(
        trip, **transition_changes(event, requester_driver_id, at=None)
    )


def transition_changes(
    event: TripEvent, driver_id: str, at: datetime | None
) -> dict[str, Any]:
    """Field changes written for *event*.

    Keys are ``Trip`` field names.  Timestamp fields are only included when
    *at* is given.
    """
    if event is TripEvent.ACCEPT:
        changes: dict[str, Any] = {
            "acceptance_status": AcceptanceStatus.ACCEPTED,
            "accepted_by": driver_id,
        }
        stamp = "accepted_at"
    elif event is TripEvent.DECLINE:
        changes, stamp = {"acceptance_status": AcceptanceStatus.DECLINED}, None
    elif event is TripEvent.START:
        changes, stamp = {"acceptance_status": AcceptanceStatus.STARTED}, "started_at"
    elif event is TripEvent.COMPLETE:
        # acceptance_status is left as-is; lifecycle decides completion
        changes = {
            "lifecycle_status": LifecycleStatus.COMPLETED,
            "completed_by": driver_id,
        }
        stamp = "completed_at"
    else:
        raise ValueError(f"Unknown trip event: {event!r}")

    if stamp and at is not None:
        changes[stamp] = at
    return changes


def source_state(event: TripEvent) -> TripState:
    """The one state from which *event* is legal."""
    for state, events in TRIP_TRANSITIONS.items():
        if event in events:
            return state
    raise ValueError(f"Event {event!r} has no source state")


def target_state(event: TripEvent) -> TripState:
    return TRIP_TRANSITIONS[source_state(event)][event]


def allowed_events(trip: Trip) -> set[TripEvent]:
    return set(TRIP_TRANSITIONS[trip.state])
