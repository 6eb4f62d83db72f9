"""Domain enumerations and the trip transition table."""

import enum


class AcceptanceStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    STARTED = "started"
    DECLINED = "declined"


class LifecycleStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class PaymentStatus(str, enum.Enum):
    PAID = "paid"
    CHARGE = "charge"


class TripEvent(str, enum.Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    START = "start"
    COMPLETE = "complete"


class TripState(str, enum.Enum):
    """Single driver-facing state, folded from the two stored status axes."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    STARTED = "started"
    DECLINED = "declined"
    COMPLETED = "completed"


# State machine: maps current state -> {event: next state}
TRIP_TRANSITIONS: dict[TripState, dict[TripEvent, TripState]] = {
    TripState.PENDING: {
        TripEvent.ACCEPT: TripState.ACCEPTED,
        TripEvent.DECLINE: TripState.DECLINED,
    },
    TripState.ACCEPTED: {TripEvent.START: TripState.STARTED},
    TripState.STARTED: {TripEvent.COMPLETE: TripState.COMPLETED},
    TripState.DECLINED: {},
    TripState.COMPLETED: {},
}

TERMINAL_STATES = frozenset(
    state for state, events in TRIP_TRANSITIONS.items() if not events
)

# How far along the lifecycle a state is; a cached trip never moves to a lower rank.
STATE_RANK: dict[TripState, int] = {
    TripState.PENDING: 0,
    TripState.ACCEPTED: 1,
    TripState.DECLINED: 1,
    TripState.STARTED: 2,
    TripState.COMPLETED: 3,
}
