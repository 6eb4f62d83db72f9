"""Unit tests for the trip state machine."""

from datetime import datetime

import pytest

from ridepilot.domain.enums import (
    AcceptanceStatus,
    LifecycleStatus,
    TripEvent,
    TripState,
)
from ridepilot.domain.state_machine import (
    AlreadyTerminal,
    InvalidTransition,
    NotOwner,
    allowed_events,
    source_state,
    transition_changes,
    try_transition,
)
from tests.factories import make_trip


class TestTripState:
    def test_new_trip_is_pending(self):
        assert make_trip().state == TripState.PENDING

    def test_completed_lifecycle_overrides_acceptance(self):
        trip = make_trip(
            acceptance=AcceptanceStatus.STARTED, lifecycle=LifecycleStatus.COMPLETED
        )
        assert trip.state == TripState.COMPLETED

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError):
            make_trip(price=-1.0)

    def test_earnings_prefer_driver_fee(self):
        assert make_trip(price=180.0, driver_fee=140.0).earnings == 140.0
        assert make_trip(price=180.0).earnings == 180.0


class TestTransitions:
    # ── Valid transitions ─────────────────────────────────────────

    def test_pending_accept(self):
        trip = try_transition(make_trip(), TripEvent.ACCEPT, "driver-a")
        assert trip.acceptance_status == AcceptanceStatus.ACCEPTED
        assert trip.accepted_by == "driver-a"

    def test_pending_decline(self):
        trip = try_transition(make_trip(), TripEvent.DECLINE, "driver-a")
        assert trip.state == TripState.DECLINED

    def test_accepted_start(self):
        trip = make_trip(acceptance=AcceptanceStatus.ACCEPTED)
        assert try_transition(trip, TripEvent.START, "driver-a").state == TripState.STARTED

    def test_started_complete_flips_lifecycle(self):
        trip = make_trip(acceptance=AcceptanceStatus.STARTED)
        done = try_transition(trip, TripEvent.COMPLETE, "driver-a")
        assert done.lifecycle_status == LifecycleStatus.COMPLETED
        assert done.acceptance_status == AcceptanceStatus.STARTED
        assert done.completed_by == "driver-a"

    def test_input_trip_is_not_mutated(self):
        trip = make_trip()
        try_transition(trip, TripEvent.ACCEPT, "driver-a")
        assert trip.acceptance_status == AcceptanceStatus.PENDING

    # ── Invalid transitions ───────────────────────────────────────

    @pytest.mark.parametrize("event", [TripEvent.START, TripEvent.COMPLETE])
    def test_pending_only_accepts_or_declines(self, event):
        with pytest.raises(InvalidTransition):
            try_transition(make_trip(), event, "driver-a")

    def test_accepted_cannot_be_accepted_again(self):
        trip = make_trip(acceptance=AcceptanceStatus.ACCEPTED)
        with pytest.raises(InvalidTransition):
            try_transition(trip, TripEvent.ACCEPT, "driver-a")

    def test_accepted_cannot_skip_to_complete(self):
        trip = make_trip(acceptance=AcceptanceStatus.ACCEPTED)
        with pytest.raises(InvalidTransition):
            try_transition(trip, TripEvent.COMPLETE, "driver-a")

    def test_started_cannot_be_declined(self):
        """Once started, the only way forward is completion."""
        trip = make_trip(acceptance=AcceptanceStatus.STARTED)
        with pytest.raises(InvalidTransition):
            try_transition(trip, TripEvent.DECLINE, "driver-a")

    @pytest.mark.parametrize("event", list(TripEvent))
    def test_completed_is_terminal(self, event):
        trip = make_trip(
            acceptance=AcceptanceStatus.STARTED, lifecycle=LifecycleStatus.COMPLETED
        )
        with pytest.raises(AlreadyTerminal):
            try_transition(trip, event, "driver-a")

    @pytest.mark.parametrize("event", list(TripEvent))
    def test_declined_is_terminal(self, event):
        trip = make_trip(acceptance=AcceptanceStatus.DECLINED)
        with pytest.raises(AlreadyTerminal):
            try_transition(trip, event, "driver-a")

    # ── Ownership ─────────────────────────────────────────────────

    @pytest.mark.parametrize(
        "acceptance,lifecycle",
        [
            (AcceptanceStatus.PENDING, LifecycleStatus.ACTIVE),
            (AcceptanceStatus.ACCEPTED, LifecycleStatus.ACTIVE),
            (AcceptanceStatus.DECLINED, LifecycleStatus.ACTIVE),
            (AcceptanceStatus.STARTED, LifecycleStatus.COMPLETED),
        ],
    )
    def test_other_driver_is_never_owner(self, acceptance, lifecycle):
        trip = make_trip(acceptance=acceptance, lifecycle=lifecycle)
        for event in TripEvent:
            with pytest.raises(NotOwner):
                try_transition(trip, event, "driver-b")


class TestTransitionHelpers:
    def test_source_states(self):
        assert source_state(TripEvent.ACCEPT) == TripState.PENDING
        assert source_state(TripEvent.DECLINE) == TripState.PENDING
        assert source_state(TripEvent.START) == TripState.ACCEPTED
        assert source_state(TripEvent.COMPLETE) == TripState.STARTED

    def test_changes_carry_timestamp_when_given(self):
        at = datetime(2026, 3, 1, 9, 0)
        assert transition_changes(TripEvent.START, "driver-a", at)["started_at"] == at
        assert "started_at" not in transition_changes(TripEvent.START, "driver-a", None)

    def test_decline_writes_no_timestamp(self):
        changes = transition_changes(TripEvent.DECLINE, "driver-a", datetime(2026, 3, 1))
        assert changes == {"acceptance_status": AcceptanceStatus.DECLINED}

    def test_allowed_events(self):
        assert allowed_events(make_trip()) == {TripEvent.ACCEPT, TripEvent.DECLINE}
        assert allowed_events(make_trip(acceptance=AcceptanceStatus.DECLINED)) == set()
