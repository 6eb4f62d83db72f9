"""
Driver trip board
=================

Groups a driver's trips the way the driver portal presents them:

* **completed** -- lifecycle is completed (regardless of date)
* **urgent**    -- due within the urgent window (default 2 h), not yet past
* **today**     -- on today's date but not urgent (including earlier today)
* **upcoming**  -- everything else

Each bucket is ordered by scheduled time.  ``summarize`` produces the
headline counters and the driver's earnings on completed trips.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from .entities import Trip
from .enums import AcceptanceStatus, TripState


@dataclass
class TripBoard:
    urgent: list[Trip] = field(default_factory=list)
    today: list[Trip] = field(default_factory=list)
    upcoming: list[Trip] = field(default_factory=list)
    completed: list[Trip] = field(default_factory=list)


@dataclass(frozen=True)
class DriverStats:
    pending: int = 0
    accepted: int = 0
    completed: int = 0
    total_earnings: float = 0.0


def build_board(
    trips: Iterable[Trip],
    now: datetime,
    urgent_window: timedelta = timedelta(hours=2),
) -> TripBoard:
    board = TripBoard()
    for trip in trips:
        if trip.state is TripState.COMPLETED:
            board.completed.append(trip)
            continue

        until = trip.scheduled_at - now
        if timedelta(0) < until <= urgent_window:
            board.urgent.append(trip)
        elif trip.scheduled_at.date() == now.date():
            board.today.append(trip)
        else:
            board.upcoming.append(trip)

    for bucket in (board.urgent, board.today, board.upcoming, board.completed):
        bucket.sort(key=lambda t: t.scheduled_at)
    return board


def summarize(trips: Iterable[Trip]) -> DriverStats:
    pending = accepted = completed = 0
    earnings = 0.0
    for trip in trips:
        # Counters follow the stored acceptance axis, as the dashboard shows it.
        if trip.acceptance_status is AcceptanceStatus.PENDING:
            pending += 1
        elif trip.acceptance_status is AcceptanceStatus.ACCEPTED:
            accepted += 1
        if trip.state is TripState.COMPLETED:
            completed += 1
            earnings += trip.earnings
    return DriverStats(
        pending=pending,
        accepted=accepted,
        completed=completed,
        total_earnings=round(earnings, 2),
    )
