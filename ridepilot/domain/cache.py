"""
In-memory snapshot of one driver's assigned trips.

Ordering guarantee
------------------
The cache keeps a logical clock (``version``) that advances on every local
mutation, and remembers per trip the clock value of its last local write.
A fetch records ``version`` before it starts and passes it back to
``load(..., since=...)``.  Any trip written locally after that point was
changed by this client while the fetch was in flight, so the fetched copy
only replaces it if it is further along the lifecycle.  A stale fetch can
therefore never move a trip's state backwards.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Iterable, Optional

from .entities import Trip
from .enums import STATE_RANK, AcceptanceStatus, LifecycleStatus


class TripCache:
    def __init__(self) -> None:
        self._entries: dict[str, Trip] = {}
        self._written_at: dict[str, int] = {}
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def entries(self) -> dict[str, Trip]:
        return dict(self._entries)

    def get(self, trip_id: str) -> Optional[Trip]:
        return self._entries.get(trip_id)

    def sorted_trips(self) -> list[Trip]:
        return sorted(self._entries.values(), key=lambda t: t.scheduled_at)

    def load(self, trips: Iterable[Trip], since: Optional[int] = None) -> None:
        """Replace the entry set with *trips*.

        *since* is the ``version`` observed when the fetch that produced
        *trips* began; ``None`` means the fetch is known to be current.
        """
        fresh = {trip.id: trip for trip in trips}
        if since is not None:
            for trip_id, local in self._entries.items():
                if self._written_at.get(trip_id, 0) <= since:
                    continue
                fetched = fresh.get(trip_id)
                if fetched is None or STATE_RANK[fetched.state] < STATE_RANK[local.state]:
                    fresh[trip_id] = local

        self._entries = fresh
        self._written_at = {
            trip_id: seen
            for trip_id, seen in self._written_at.items()
            if trip_id in fresh and since is not None and seen > since
        }

    def apply_local(
        self,
        trip_id: str,
        acceptance_status: AcceptanceStatus,
        lifecycle_status: Optional[LifecycleStatus] = None,
        **changes: Any,
    ) -> Trip:
        """Optimistically update one entry after a successful write."""
        current = self._entries.get(trip_id)
        if current is None:
            raise KeyError(trip_id)

        changes["acceptance_status"] = acceptance_status
        if lifecycle_status is not None:
            changes["lifecycle_status"] = lifecycle_status
        updated = dataclasses.replace(current, **changes)

        self._version += 1
        self._entries[trip_id] = updated
        self._written_at[trip_id] = self._version
        return updated

    def clear(self) -> None:
        self._entries.clear()
        self._written_at.clear()
        self._version += 1

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, trip_id: object) -> bool:
        return trip_id in self._entries
