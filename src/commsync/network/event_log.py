"""Bounded network event log — the audit trail of simulated traffic and faults.

Unlike a durable ledger this log is a fixed-capacity ring: once full, the
oldest record is evicted for each new one. Records are immutable.
"""

from __future__ import annotations

import uuid
from collections import deque
from typing import Any, Mapping, Optional

from commsync.models.network import EventKind, NetworkEvent


class EventLog:
    """Fixed-capacity, append-only ring of NetworkEvent records.

    Not thread-safe on its own; the simulator appends under its
    scheduler lock.
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._events: deque[NetworkEvent] = deque(maxlen=capacity)
        self._total = 0

    def record(
        self,
        kind: EventKind,
        node_id: str,
        timestamp: float,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> NetworkEvent:
        """Create and append an event. Returns the stored record.

        The payload is copied; later changes to the caller's mapping do
        not reach the log.
        """
        event = NetworkEvent(
            event_id=f"evt-{uuid.uuid4().hex[:12]}",
            kind=kind,
            node_id=node_id,
            timestamp=timestamp,
            payload=payload,
        )
        self._events.append(event)
        self._total += 1
        return event

    def recent(self, limit: int = 20) -> list[NetworkEvent]:
        """Most-recent-first slice of at most limit events."""
        if limit <= 0:
            return []
        result: list[NetworkEvent] = []
        for event in reversed(self._events):
            if len(result) >= limit:
                break
            result.append(event)
        return result

    def events(self, kind: Optional[EventKind] = None) -> list[NetworkEvent]:
        """Retained events oldest-first, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.kind == kind]

    @property
    def capacity(self) -> int:
        return self._events.maxlen or 0

    @property
    def count(self) -> int:
        """Number of retained events."""
        return len(self._events)

    @property
    def total_recorded(self) -> int:
        """Number of events ever recorded, including evicted ones."""
        return self._total
