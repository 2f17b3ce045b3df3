"""Vector clock manager — causal ordering without synchronized real time.

Each node owns one manager tracking a counter per known peer. Local events
tick the node's own counter; observed remote clocks are joined pointwise
and the own counter is pushed past both views.

Every clock handed out is a fresh dict copy taken under the manager's
lock, so a reader never sees a torn value.
"""

from __future__ import annotations

import enum
import heapq
import threading
from typing import Iterable, Mapping, Protocol, Sequence, TypeVar


VectorClock = dict[str, int]


class CausalOrder(str, enum.Enum):
    """Result of comparing two vector clocks."""
    BEFORE = "before"
    AFTER = "after"
    CONCURRENT = "concurrent"


class ClockStamped(Protocol):
    """Anything carrying a vector clock and a physical timestamp."""

    @property
    def vector_clock(self) -> Mapping[str, int]: ...

    @property
    def timestamp(self) -> float: ...


T = TypeVar("T", bound=ClockStamped)


class VectorClockManager:
    """One node's view of the logical clock.

    Usage:
        clock = VectorClockManager("CMD-001", ["FIELD-001", "RELAY-001"])
        stamp = clock.tick()            # before sending
        clock.update(received_stamp)    # on receipt
    """

    def __init__(self, node_id: str, known_nodes: Iterable[str] = ()) -> None:
        self._node_id = node_id
        self._lock = threading.Lock()
        self._clock: VectorClock = {node_id: 0}
        for node in known_nodes:
            self._clock.setdefault(node, 0)

    @property
    def node_id(self) -> str:
        return self._node_id

    def tick(self) -> VectorClock:
        """Record a local event. Returns the post-tick snapshot."""
        with self._lock:
            self._clock[self._node_id] += 1
            return dict(self._clock)

    def update(self, received: Mapping[str, int]) -> VectorClock:
        """Join a received clock into the local view.

        Unknown keys are adopted at 0 first. The own counter becomes
        max(local, received) + 1 since receipt is itself a local event;
        every other counter takes the pointwise maximum.
        """
        with self._lock:
            for node in received:
                self._clock.setdefault(node, 0)
            for node in self._clock:
                seen = max(self._clock[node], received.get(node, 0))
                self._clock[node] = seen + 1 if node == self._node_id else seen
            return dict(self._clock)

    def clock(self) -> VectorClock:
        """Current snapshot."""
        with self._lock:
            return dict(self._clock)

    def add_node(self, node_id: str) -> None:
        with self._lock:
            self._clock.setdefault(node_id, 0)

    def remove_node(self, node_id: str) -> None:
        """Forget a peer. A node never forgets itself."""
        if node_id == self._node_id:
            return
        with self._lock:
            self._clock.pop(node_id, None)

    def visualization_data(self) -> list[dict]:
        with self._lock:
            return [
                {"node_id": node, "value": value, "is_self": node == self._node_id}
                for node, value in self._clock.items()
            ]

    # ------------------------------------------------------------------
    # Pure clock algebra
    # ------------------------------------------------------------------

    @staticmethod
    def compare(a: Mapping[str, int], b: Mapping[str, int]) -> CausalOrder:
        """Causal relation of a to b over the union of keys (missing = 0).

        Equal clocks are concurrent, never before/after.
        """
        a_less = False
        b_less = False
        for node in set(a) | set(b):
            va = a.get(node, 0)
            vb = b.get(node, 0)
            if va < vb:
                a_less = True
            elif va > vb:
                b_less = True
        if a_less and not b_less:
            return CausalOrder.BEFORE
        if b_less and not a_less:
            return CausalOrder.AFTER
        return CausalOrder.CONCURRENT

    @staticmethod
    def happened_before(a: Mapping[str, int], b: Mapping[str, int]) -> bool:
        return VectorClockManager.compare(a, b) == CausalOrder.BEFORE

    @staticmethod
    def merge(clocks: Iterable[Mapping[str, int]]) -> VectorClock:
        """Pointwise maximum over all inputs."""
        merged: VectorClock = {}
        for clock in clocks:
            for node, value in clock.items():
                merged[node] = max(merged.get(node, 0), value)
        return merged

    @staticmethod
    def sort_causally(messages: Sequence[T]) -> list[T]:
        """Linearize messages so causal order is never contradicted.

        Kahn's algorithm over the happened-before graph. Among messages
        whose causal predecessors are all placed, the one with the lowest
        (timestamp, input position) goes next. A message is only emitted
        once every message that happened before it has been emitted, so a
        definite before/after verdict is always respected; timestamps only
        decide between messages with no causal path between them.
        """
        items = list(messages)
        n = len(items)
        successors: list[list[int]] = [[] for _ in range(n)]
        indegree = [0] * n
        for i in range(n):
            for j in range(i + 1, n):
                order = VectorClockManager.compare(items[i].vector_clock, items[j].vector_clock)
                if order == CausalOrder.BEFORE:
                    successors[i].append(j)
                    indegree[j] += 1
                elif order == CausalOrder.AFTER:
                    successors[j].append(i)
                    indegree[i] += 1

        ready = [(items[i].timestamp, i) for i in range(n) if indegree[i] == 0]
        heapq.heapify(ready)
        result: list[T] = []
        while ready:
            _, i = heapq.heappop(ready)
            result.append(items[i])
            for j in successors[i]:
                indegree[j] -= 1
                if indegree[j] == 0:
                    heapq.heappush(ready, (items[j].timestamp, j))
        return result
