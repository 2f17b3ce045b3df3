"""Logical clocks."""

from commsync.clock.vector_clock import CausalOrder, VectorClock, VectorClockManager

__all__ = ["CausalOrder", "VectorClock", "VectorClockManager"]
