"""Error taxonomy for the comms core.

All errors are local and recoverable. They are raised to the immediate
caller and never crash the simulation. Fault injection is not an error
and never raises.
"""

from __future__ import annotations


class CommsError(Exception):
    """Base class for comms core errors."""


class IntegrityError(CommsError, ValueError):
    """A ledger message's carried hash does not match its content.

    The message is discarded, not queued. The caller must re-derive a
    correct hash before resubmitting.
    """

    def __init__(self, message_id: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Message {message_id}: content hash {actual} != computed {expected}"
        )
        self.message_id = message_id
        self.expected = expected
        self.actual = actual


class StructuralError(CommsError, ValueError):
    """A candidate chain offered to sync is malformed. Local chain unchanged."""


class InvalidReference(CommsError, LookupError):
    """An operation referenced an unknown node id."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Unknown node: {node_id}")
        self.node_id = node_id
