"""Delivery state machine — enforces the message delivery lifecycle.

Lifecycle:
    PENDING -> DELIVERED -> ACKNOWLEDGED
    PENDING -> FAILED

FAILED and ACKNOWLEDGED are terminal. A message never regresses.

Fail-closed: any transition not listed is rejected.
"""

from __future__ import annotations

from commsync.models.network import DeliveryStatus, NetworkMessage


# Valid transitions: {from_state: {allowed_to_states}}
_TRANSITIONS: dict[DeliveryStatus, set[DeliveryStatus]] = {
    DeliveryStatus.PENDING: {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED},
    DeliveryStatus.DELIVERED: {DeliveryStatus.ACKNOWLEDGED},
    # Terminal states: no outgoing transitions
    DeliveryStatus.FAILED: set(),
    DeliveryStatus.ACKNOWLEDGED: set(),
}


class DeliveryStateMachine:
    """Validates and applies delivery status transitions.

    Pure computation: side effects (event logging, scheduling) are
    handled by the simulator.
    """

    @staticmethod
    def validate_transition(
        message: NetworkMessage,
        target: DeliveryStatus,
    ) -> list[str]:
        """Check if a transition is valid. Returns errors (empty = OK)."""
        current = message.delivery_status
        allowed = _TRANSITIONS.get(current, set())

        if target not in allowed:
            allowed_str = ", ".join(s.value for s in sorted(allowed, key=lambda x: x.value))
            return [
                f"Invalid delivery transition for {message.message_id}: "
                f"{current.value} → {target.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            ]
        return []

    @staticmethod
    def apply_transition(
        message: NetworkMessage,
        target: DeliveryStatus,
    ) -> list[str]:
        """Validate and apply a transition. On success mutates the message."""
        errors = DeliveryStateMachine.validate_transition(message, target)
        if errors:
            return errors
        message.delivery_status = target
        return []

    @staticmethod
    def is_terminal(status: DeliveryStatus) -> bool:
        return status in (DeliveryStatus.FAILED, DeliveryStatus.ACKNOWLEDGED)

    @staticmethod
    def valid_transitions(status: DeliveryStatus) -> set[DeliveryStatus]:
        return set(_TRANSITIONS.get(status, set()))
