"""Network simulation: event loop, delivery lifecycle, fault injection."""

from commsync.network.delivery import DeliveryStateMachine
from commsync.network.event_log import EventLog
from commsync.network.faults import FaultAction, FaultInjector, FaultKind
from commsync.network.scheduler import Scheduler
from commsync.network.simulator import NetworkSimulator

__all__ = [
    "DeliveryStateMachine",
    "EventLog",
    "FaultAction",
    "FaultInjector",
    "FaultKind",
    "Scheduler",
    "NetworkSimulator",
]
