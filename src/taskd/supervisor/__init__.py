"""Process supervisor core.

The supervisor is one cooperative loop in one process. Parallelism comes only
from forked children: every wait is a ``WNOHANG`` poll and the only blocking
point is the quiet-time sleep between iterations, so a single iteration can
service hundreds of children without stalling on any of them.
"""

from taskd.supervisor.daemon import Daemon, DaemonRunSummary
from taskd.supervisor.events import (
    DaemonEvent,
    EventDispatcher,
    EventName,
    EventSubscriber,
    ProcessEvent,
    TaskEvent,
)
from taskd.supervisor.process import (
    ForkError,
    LostChildError,
    Process,
    ProcessError,
    ProcessState,
    ReapError,
    RuntimeExceededError,
)
from taskd.supervisor.signals import SignalRegistry

__all__ = [
    "Daemon",
    "DaemonEvent",
    "DaemonRunSummary",
    "EventDispatcher",
    "EventName",
    "EventSubscriber",
    "ForkError",
    "LostChildError",
    "Process",
    "ProcessError",
    "ProcessEvent",
    "ProcessState",
    "ReapError",
    "RuntimeExceededError",
    "SignalRegistry",
    "TaskEvent",
]
