"""
poll-reactor: Timer-Multiplexing Service Daemon

This package provides a single-threaded reactor that drives many periodic
services, each on its own interval, from one loop. The loop always runs the
next-due service and reschedules it from its due-time, so a service's period
never drifts with the duration of its own poll.

Architecture:
    services → TimerMultiplexingReactor → status file + HTTP health

The reactor provides:
    1. Due-time ordered dispatch with O(log n) scheduling
    2. Thread-safe add/remove while running
    3. Explicit lifecycle (NOT_STARTED → RUNNING → STOPPED)
    4. Configurable handling of poll failures and empty schedules

Version: 1.0.0
"""

__version__ = "1.0.0"

from .interfaces.service import (
    Service,
    PollableService,
    Registration,
)
from .engine import (
    TimerMultiplexingReactor,
    ReactorState,
    ErrorPolicy,
    IdlePolicy,
    MonotonicClock,
    SimulatedClock,
    ReactorError,
    RegistrationError,
    DoubleStartError,
    PollFailure,
)

__all__ = [
    "Service",
    "PollableService",
    "Registration",
    "TimerMultiplexingReactor",
    "ReactorState",
    "ErrorPolicy",
    "IdlePolicy",
    "MonotonicClock",
    "SimulatedClock",
    "ReactorError",
    "RegistrationError",
    "DoubleStartError",
    "PollFailure",
    "__version__",
]
