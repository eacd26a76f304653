"""Core reactor - time-ordered dispatch of periodic services.

Contains:
- TimerMultiplexingReactor: single-threaded due-time scheduler
- Timeline / ScheduleEntry: ascending due-time map
- MonotonicClock / SimulatedClock: real and virtual time sources
"""

from .clock import MonotonicClock, SimulatedClock
from .errors import DoubleStartError, PollFailure, ReactorError, RegistrationError
from .reactor import ErrorPolicy, IdlePolicy, ReactorState, TimerMultiplexingReactor
from .timeline import ScheduleEntry, Timeline

__all__ = [
    'TimerMultiplexingReactor', 'ReactorState', 'ErrorPolicy', 'IdlePolicy',
    'Timeline', 'ScheduleEntry', 'MonotonicClock', 'SimulatedClock',
    'ReactorError', 'RegistrationError', 'DoubleStartError', 'PollFailure',
]
