"""Service contracts consumed by the reactor."""

from .service import (
    Service,
    PollableService,
    Registration,
    ServiceStats,
    TICKS_PER_SECOND,
    pollable_interval,
    seconds_to_ticks,
    ticks_to_seconds,
)

__all__ = [
    'Service',
    'PollableService',
    'Registration',
    'ServiceStats',
    'TICKS_PER_SECOND',
    'pollable_interval',
    'seconds_to_ticks',
    'ticks_to_seconds',
]
