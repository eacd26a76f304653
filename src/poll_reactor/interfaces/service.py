"""
Service Interfaces

These classes define the contract between the reactor and the units of work
it drives. A service only needs ``start()``; a pollable service additionally
exposes ``poll_interval`` (seconds) and ``poll()``.

Pollability is a capability, not a subtype: any object with a callable
``poll`` and a ``poll_interval`` attribute is treated as pollable. The ABCs
below are a convenience for implementers.
"""

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import itertools

import numpy as np

TICKS_PER_SECOND = 1_000_000_000

_sequence = itertools.count()


class Service(ABC):
    """Unit of work managed by the reactor."""

    @abstractmethod
    def start(self):
        """Called once when the reactor starts, or on add() if already running."""
        pass

    def stop(self):
        """Called when the service is removed from the reactor."""
        pass


class PollableService(Service):
    """
    Service with periodic work.

    Subclasses set ``poll_interval`` (seconds) before registration. The
    reactor reads it once; changing it afterwards has no effect.
    """

    poll_interval: float = 1.0

    @abstractmethod
    def poll(self):
        """Do one unit of periodic work. Return value is ignored."""
        pass


def seconds_to_ticks(seconds: float) -> int:
    """Convert seconds to integer clock ticks (nanoseconds)."""
    return int(round(seconds * TICKS_PER_SECOND))


def ticks_to_seconds(ticks: int) -> float:
    return ticks / TICKS_PER_SECOND


def pollable_interval(service: Any) -> Optional[int]:
    """
    Capability check for pollable services.

    Returns:
        Poll interval in ticks, or None if the service is not pollable

    Raises:
        ValueError: service is pollable but its interval is not positive
    """
    poll = getattr(service, 'poll', None)
    if not callable(poll) or not hasattr(service, 'poll_interval'):
        return None

    interval = float(service.poll_interval)
    ticks = seconds_to_ticks(interval)
    if ticks <= 0:
        msg = f"poll_interval must be strictly positive (got {interval})"
        raise ValueError(msg)
    return ticks


def service_name(service: Any) -> str:
    """Display name: ``service.name`` if set, else the class name."""
    name = getattr(service, 'name', None)
    if isinstance(name, str) and name:
        return name
    return type(service).__name__


@dataclass
class ServiceStats:
    """Per-service dispatch statistics."""
    polls: int = 0
    failures: int = 0
    late_polls: int = 0
    last_due: Optional[int] = None         # Scheduled due-time of last poll (ticks)
    last_started: Optional[int] = None     # Clock reading when last poll began (ticks)
    last_error: Optional[str] = None
    durations: deque = field(default_factory=lambda: deque(maxlen=256))

    def record(self, due: int, started: int, finished: int, error: Optional[BaseException] = None):
        self.polls += 1
        self.last_due = due
        self.last_started = started
        if started > due:
            self.late_polls += 1
        self.durations.append(finished - started)
        if error is not None:
            self.failures += 1
            self.last_error = f"{type(error).__name__}: {error}"

    def latency_summary(self) -> Dict[str, float]:
        """Poll duration percentiles in milliseconds."""
        if not self.durations:
            return {'p50_ms': 0.0, 'p95_ms': 0.0, 'max_ms': 0.0}
        ms = np.asarray(self.durations, dtype=np.float64) / 1e6
        return {
            'p50_ms': float(np.percentile(ms, 50)),
            'p95_ms': float(np.percentile(ms, 95)),
            'max_ms': float(ms.max()),
        }

    def to_dict(self) -> dict:
        result = {
            'polls': self.polls,
            'failures': self.failures,
            'late_polls': self.late_polls,
            'last_error': self.last_error,
        }
        result.update(self.latency_summary())
        return result


@dataclass(eq=False)
class Registration:
    """
    A service's membership in one reactor.

    Created by ``TimerMultiplexingReactor.add()``. The pollable capability is
    evaluated once and cached in ``interval``. ``due`` is the back-reference
    to the Timeline entry currently holding this registration.
    """
    service: Any
    name: str
    interval: Optional[int] = None          # Ticks; None for non-pollable services
    seq: int = field(default_factory=lambda: next(_sequence))
    active: bool = True
    due: Optional[int] = None
    stats: ServiceStats = field(default_factory=ServiceStats)

    @classmethod
    def for_service(cls, service: Any) -> "Registration":
        return cls(
            service=service,
            name=service_name(service),
            interval=pollable_interval(service),
        )

    @property
    def pollable(self) -> bool:
        return self.interval is not None

    @property
    def interval_seconds(self) -> Optional[float]:
        if self.interval is None:
            return None
        return ticks_to_seconds(self.interval)

    def to_dict(self) -> dict:
        result = {
            'name': self.name,
            'pollable': self.pollable,
            'poll_interval': self.interval_seconds,
            'next_due': ticks_to_seconds(self.due) if self.due is not None else None,
        }
        result.update(self.stats.to_dict())
        return result
