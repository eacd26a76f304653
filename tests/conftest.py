"""
Pytest configuration and fixtures for poll-reactor tests.
"""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from poll_reactor.engine.clock import SimulatedClock
from poll_reactor.engine.reactor import IdlePolicy, TimerMultiplexingReactor


class RecordingService:
    """Pollable test double that records when it was polled."""

    def __init__(self, name, interval, clock=None, work=0.0, on_poll=None):
        self.name = name
        self.poll_interval = interval
        self.clock = clock
        self.work = work
        self.on_poll = on_poll
        self.poll_times = []
        self.started = 0
        self.stopped = 0

    @property
    def polls(self):
        return len(self.poll_times)

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1

    def poll(self):
        self.poll_times.append(self.clock.now() if self.clock else None)
        if self.work and self.clock:
            self.clock.advance(self.work)
        if self.on_poll:
            self.on_poll(self)


class PlainService:
    """Service without the pollable capability."""

    def __init__(self, name="plain"):
        self.name = name
        self.started = 0
        self.stopped = 0

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1


@pytest.fixture
def clock():
    """Virtual clock starting at t=0."""
    return SimulatedClock()


@pytest.fixture
def reactor(clock):
    """Reactor on virtual time that exits when nothing is scheduled."""
    return TimerMultiplexingReactor(clock=clock, idle_policy=IdlePolicy.EXIT)


@pytest.fixture
def make_service(clock):
    """Factory for RecordingService bound to the virtual clock."""
    def factory(name, interval, **kwargs):
        return RecordingService(name, interval, clock=clock, **kwargs)
    return factory


def ms(value):
    """Milliseconds to clock ticks."""
    return value * 1_000_000
