"""
Timer-Multiplexing Reactor

Drives a set of independently scheduled periodic services from a single
thread. The loop always runs the next-due entry of the Timeline, then
reschedules each polled service at ``due + interval``.

Threading:
    The Timeline is owned by the thread running ``start()``. ``add()`` and
    ``remove()`` may be called from any thread (including from inside a
    ``poll()``); they validate membership under a lock and hand Timeline
    changes to the loop through a command queue, then set the wake-up event
    so a pending wait is re-evaluated.

    ┌────────────┐  commands   ┌──────────────────────────────────────┐
    │ add/remove │────────────▶│ loop: drain → peek → wait → pop →    │
    │ (any thread)│  + wakeup  │       poll each → reschedule         │
    └────────────┘             └──────────────────────────────────────┘
"""

import logging
import queue
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..interfaces.service import Registration, seconds_to_ticks, ticks_to_seconds
from .clock import MonotonicClock
from .errors import DoubleStartError, PollFailure, RegistrationError
from .timeline import Timeline

logger = logging.getLogger('poll-reactor.engine')


class ReactorState(Enum):
    """Reactor lifecycle state."""
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"        # Loop has exited; terminal


class ErrorPolicy(Enum):
    """What the loop does when a service's poll() raises."""
    LOG = "log"                # Log, count, notify callback, keep going
    HALT = "halt"              # Stop the loop and raise PollFailure from start()


class IdlePolicy(Enum):
    """What the loop does when no pollable service is scheduled."""
    WAIT = "wait"              # Block until a registration or stop()
    EXIT = "exit"              # Return from start()


class TimerMultiplexingReactor:
    """
    Single-threaded dispatcher for periodic services.

    Usage:
        reactor = TimerMultiplexingReactor()
        reactor.add(service_a)
        reactor.add(service_b)
        reactor.start()            # blocks until stop() or run_for elapses
    """

    def __init__(
        self,
        clock=None,
        error_policy: ErrorPolicy = ErrorPolicy.LOG,
        idle_policy: IdlePolicy = IdlePolicy.WAIT,
        on_poll_error: Optional[Callable[[Registration, Exception], None]] = None,
    ):
        """
        Initialize the reactor.

        Args:
            clock: MonotonicClock (default) or SimulatedClock
            error_policy: Handling of exceptions raised by poll()
            idle_policy: Behaviour when the Timeline is empty
            on_poll_error: Called with (registration, exception) under ErrorPolicy.LOG
        """
        self.clock = clock or MonotonicClock()
        self.error_policy = ErrorPolicy(error_policy)
        self.idle_policy = IdlePolicy(idle_policy)
        self.on_poll_error = on_poll_error

        self.state = ReactorState.NOT_STARTED
        self.timeline = Timeline()

        self._registrations: Dict[int, Registration] = {}
        self._lock = threading.Lock()
        self._commands: "queue.SimpleQueue[Tuple[str, Registration, Optional[int]]]" = queue.SimpleQueue()
        self._wakeup = threading.Event()
        self._cancel = threading.Event()

        self.start_tick: Optional[int] = None
        self.deadline: Optional[int] = None
        self.last_popped_due: Optional[int] = None

        # Statistics
        self.stats = {
            'loop_iterations': 0,
            'dispatches': 0,
            'polls': 0,
            'poll_failures': 0,
            'late_dispatches': 0,
            'wakeups': 0,
            'start_time': 0.0,
        }

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add(self, service: Any) -> Registration:
        """
        Register a service.

        If the reactor is running, ``service.start()`` is called in the
        caller's thread and, for pollable services, the service is scheduled
        at ``now + poll_interval``.

        Raises:
            RegistrationError: service is already registered
            ValueError: pollable service with a non-positive interval
        """
        registration = Registration.for_service(service)
        key = id(service)

        with self._lock:
            if key in self._registrations:
                raise RegistrationError(f"Service '{registration.name}' is already registered")
            self._registrations[key] = registration
            running = self.state == ReactorState.RUNNING

        if not running:
            logger.debug(f"Registered {registration.name} (pending start)")
            return registration

        try:
            service.start()
        except Exception:
            with self._lock:
                self._registrations.pop(key, None)
            registration.active = False
            raise

        if registration.pollable:
            self._submit('schedule', registration, self.clock.now() + registration.interval)

        logger.info(f"Added {registration.name} (interval={registration.interval_seconds}s)")
        return registration

    def remove(self, service: Any):
        """
        Unregister a service and call its ``stop()`` if it has one.

        The service is never polled again once this returns, including when
        its entry has already been popped by the loop.

        Raises:
            RegistrationError: service is not registered
        """
        with self._lock:
            registration = self._registrations.pop(id(service), None)
            if registration is None:
                raise RegistrationError(f"Service '{getattr(service, 'name', service)}' is not registered")
            registration.active = False
            running = self.state == ReactorState.RUNNING

        if running and registration.pollable:
            self._submit('unschedule', registration, None)

        stop = getattr(service, 'stop', None)
        if callable(stop):
            stop()

        logger.info(f"Removed {registration.name}")

    def registrations(self) -> List[Registration]:
        """Registered services in registration order."""
        with self._lock:
            return sorted(self._registrations.values(), key=lambda r: r.seq)

    def is_registered(self, service: Any) -> bool:
        """True if this exact service object is registered."""
        with self._lock:
            registration = self._registrations.get(id(service))
        return registration is not None and registration.service is service

    def _submit(self, command: str, registration: Registration, due: Optional[int]):
        self._commands.put((command, registration, due))
        self._wakeup.set()

    def _drain_commands(self):
        while True:
            try:
                command, registration, due = self._commands.get_nowait()
            except queue.Empty:
                return
            if command == 'schedule':
                if registration.active:
                    self.timeline.insert(registration, due)
            elif command == 'unschedule':
                self.timeline.discard(registration)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, run_for: Optional[float] = None):
        """
        Start every registered service and run the dispatch loop (blocking).

        Args:
            run_for: Optional bound in seconds; the loop exits once the next
                due-time lies beyond ``start + run_for``

        Raises:
            DoubleStartError: reactor is running or has already stopped
            PollFailure: a poll() raised under ErrorPolicy.HALT
        """
        with self._lock:
            if self.state != ReactorState.NOT_STARTED:
                raise DoubleStartError(f"Reactor cannot start from state {self.state.value}")
            self.state = ReactorState.RUNNING
            pending = sorted(self._registrations.values(), key=lambda r: r.seq)

        self.stats['start_time'] = time.time()
        self.start_tick = self.clock.now()
        self.deadline = self.start_tick + seconds_to_ticks(run_for) if run_for is not None else None

        logger.info("=" * 60)
        logger.info("Reactor starting")
        logger.info(f"  Services: {len(pending)}")
        logger.info(f"  Error policy: {self.error_policy.value}")
        logger.info(f"  Idle policy: {self.idle_policy.value}")
        if run_for is not None:
            logger.info(f"  Run for: {run_for}s")
        logger.info("=" * 60)

        try:
            for registration in pending:
                if not registration.active:
                    continue
                registration.service.start()
                if registration.pollable:
                    self.timeline.insert(registration, self.start_tick + registration.interval)
                logger.info(f"  Started: {registration.name}")

            self._run_loop()
        finally:
            with self._lock:
                self.state = ReactorState.STOPPED
            logger.info(
                f"Reactor stopped after {self.stats['loop_iterations']} iterations, "
                f"{self.stats['polls']} polls ({self.stats['poll_failures']} failed)"
            )

    def stop(self):
        """Request loop exit after the current iteration. Services are not stopped."""
        logger.info("Reactor stop requested")
        self._cancel.set()
        self._wakeup.set()

    @property
    def running(self) -> bool:
        """True while the dispatch loop is active."""
        return self.state == ReactorState.RUNNING

    # ------------------------------------------------------------------
    # Dispatch loop
    # ------------------------------------------------------------------

    def _run_loop(self):
        logger.debug("Entering dispatch loop")

        while True:
            # Reset before the cancel check; a stop() after this leaves it set
            self._wakeup.clear()
            if self._cancel.is_set():
                break
            self.stats['loop_iterations'] += 1
            self._drain_commands()

            due = self.timeline.next_due()
            if due is None:
                if self.idle_policy == IdlePolicy.EXIT:
                    logger.info("Timeline empty, exiting loop")
                    break
                logger.debug("Timeline empty, waiting for registrations")
                self.clock.wait(self._wakeup, None)
                self.stats['wakeups'] += 1
                continue

            if self.deadline is not None and due > self.deadline:
                logger.info("Run duration elapsed, exiting loop")
                break

            delay = due - self.clock.now()
            if delay > 0:
                if self.clock.wait(self._wakeup, delay):
                    # Registration change or stop(); re-evaluate the head
                    self.stats['wakeups'] += 1
                    continue
            elif delay < 0:
                self.stats['late_dispatches'] += 1
                logger.debug(f"Dispatch running {ticks_to_seconds(-delay) * 1000:.1f}ms late")

            entry = self.timeline.pop_next()
            self.last_popped_due = entry.due
            self.stats['dispatches'] += 1
            self._dispatch(entry.due, list(entry))

        logger.debug("Dispatch loop exited")

    def _dispatch(self, due: int, batch: List[Registration]):
        for index, registration in enumerate(batch):
            if not registration.active:
                continue

            started = self.clock.now()
            error = None
            try:
                registration.service.poll()
            except Exception as e:
                error = e
                if self.error_policy == ErrorPolicy.LOG:
                    logger.exception(f"poll() failed for {registration.name}: {e}")
            finished = self.clock.now()

            registration.stats.record(due, started, finished, error)
            self.stats['polls'] += 1

            # Next due-time from the scheduled time, not from completion
            if registration.active:
                self.timeline.insert(registration, due + registration.interval)

            if error is None:
                continue

            self.stats['poll_failures'] += 1
            if self.error_policy == ErrorPolicy.HALT:
                for rest in batch[index + 1:]:
                    if rest.active:
                        self.timeline.insert(rest, due)
                logger.error(f"poll() failed for {registration.name}, halting: {error}")
                raise PollFailure(registration.name, due) from error

            if self.on_poll_error:
                try:
                    self.on_poll_error(registration, error)
                except Exception as callback_error:
                    logger.exception(f"on_poll_error callback failed: {callback_error}")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def timeline_snapshot(self) -> List[Tuple[float, List[str]]]:
        """Scheduled entries as (seconds since start, [names]); loop thread only."""
        origin = self.start_tick or 0
        return [(ticks_to_seconds(due - origin), names) for due, names in self.timeline.snapshot()]

    def status(self) -> Dict[str, Any]:
        """Thread-safe status summary for monitoring outputs."""
        registrations = self.registrations()
        origin = self.start_tick
        now = self.clock.now()
        services = {}
        for registration in registrations:
            entry = registration.to_dict()
            if origin is not None and registration.due is not None:
                entry['next_due'] = ticks_to_seconds(registration.due - origin)
            services[registration.name] = entry

        return {
            'timestamp': time.time(),
            'state': self.state.value,
            'error_policy': self.error_policy.value,
            'idle_policy': self.idle_policy.value,
            'uptime_seconds': ticks_to_seconds(now - origin) if origin is not None else 0.0,
            'services_registered': len(registrations),
            'services_pollable': sum(1 for r in registrations if r.pollable),
            'loop_iterations': self.stats['loop_iterations'],
            'dispatches': self.stats['dispatches'],
            'polls': self.stats['polls'],
            'poll_failures': self.stats['poll_failures'],
            'late_dispatches': self.stats['late_dispatches'],
            'services': services,
        }
