"""
Tests for built-in services, the service factory, and service statistics.
"""

import json
import sys

import pytest
from unittest.mock import MagicMock

from poll_reactor.interfaces.service import (
    Registration,
    ServiceStats,
    pollable_interval,
    seconds_to_ticks,
)
from poll_reactor.services.builtin import (
    CommandFailed,
    CommandService,
    HeartbeatService,
    StatusFileService,
    build_service,
)


class TestCapabilityCheck:
    """Pollable detection is evaluated once per registration."""

    def test_pollable_interval_in_ticks(self):
        assert pollable_interval(HeartbeatService(interval=0.25)) == 250_000_000

    def test_object_without_poll_is_not_pollable(self):
        class OnlyStart:
            poll_interval = 1.0

            def start(self):
                pass

        assert pollable_interval(OnlyStart()) is None

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError):
            pollable_interval(HeartbeatService(interval=-1))

    def test_interval_cached_at_registration(self):
        service = HeartbeatService(interval=1.0)
        registration = Registration.for_service(service)

        service.poll_interval = 5.0

        assert registration.interval == seconds_to_ticks(1.0)
        assert registration.interval_seconds == 1.0


class TestServiceStats:
    """Latency summaries."""

    def test_empty_summary(self):
        assert ServiceStats().latency_summary() == {'p50_ms': 0.0, 'p95_ms': 0.0, 'max_ms': 0.0}

    def test_record_counts_failures_and_late_polls(self):
        stats = ServiceStats()
        stats.record(due=100, started=100, finished=2_000_100)
        stats.record(due=200, started=500, finished=4_000_500, error=ValueError("bad"))

        assert stats.polls == 2
        assert stats.failures == 1
        assert stats.late_polls == 1
        assert stats.last_error == "ValueError: bad"

        summary = stats.latency_summary()
        assert summary['max_ms'] == pytest.approx(4.0)
        assert summary['p50_ms'] == pytest.approx(3.0)


class TestHeartbeatService:

    def test_counts_beats(self):
        service = HeartbeatService(name="hb", interval=2.0)
        service.start()
        service.poll()
        service.poll()

        assert service.beats == 2
        assert service.poll_interval == 2.0


class TestCommandService:
    """External command execution."""

    def test_successful_command(self):
        service = CommandService("echo", [sys.executable, "-c", "print('hello')"], interval=1.0)
        service.poll()

        assert service.runs == 1
        assert service.last_returncode == 0
        assert "hello" in service.last_output

    def test_nonzero_exit_raises(self):
        service = CommandService("fail", [sys.executable, "-c", "import sys; sys.exit(3)"], interval=1.0)

        with pytest.raises(CommandFailed) as excinfo:
            service.poll()

        assert excinfo.value.returncode == 3
        assert service.last_returncode == 3

    def test_timeout_raises(self):
        service = CommandService(
            "sleepy",
            [sys.executable, "-c", "import time; time.sleep(5)"],
            interval=1.0,
            timeout=0.2,
        )

        with pytest.raises(CommandFailed, match="timed out"):
            service.poll()

    def test_missing_executable_raises(self):
        service = CommandService("missing", ["/nonexistent/poll-reactor-test-binary"], interval=1.0)

        with pytest.raises(CommandFailed, match="could not execute"):
            service.poll()

    def test_string_command_is_split(self):
        service = CommandService("df", "df -h '/var/lib'", interval=60.0)
        assert service.argv == ["df", "-h", "/var/lib"]

    def test_timeout_defaults_to_interval(self):
        service = CommandService("x", ["true"], interval=7.5)
        assert service.timeout == 7.5

    def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            CommandService("empty", [], interval=1.0)


class TestStatusFileService:
    """Status publishing service."""

    def test_writes_and_clears(self, tmp_path):
        reactor = MagicMock()
        reactor.status.return_value = {'state': 'RUNNING', 'polls': 7}
        path = tmp_path / "status.json"

        service = StatusFileService(reactor, path=str(path), interval=1.0)
        service.start()
        service.poll()

        assert json.loads(path.read_text()) == {'state': 'RUNNING', 'polls': 7}
        assert reactor.status.call_count == 2

        service.stop()
        assert not path.exists()


class TestBuildService:
    """Config table -> service."""

    def test_heartbeat(self):
        service = build_service({'name': 'hb', 'type': 'heartbeat', 'interval': 3})
        assert isinstance(service, HeartbeatService)
        assert service.name == 'hb'
        assert service.poll_interval == 3.0

    def test_command(self):
        service = build_service({
            'name': 'load',
            'type': 'command',
            'command': ['cat', '/proc/loadavg'],
            'interval': 60,
            'timeout': 5,
        })
        assert isinstance(service, CommandService)
        assert service.argv == ['cat', '/proc/loadavg']
        assert service.timeout == 5

    def test_defaults_to_heartbeat(self):
        service = build_service({})
        assert isinstance(service, HeartbeatService)
        assert service.name == 'heartbeat'

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="unknown type"):
            build_service({'name': 'x', 'type': 'carrier-pigeon'})

    def test_command_requires_command(self):
        with pytest.raises(ValueError, match="'command' is required"):
            build_service({'name': 'x', 'type': 'command'})
