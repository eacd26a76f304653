"""
Tests for configuration loading, the daemon wrapper and the CLI.
"""

import sys

import pytest

from poll_reactor.engine.reactor import ErrorPolicy, IdlePolicy
from poll_reactor.main import DEFAULT_CONFIG, ReactorDaemon, load_config, main
from poll_reactor.services.builtin import CommandService, HeartbeatService


CONFIG_TOML = """
[reactor]
error_policy = "halt"

[output]
health_port = 0

[[services]]
name = "fast"
type = "heartbeat"
interval = 0.5

[[services]]
name = "slow"
type = "heartbeat"
interval = 2.0
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "poll-reactor.toml"
    path.write_text(CONFIG_TOML)
    return path


class TestLoadConfig:
    """TOML configuration."""

    def test_defaults_without_file(self):
        config = load_config(None)

        assert config['reactor']['error_policy'] == 'log'
        assert config['output']['health_port'] == 8080
        assert config['services'] == DEFAULT_CONFIG['services']
        # Defaults are copied, not shared
        config['services'].append({})
        assert len(DEFAULT_CONFIG['services']) == 1

    def test_file_merges_over_defaults(self, config_file):
        config = load_config(str(config_file))

        assert config['reactor']['error_policy'] == 'halt'
        assert config['reactor']['idle_policy'] == 'wait'
        assert config['output']['health_port'] == 0
        assert config['output']['status_interval'] == 5.0
        assert [s['name'] for s in config['services']] == ['fast', 'slow']

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "absent.toml"))


class TestReactorDaemon:
    """Daemon wiring, run on virtual time."""

    def test_builds_services_from_config(self, config_file):
        daemon = ReactorDaemon(load_config(str(config_file)), simulate=True)

        assert [s.name for s in daemon.services] == ['fast', 'slow']
        assert all(isinstance(s, HeartbeatService) for s in daemon.services)
        assert daemon.reactor.error_policy == ErrorPolicy.HALT
        assert daemon.reactor.idle_policy == IdlePolicy.EXIT

    def test_status_file_service_added_when_not_simulating(self, tmp_path):
        config = load_config(None)
        config['output']['status_path'] = str(tmp_path / "status.json")

        daemon = ReactorDaemon(config)

        assert [s.name for s in daemon.services] == ['heartbeat', 'status-file']

    def test_simulated_run(self, config_file):
        daemon = ReactorDaemon(load_config(str(config_file)), simulate=True)
        fast, slow = daemon.services

        exit_code = daemon.run(duration=10.0)

        assert exit_code == 0
        assert fast.beats == 20
        assert slow.beats == 5
        # Cleanup removes every service
        assert daemon.reactor.registrations() == []

    def test_halting_failure_returns_nonzero(self):
        config = load_config(None)
        config['reactor']['error_policy'] = 'halt'
        config['services'] = [{
            'name': 'broken',
            'type': 'command',
            'command': [sys.executable, '-c', 'import sys; sys.exit(1)'],
            'interval': 1.0,
        }]
        daemon = ReactorDaemon(config, simulate=True)

        assert isinstance(daemon.services[0], CommandService)
        assert daemon.run(duration=5.0) == 1

    def test_logged_failures_are_counted(self):
        config = load_config(None)
        config['services'] = [{
            'name': 'broken',
            'type': 'command',
            'command': [sys.executable, '-c', 'import sys; sys.exit(1)'],
            'interval': 1.0,
        }]
        daemon = ReactorDaemon(config, simulate=True)

        assert daemon.run(duration=3.0) == 0
        assert daemon.failures == {'broken': 3}


class TestCli:
    """Command-line entry point."""

    def test_simulate(self, config_file):
        assert main(['--config', str(config_file), '--simulate', '4']) == 0

    def test_missing_config(self, tmp_path):
        assert main(['--config', str(tmp_path / 'absent.toml'), '--simulate', '1']) == 2

    def test_invalid_service_type(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text('[[services]]\nname = "x"\ntype = "bogus"\n')

        assert main(['--config', str(path), '--simulate', '1']) == 2

    def test_error_policy_override(self, config_file):
        # Config says halt; CLI override keeps running through failures
        assert main(['--config', str(config_file), '--simulate', '1', '--error-policy', 'log']) == 0
