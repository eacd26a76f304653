#!/usr/bin/env python3
"""
poll-reactor: Timer-Multiplexing Service Daemon

Main entry point for the poll-reactor daemon. This service:
1. Loads periodic services from a TOML configuration
2. Registers them with a single-threaded TimerMultiplexingReactor
3. Dispatches each service on its own interval, due-time aligned
4. Publishes status to a JSON file and an HTTP health endpoint

Usage:
    # Start daemon
    poll-reactor --config /etc/poll-reactor/config.toml

    # Dry run: ten virtual minutes, no HTTP, no status file
    poll-reactor --config config.toml --simulate 600

Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       poll-reactor                        │
    │                                                           │
    │  config.toml ──▶ services ──▶ TimerMultiplexingReactor    │
    │                                   │                       │
    │                 ┌─────────────────┴──────────────┐        │
    │                 ▼                                ▼        │
    │       /dev/shm/poll_reactor_status.json   HTTP :8080      │
    └──────────────────────────────────────────────────────────┘
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

logger = logging.getLogger('poll-reactor')

from .engine import (
    ErrorPolicy,
    IdlePolicy,
    PollFailure,
    SimulatedClock,
    TimerMultiplexingReactor,
)
from .output.health_server import HealthServer
from .services.builtin import StatusFileService, build_service


DEFAULT_CONFIG: Dict[str, Any] = {
    'reactor': {
        'error_policy': 'log',
        'idle_policy': 'wait',
    },
    'output': {
        'status_path': '/dev/shm/poll_reactor_status.json',
        'status_interval': 5.0,
        'health_port': 8080,
        'health_bind': '0.0.0.0',
    },
    'services': [
        {'name': 'heartbeat', 'type': 'heartbeat', 'interval': 10.0},
    ],
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a TOML file, merged over the defaults.

    Tables ([reactor], [output]) are merged key by key; the services list
    from the file replaces the default one.
    """
    config = {
        'reactor': dict(DEFAULT_CONFIG['reactor']),
        'output': dict(DEFAULT_CONFIG['output']),
        'services': [dict(s) for s in DEFAULT_CONFIG['services']],
    }
    if not config_path:
        return config

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, 'r') as f:
        loaded = toml.load(f)

    for section in ('reactor', 'output'):
        config[section].update(loaded.get(section, {}))
    if 'services' in loaded:
        config['services'] = list(loaded['services'])
    return config


class ReactorDaemon:
    """
    Main poll-reactor daemon.

    Builds the reactor and its services from configuration, runs the
    dispatch loop, and tears services down on exit.
    """

    def __init__(self, config: Dict[str, Any], simulate: bool = False):
        """
        Initialize the daemon.

        Args:
            config: Configuration dictionary (see load_config)
            simulate: Use virtual time; skip HTTP and status file outputs
        """
        self.config = config
        self.simulate = simulate

        reactor_config = config.get('reactor', {})
        output_config = config.get('output', {})

        idle_policy = IdlePolicy(reactor_config.get('idle_policy', 'wait'))
        if simulate:
            # Virtual time cannot advance while idle
            idle_policy = IdlePolicy.EXIT

        self.reactor = TimerMultiplexingReactor(
            clock=SimulatedClock() if simulate else None,
            error_policy=ErrorPolicy(reactor_config.get('error_policy', 'log')),
            idle_policy=idle_policy,
            on_poll_error=self._on_poll_error,
        )

        self.services: List[Any] = [build_service(spec) for spec in config.get('services', [])]

        self.status_path = output_config.get('status_path')
        self.health_port = int(output_config.get('health_port', 0) or 0)
        self.health_bind = output_config.get('health_bind', '0.0.0.0')
        self.health_server: Optional[HealthServer] = None

        if not simulate and self.status_path:
            self.services.append(StatusFileService(
                self.reactor,
                path=self.status_path,
                interval=float(output_config.get('status_interval', 5.0)),
            ))

        for service in self.services:
            self.reactor.add(service)

        self.failures: Dict[str, int] = {}

        logger.info("=" * 60)
        logger.info("poll-reactor initializing")
        logger.info(f"  Services: {len(self.services)}")
        for service in self.services:
            logger.info(f"    {service.name}: every {service.poll_interval}s")
        logger.info(f"  Error policy: {self.reactor.error_policy.value}")
        logger.info(f"  Status file: {self.status_path if not simulate else 'disabled'}")
        logger.info(f"  Health port: {self.health_port if not simulate else 'disabled'}")
        logger.info(f"  Simulated time: {simulate}")
        logger.info("=" * 60)

    def run(self, duration: Optional[float] = None) -> int:
        """
        Run until signalled, or for ``duration`` seconds.

        Returns:
            Process exit code (0 on clean exit, 1 on halting poll failure)
        """
        if not self.simulate:
            signal.signal(signal.SIGTERM, self._signal_handler)
            signal.signal(signal.SIGINT, self._signal_handler)
            if self.health_port > 0:
                self.health_server = HealthServer(port=self.health_port, bind_address=self.health_bind)
                self.health_server.set_reactor(self.reactor)
                self.health_server.start()

        try:
            self.reactor.start(run_for=duration)
            return 0
        except PollFailure as e:
            logger.error(f"Halted: {e} ({e.__cause__!r})")
            return 1
        finally:
            self._cleanup()

    def _on_poll_error(self, registration, error: Exception):
        self.failures[registration.name] = self.failures.get(registration.name, 0) + 1

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, shutting down...")
        self.reactor.stop()

    def _cleanup(self):
        """Stop services and outputs."""
        logger.info("Cleaning up...")

        for service in reversed(self.services):
            if not self.reactor.is_registered(service):
                continue
            try:
                self.reactor.remove(service)
            except Exception as e:
                logger.error(f"Failed to stop {service.name}: {e}")

        if self.health_server:
            self.health_server.stop()
            self.health_server = None

        status = self.reactor.status()
        logger.info("=" * 60)
        logger.info(f"Polls: {status['polls']} ({status['poll_failures']} failed)")
        logger.info(f"Late dispatches: {status['late_dispatches']}")
        for name, count in sorted(self.failures.items()):
            logger.info(f"  {name}: {count} failures")
        logger.info("poll-reactor stopped")
        logger.info("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='poll-reactor: Timer-Multiplexing Service Daemon',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Start with config file
    poll-reactor --config /etc/poll-reactor/config.toml

    # Run for one hour, then exit
    poll-reactor --config config.toml --duration 3600

    # Dry run ten minutes of virtual time
    poll-reactor --config config.toml --simulate 600
        """
    )

    parser.add_argument(
        '--config', '-c',
        help='Path to TOML configuration file'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '--duration',
        type=float,
        help='Exit after this many seconds'
    )
    parser.add_argument(
        '--simulate',
        type=float,
        metavar='SECONDS',
        help='Run SECONDS of virtual time with no HTTP or status file output'
    )
    parser.add_argument(
        '--health-port',
        type=int,
        help='HTTP port for health monitoring endpoint (0 to disable)'
    )
    parser.add_argument(
        '--status-path',
        help='JSON status file path (overrides config)'
    )
    parser.add_argument(
        '--error-policy',
        choices=[p.value for p in ErrorPolicy],
        help='What to do when a poll fails (default: log)'
    )
    parser.add_argument(
        '--idle-policy',
        choices=[p.value for p in IdlePolicy],
        help='What to do with no pollable services (default: wait)'
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    try:
        config = load_config(args.config)
    except (OSError, toml.TomlDecodeError) as e:
        logger.error(f"Could not load configuration: {e}")
        return 2

    # Apply command-line overrides
    if args.health_port is not None:
        config['output']['health_port'] = args.health_port
    if args.status_path:
        config['output']['status_path'] = args.status_path
    if args.error_policy:
        config['reactor']['error_policy'] = args.error_policy
    if args.idle_policy:
        config['reactor']['idle_policy'] = args.idle_policy

    try:
        daemon = ReactorDaemon(config, simulate=args.simulate is not None)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    duration = args.simulate if args.simulate is not None else args.duration
    return daemon.run(duration=duration)


if __name__ == '__main__':
    sys.exit(main())
