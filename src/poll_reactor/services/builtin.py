"""
Built-in services for the poll-reactor daemon.

Services:
    HeartbeatService   - logs a heartbeat every interval
    CommandService     - runs an external command every interval
    StatusFileService  - publishes reactor status to a JSON file

Config tables (``[[services]]`` in the TOML file) are turned into services by
``build_service()``:

    [[services]]
    name = "disk-usage"
    type = "command"
    command = ["df", "-h", "/"]
    interval = 60.0
    timeout = 10.0
"""

import logging
import shlex
import subprocess
from typing import Any, Dict, List, Optional, Union

from ..interfaces.service import PollableService
from ..output.status_writer import StatusWriter

logger = logging.getLogger('poll-reactor.services')


class CommandFailed(RuntimeError):
    """External command exited non-zero or timed out."""

    def __init__(self, name: str, message: str, returncode: Optional[int] = None):
        super().__init__(f"{name}: {message}")
        self.returncode = returncode


class HeartbeatService(PollableService):
    """Logs a heartbeat line; useful as a liveness signal in journald."""

    def __init__(self, name: str = "heartbeat", interval: float = 10.0):
        self.name = name
        self.poll_interval = interval
        self.beats = 0

    def start(self):
        logger.info(f"{self.name}: heartbeat every {self.poll_interval}s")

    def poll(self):
        self.beats += 1
        logger.info(f"{self.name}: beat #{self.beats}")

    def stop(self):
        logger.info(f"{self.name}: stopped after {self.beats} beats")


class CommandService(PollableService):
    """
    Runs an external command once per interval.

    A non-zero exit status or a timeout raises CommandFailed from poll(),
    so the reactor's error policy decides what happens next.
    """

    OUTPUT_TAIL_CHARS = 2000

    def __init__(
        self,
        name: str,
        command: Union[str, List[str]],
        interval: float = 60.0,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
    ):
        """
        Args:
            name: Service name
            command: argv list, or a string split with shlex
            interval: Poll interval in seconds
            timeout: Per-run timeout in seconds (default: the interval)
            cwd: Working directory for the command
        """
        self.name = name
        self.argv = shlex.split(command) if isinstance(command, str) else list(command)
        if not self.argv:
            raise ValueError(f"{name}: command must not be empty")
        self.poll_interval = interval
        self.timeout = timeout if timeout is not None else interval
        self.cwd = cwd

        self.runs = 0
        self.last_returncode: Optional[int] = None
        self.last_output = ""

    def start(self):
        logger.info(f"{self.name}: running {' '.join(self.argv)} every {self.poll_interval}s")

    def poll(self):
        self.runs += 1
        try:
            completed = subprocess.run(
                self.argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                cwd=self.cwd,
            )
        except subprocess.TimeoutExpired as e:
            self.last_returncode = None
            raise CommandFailed(self.name, f"timed out after {self.timeout}s") from e
        except OSError as e:
            self.last_returncode = None
            raise CommandFailed(self.name, f"could not execute {self.argv[0]}: {e}") from e

        self.last_returncode = completed.returncode
        self.last_output = (completed.stdout + completed.stderr)[-self.OUTPUT_TAIL_CHARS:]

        if completed.returncode != 0:
            raise CommandFailed(
                self.name,
                f"exit status {completed.returncode}",
                returncode=completed.returncode,
            )
        logger.debug(f"{self.name}: run #{self.runs} ok")


class StatusFileService(PollableService):
    """Writes ``reactor.status()`` to a JSON file every interval."""

    def __init__(self, reactor, path: Optional[str] = None, interval: float = 5.0, name: str = "status-file"):
        self.name = name
        self.reactor = reactor
        self.poll_interval = interval
        self.writer = StatusWriter(path)

    def start(self):
        self.writer.write(self.reactor.status())

    def poll(self):
        if not self.writer.write(self.reactor.status()):
            raise OSError(f"Could not write status file {self.writer.path}")

    def stop(self):
        self.writer.clear()


SERVICE_TYPES = ('heartbeat', 'command')


def build_service(spec: Dict[str, Any]):
    """
    Build a service from a config table.

    Args:
        spec: Dict with 'type', 'name', 'interval' and type-specific keys

    Raises:
        ValueError: unknown type or missing required key
    """
    kind = spec.get('type', 'heartbeat')
    name = spec.get('name', kind)
    interval = float(spec.get('interval', 10.0))

    if kind == 'heartbeat':
        return HeartbeatService(name=name, interval=interval)

    if kind == 'command':
        if 'command' not in spec:
            raise ValueError(f"Service '{name}': 'command' is required for type 'command'")
        return CommandService(
            name=name,
            command=spec['command'],
            interval=interval,
            timeout=spec.get('timeout'),
            cwd=spec.get('cwd'),
        )

    raise ValueError(f"Service '{name}': unknown type '{kind}' (expected one of {', '.join(SERVICE_TYPES)})")
