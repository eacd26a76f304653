"""
Status File Writer for poll-reactor

Writes the reactor's status summary as JSON so that other processes can
inspect a running daemon without talking HTTP. Defaults to a tmpfs path.

The file is updated atomically (write to temp, rename) to prevent partial
reads.

Usage:
    writer = StatusWriter('/dev/shm/poll_reactor_status.json')
    writer.write(reactor.status())
"""

import json
import os
import tempfile
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger('poll-reactor.output')


class StatusWriter:
    """
    Writes reactor status to a JSON file.

    Updates are atomic (write to temp file, then rename).
    """

    DEFAULT_PATH = "/dev/shm/poll_reactor_status.json"

    def __init__(self, path: Optional[str] = None):
        """
        Initialize status writer.

        Args:
            path: Output file path (default: /dev/shm/poll_reactor_status.json)
        """
        self.path = Path(path or self.DEFAULT_PATH)
        self.write_count = 0

        self.path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"StatusWriter initialized: {self.path}")

    def write(self, status: Dict[str, Any]) -> bool:
        """
        Write a status dictionary.

        Args:
            status: JSON-serializable status (e.g. TimerMultiplexingReactor.status())

        Returns:
            True if successful, False on error
        """
        try:
            json_data = json.dumps(status, indent=2)

            # Temp file must share the directory for rename to be atomic
            fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=f'.{self.path.stem}_',
                suffix='.tmp'
            )

            try:
                with os.fdopen(fd, 'w') as f:
                    f.write(json_data)
                os.replace(temp_path, self.path)
            except Exception:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise

            self.write_count += 1
            if self.write_count % 60 == 0:
                logger.debug(
                    f"Status write #{self.write_count}: "
                    f"state={status.get('state')}, polls={status.get('polls')}"
                )
            return True

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write status file: {e}")
            return False

    def clear(self):
        """Remove the status file."""
        try:
            if self.path.exists():
                self.path.unlink()
                logger.info(f"Cleared status file: {self.path}")
        except OSError as e:
            logger.warning(f"Failed to clear status file: {e}")


class StatusReader:
    """
    Reads reactor status written by StatusWriter.

    Usage:
        reader = StatusReader('/dev/shm/poll_reactor_status.json')
        if reader.is_running():
            print(reader.read()['polls'])
    """

    DEFAULT_PATH = StatusWriter.DEFAULT_PATH

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or self.DEFAULT_PATH)

    def read(self) -> Optional[Dict[str, Any]]:
        """
        Read the current status.

        Returns:
            Status dictionary or None if unavailable
        """
        try:
            if not self.path.exists():
                return None
            with open(self.path, 'r') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in status file: {e}")
            return None
        except OSError as e:
            logger.warning(f"Failed to read status file: {e}")
            return None

    def service(self, name: str) -> Optional[Dict[str, Any]]:
        """Status entry for one service, or None."""
        status = self.read()
        if status:
            return status.get('services', {}).get(name)
        return None

    def is_running(self) -> bool:
        status = self.read()
        return status is not None and status.get('state') == 'RUNNING'

    @property
    def available(self) -> bool:
        return self.path.exists()
