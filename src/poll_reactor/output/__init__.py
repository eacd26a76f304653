"""Output adapters - JSON status file and HTTP health monitoring."""

from .health_server import HealthServer
from .status_writer import StatusReader, StatusWriter

__all__ = ['HealthServer', 'StatusReader', 'StatusWriter']
