"""Ready-made services and the config-driven service factory."""

from .builtin import (
    CommandFailed,
    CommandService,
    HeartbeatService,
    StatusFileService,
    build_service,
)

__all__ = [
    'CommandFailed',
    'CommandService',
    'HeartbeatService',
    'StatusFileService',
    'build_service',
]
