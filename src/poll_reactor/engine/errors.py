"""Reactor exception hierarchy."""


class ReactorError(Exception):
    """Base class for reactor errors."""


class RegistrationError(ReactorError):
    """Duplicate add() or remove() of an unregistered service."""


class DoubleStartError(ReactorError):
    """start() called on a reactor that is running or already stopped."""


class PollFailure(ReactorError):
    """
    A service's poll() raised while the reactor runs with ErrorPolicy.HALT.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, service_name: str, due: int):
        super().__init__(f"poll() failed for service '{service_name}' (due={due})")
        self.service_name = service_name
        self.due = due
