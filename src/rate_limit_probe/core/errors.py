"""
Error types raised by the rate limit probe.

A run normally ends with one of three stop reasons. Everything here covers
the other cases: the run could not finish, or it could not start.
"""

from typing import Optional


class ProbeError(Exception):
    """Base class for all probe errors."""


class ConfigurationError(ProbeError):
    """Raised when probe settings are missing or out of range."""


class TransportError(ProbeError):
    """
    A single attempt could not be resolved into a response.

    Fatal for the whole run. When raised by the dispatcher it carries the
    elapsed time and completed-request count captured at the moment the
    failure was accepted as the run's terminal state.
    """

    def __init__(
        self,
        message: str,
        elapsed: Optional[float] = None,
        requests_completed: Optional[int] = None,
    ):
        super().__init__(message)
        self.elapsed = elapsed
        self.requests_completed = requests_completed
