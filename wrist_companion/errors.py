"""
Error taxonomy for the wrist companion.

Transport failures are ConnectionError subclasses so callers can catch
them the same way they would catch a socket error.
"""

from typing import Optional


class CompanionError(Exception):
    """Base exception for companion errors."""


class NoEndpointsConfigured(CompanionError):
    """Neither a local nor an external Home Assistant address is set."""

    def __init__(self, message: str = "No addresses to request"):
        super().__init__(message)


class EndpointConnectionError(CompanionError, ConnectionError):
    """A Home Assistant endpoint could not be reached."""


class EndpointTimeout(EndpointConnectionError):
    """A request to one endpoint did not finish within its timeout."""

    def __init__(self, endpoint: str, timeout: Optional[float]):
        self.endpoint = endpoint
        self.timeout = timeout
        super().__init__(f"Request to {endpoint} endpoint timed out after {timeout}s")


class AllEndpointsFailed(EndpointConnectionError):
    """Every configured endpoint failed.

    ``failures`` maps endpoint name ("local", "external") to the error
    raised for it, in the order the endpoints were attempted.
    """

    def __init__(self, failures: dict[str, BaseException]):
        self.failures = dict(failures)
        super().__init__("Connection error")

    @property
    def timed_out(self) -> bool:
        """True when every endpoint failed by timing out."""
        return bool(self.failures) and all(
            isinstance(err, EndpointTimeout) for err in self.failures.values()
        )


class DecodeError(CompanionError, ValueError):
    """A body or message payload is not the JSON we expected."""


class HandlerError(CompanionError):
    """A device command handler failed without answering."""

    def __init__(self, method: str, cause: BaseException):
        self.method = method
        self.cause = cause
        super().__init__(f"{method} failed: {cause}")
