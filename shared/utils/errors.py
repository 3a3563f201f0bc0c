"""
Cross-service error types for edgestack

Only failures that cross a component boundary live here. Component-local
errors (a failed query inside the API service, for instance) stay with the
component that raises them.
"""

from typing import Iterable, Optional


class EdgestackError(Exception):
    """Base class for edgestack errors"""


class ConfigurationError(EdgestackError):
    """A required setting is missing or invalid; the component must not start"""

    def __init__(self, message: str, fields: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.fields = tuple(fields or ())


class DependencyNotReadyError(EdgestackError):
    """A dependency did not pass its readiness check within the allowed wait"""

    def __init__(self, dependency: str, waited: float, attempts: int):
        super().__init__(
            f"{dependency} was not ready after {waited:.1f}s ({attempts} attempts)"
        )
        self.dependency = dependency
        self.waited = waited
        self.attempts = attempts


class UpstreamUnavailableError(EdgestackError):
    """The router could not get a response from an upstream service"""

    def __init__(self, upstream: str, reason: str, timed_out: bool = False):
        super().__init__(f"Upstream '{upstream}' unavailable: {reason}")
        self.upstream = upstream
        self.reason = reason
        self.timed_out = timed_out
