"""
Domain exceptions for the authorization and audit core.

Denials are never exceptions; only infrastructure failures are raised.
"""

from typing import Optional


class EventGateError(Exception):
    """Base class for core errors."""


class StoreFailureError(EventGateError):
    """
    The relational store could not answer a lookup.

    Raised instead of returning a denial so callers and telemetry can tell
    an outage apart from a legitimate authorization decision.
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"store failure during {operation}{detail}")


class InvalidGrantError(EventGateError, ValueError):
    """A grant was requested with a role that cannot be granted on a resource."""
