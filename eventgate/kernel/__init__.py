"""
Kernel layer: authorization and audit.

- Role capability matrix and resource grants
- Permission resolver (ownership, global admin, grants, rule -> event fallback)
- Append-only audit recorder and its query service

Architectural invariants:
- Missing or malformed state resolves to deny
- Store failures are raised, never reported as denials
- Audit entries are written after the mutation commits and never updated
"""

from eventgate.kernel.errors import EventGateError, InvalidGrantError, StoreFailureError
from eventgate.kernel.result import ErrorKind, Result

__all__ = [
    "EventGateError",
    "InvalidGrantError",
    "StoreFailureError",
    "ErrorKind",
    "Result",
]
