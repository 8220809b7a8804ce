"""
Audit trail: append-only recorder and the paginated read path.
"""

from eventgate.kernel.audit.recorder import AuditRecorder, serialize_payload, truncate_payload
from eventgate.kernel.audit.query import AuditPage, AuditQueryService, fetch_audit_logs

__all__ = [
    "AuditRecorder",
    "serialize_payload",
    "truncate_payload",
    "AuditPage",
    "AuditQueryService",
    "fetch_audit_logs",
]
