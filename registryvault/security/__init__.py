"""
Security module - Deployment constants and the audit trail.

Security Considerations:
- Use only approved algorithms (AES-256-GCM, ML-KEM, RSA-OAEP)
- Audit events never carry key material or registry contents
- Fail closed: audit persistence errors propagate
"""

from registryvault.security.constants import (
    ENCRYPTION_SCHEME,
    ENVELOPE_VERSION,
    KEM_PUBLIC_KEY_NAME,
    MASTER_KEY_NAME,
    RSA_PUBLIC_KEY_NAME,
)
from registryvault.security.audit import (
    TamperAwareAuditLog,
    AuditEvent,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Constants
    "ENCRYPTION_SCHEME",
    "ENVELOPE_VERSION",
    "KEM_PUBLIC_KEY_NAME",
    "MASTER_KEY_NAME",
    "RSA_PUBLIC_KEY_NAME",
    # Audit
    "TamperAwareAuditLog",
    "AuditEvent",
    "AuditEventType",
    "AuditSeverity",
]
