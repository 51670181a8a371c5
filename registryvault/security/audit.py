"""
Tamper-Aware Audit System
=========================

Append-only audit trail with chained hashes, persisted to a BlobStore.

Each event is stored as its own blob under "<iso-timestamp>-<EVENT>" and
carries the hash of the previous event, so deleting, reordering or editing
a stored event breaks verify_integrity().

Events describe what happened (sizes, counts, key epoch fingerprints);
they never carry key material or registry contents.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Final, List, Optional, Tuple

from registryvault.storage.blob_store import BlobStore

logger = logging.getLogger("registryvault.audit")

GENESIS_HASH: Final[str] = "genesis"


class AuditSeverity(Enum):
    """Audit event severity levels."""
    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AuditEventType(Enum):
    """Types of auditable events."""
    # Key lifecycle
    KEYS_GENERATED = "KEYS_GENERATED"
    KEYS_PROVISIONED = "KEYS_PROVISIONED"
    KEYS_LOADED = "KEYS_LOADED"
    VAULT_UNLOCK_FAILED = "VAULT_UNLOCK_FAILED"

    # Registry
    REGISTRY_SAVED = "REGISTRY_SAVED"
    REGISTRY_LOADED = "REGISTRY_LOADED"
    REGISTRY_DECRYPTION_FAILED = "REGISTRY_DECRYPTION_FAILED"
    UNSUPPORTED_ENVELOPE_VERSION = "UNSUPPORTED_ENVELOPE_VERSION"


@dataclass
class AuditEvent:
    """An auditable security event."""
    event_type: AuditEventType
    severity: AuditSeverity
    timestamp: datetime
    description: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    # Computed fields
    event_id: str = field(default="")
    previous_hash: str = field(default="")
    event_hash: str = field(default="")

    def __post_init__(self) -> None:
        if not self.event_id:
            self.event_id = hashlib.sha256(
                f"{self.timestamp.isoformat()}{self.event_type.value}{os.urandom(8).hex()}".encode()
            ).hexdigest()[:16]

    @property
    def key(self) -> str:
        """Blob key for this event."""
        return f"{self.timestamp.isoformat(timespec='microseconds')}-{self.event_type.value}"

    def _hashed_fields(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(timespec="microseconds"),
            "description": self.description,
            "details": self.details,
            "previous_hash": self.previous_hash,
        }

    def compute_hash(self, previous_hash: str) -> str:
        """Chain this event onto previous_hash and return its own hash."""
        self.previous_hash = previous_hash
        self.event_hash = _digest(self._hashed_fields())
        return self.event_hash

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        data = self._hashed_fields()
        data["event_hash"] = self.event_hash
        return data


def _digest(data: Dict[str, Any]) -> str:
    return hashlib.sha256(json.dumps(data, sort_keys=True, default=str).encode()).hexdigest()


class TamperAwareAuditLog:
    """
    Append-only audit log with tamper detection.

    Usage:
        audit = TamperAwareAuditLog(FileBlobStore(data_dir, "gadu-audit"))
        audit.log(AuditEventType.REGISTRY_SAVED, AuditSeverity.INFO,
                  "Registry saved", details={"lodgeCount": 3})
        ok, count = audit.verify_integrity()

    Features:
        - Chained SHA-256 hashes for integrity
        - One blob per event, keys in chronological order
        - Failures to persist an event propagate to the caller
    """

    def __init__(self, store: BlobStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._last_hash = GENESIS_HASH
        self._last_timestamp: Optional[datetime] = None
        self._event_count = 0

        self._load_chain()

    @property
    def event_count(self) -> int:
        return self._event_count

    def _load_chain(self) -> None:
        """Resume the chain from the newest stored event."""
        keys = self._store.list_keys()
        self._event_count = len(keys)
        if not keys:
            return

        raw = self._store.get(keys[-1])
        try:
            event = json.loads(raw)
            self._last_hash = event["event_hash"]
            self._last_timestamp = datetime.fromisoformat(event["timestamp"])
        except (TypeError, ValueError, KeyError):
            logger.warning("Newest audit event is unreadable; chain will not verify")
            self._last_hash = "corrupted"

    def _next_timestamp(self) -> datetime:
        # Keys must sort in append order even within one clock tick.
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def log(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity,
        description: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Append an audit event.

        Returns:
            Event ID
        """
        with self._lock:
            event = AuditEvent(
                event_type=event_type,
                severity=severity,
                timestamp=self._next_timestamp(),
                description=description,
                details=details or {},
            )
            event.compute_hash(self._last_hash)

            self._store.put(event.key, json.dumps(event.to_dict(), default=str).encode("utf-8"))

            self._last_hash = event.event_hash
            self._event_count += 1

        logger.info("[AUDIT] %s: %s", event_type.value, description)
        return event.event_id

    def _stored_events(self) -> List[Tuple[str, Optional[bytes]]]:
        return [(key, self._store.get(key)) for key in self._store.list_keys()]

    def verify_integrity(self) -> Tuple[bool, int]:
        """
        Verify the stored chain.

        Returns:
            Tuple of (is_valid, number of events verified before any break)
        """
        previous_hash = GENESIS_HASH
        count = 0

        for key, raw in self._stored_events():
            try:
                event = json.loads(raw)
                stored_hash = event.pop("event_hash")
            except (TypeError, ValueError, KeyError):
                return False, count

            if event.get("previous_hash") != previous_hash:
                return False, count
            if _digest(event) != stored_hash:
                return False, count
            if not key.endswith(f"-{event.get('event_type')}"):
                return False, count

            previous_hash = stored_hash
            count += 1

        return True, count

    def get_events(
        self,
        since: Optional[datetime] = None,
        event_type: Optional[AuditEventType] = None,
        severity: Optional[AuditSeverity] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Get filtered events, oldest first (read-only)."""
        events: List[Dict[str, Any]] = []

        for _, raw in self._stored_events():
            try:
                event = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning("Skipping unreadable audit event")
                continue

            if since and datetime.fromisoformat(event["timestamp"]) < since:
                continue
            if event_type and event.get("event_type") != event_type.value:
                continue
            if severity and event.get("severity") != severity.value:
                continue

            events.append(event)
            if len(events) >= limit:
                break

        return events
