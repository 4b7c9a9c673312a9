"""
Audit trail for medconsent

Records registrations, logins, consent changes and record views
in a tamper-evident hash chain.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Optional, Dict, Any, List
from enum import Enum
import json
import threading
import structlog

from ..constants import AuditEventTypes
from ..crypto.hash import HashChain
from ..utils.ids import generate_audit_id

logger = structlog.get_logger(__name__)


class AuditSeverity(str, Enum):
    """Audit event severity levels"""
    INFO = "info"
    WARNING = "warning"


@dataclass
class AuditEvent:
    """
    Represents an audit event.

    Attributes:
        event_type: Type of audit event
        actor_id: Account that performed the action (if known)
        subject_key: Individual whose data or consent is involved (if any)
        severity: Event severity level
        message: Human-readable description
        details: Additional structured data
        timestamp: When the event occurred
        event_id: Unique identifier for the event
        hash: Chain hash after this event was appended
    """
    event_type: str
    actor_id: Optional[str] = None
    subject_key: Optional[str] = None
    severity: AuditSeverity = AuditSeverity.INFO
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_id: str = field(default_factory=generate_audit_id)
    hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert audit event to dictionary for logging/storage"""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "severity": self.severity.value,
            "actor_id": self.actor_id,
            "subject_key": self.subject_key,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_audit_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':')).encode('utf-8')


class AuditTrail:
    """In-process audit sink with hash chain integrity"""

    def __init__(self):
        self._events: List[AuditEvent] = []
        self._chain = HashChain()
        self._lock = threading.Lock()

    def record(self, event: AuditEvent) -> AuditEvent:
        with self._lock:
            event.hash = self._chain.append(event.to_audit_bytes())
            self._events.append(event)

        log = logger.warning if event.severity == AuditSeverity.WARNING else logger.info
        log("Audit event", **event.to_dict())
        return event

    def events(self, event_type: Optional[str] = None,
               subject_key: Optional[str] = None) -> List[AuditEvent]:
        with self._lock:
            return [
                e for e in self._events
                if (event_type is None or e.event_type == event_type)
                and (subject_key is None or e.subject_key == subject_key)
            ]

    def verify_integrity(self) -> bool:
        """Replay the chain and compare with the stored head"""
        with self._lock:
            entries = [e.to_audit_bytes() for e in self._events]
            return self._chain.matches(entries)


def create_consent_event(
    event_type: str,
    subject_key: str,
    request_id: str,
    kind: str,
    actor_id: Optional[str] = None,
) -> AuditEvent:
    """
    Create a consent-related audit event.

    Args:
        event_type: One of the consent event types
        subject_key: Individual asked for consent
        request_id: Consent request affected
        kind: "upload" or "access"
        actor_id: Who filed or resolved the request
    """
    return AuditEvent(
        event_type=event_type,
        actor_id=actor_id,
        subject_key=subject_key,
        message=f"Consent {event_type} for {kind} request '{request_id}'",
        details={"request_id": request_id, "kind": kind},
    )


def create_data_access_event(
    actor_id: str,
    subject_key: str,
    record_ids: List[str],
    action: str = "view",
) -> AuditEvent:
    """Create an event for records read or written by an institution"""
    event_type = (AuditEventTypes.RECORD_UPLOADED if action == "upload"
                  else AuditEventTypes.RECORDS_VIEWED)
    return AuditEvent(
        event_type=event_type,
        actor_id=actor_id,
        subject_key=subject_key,
        message=f"Records {action} for subject",
        details={"record_ids": record_ids, "count": len(record_ids)},
    )


def create_identity_event(
    event_type: str,
    message: str,
    actor_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditEvent:
    """Create a registration or login event; failures are warnings"""
    severity = (AuditSeverity.WARNING if event_type == AuditEventTypes.LOGIN_FAILURE
                else AuditSeverity.INFO)
    return AuditEvent(
        event_type=event_type,
        actor_id=actor_id,
        severity=severity,
        message=message,
        details=details or {},
    )


__all__ = [
    "AuditSeverity",
    "AuditEvent",
    "AuditTrail",
    "create_consent_event",
    "create_data_access_event",
    "create_identity_event",
]
