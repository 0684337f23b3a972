"""
Audit entry model.

AuditEvent is what producers hand to the writer. AuditLogEntry is what the
storage layer returns: the same fields plus the storage-assigned id and
timestamp and the chain link (previous_hash).
"""

from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .canonical import format_timestamp


class AuditStatus(str, Enum):
    """Outcome of the audited action."""
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


STATUS_VALUES = frozenset(s.value for s in AuditStatus)

# Python attribute -> wire name used in hashes and API payloads
WIRE_NAMES: Dict[str, str] = {
    "id": "id",
    "timestamp": "timestamp",
    "actor_id": "actorId",
    "actor_email": "actorEmail",
    "actor_role": "actorRole",
    "action": "action",
    "resource_type": "resourceType",
    "resource_id": "resourceId",
    "ip_address": "ipAddress",
    "user_agent": "userAgent",
    "request_method": "requestMethod",
    "request_path": "requestPath",
    "status": "status",
    "error_code": "errorCode",
    "error_message": "errorMessage",
    "metadata": "metadata",
    "previous_hash": "previousHash",
}


def _normalize_status(status: Any) -> str:
    value = status.value if isinstance(status, AuditStatus) else status
    if value not in STATUS_VALUES:
        raise ValueError(f"invalid audit status: {status!r} (expected one of {sorted(STATUS_VALUES)})")
    return value


@dataclass(frozen=True)
class AuditEvent:
    """
    Description of a security-relevant action, as submitted by a producer.

    Fields:
        action: Short dotted name, e.g. "auth.login", "phi.read" (required)
        status: One of success / failure / error (required)
        actor_*: Identity of the principal, None for unauthenticated/system events
        resource_*: Subject of the action
        ip_address, user_agent, request_method, request_path: Request context
        error_code, error_message: Failure detail
        metadata: Opaque JSON-serializable payload, stored and hashed as-is
    """
    action: str
    status: str
    actor_id: Optional[str] = None
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_method: Optional[str] = None
    request_path: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        if not self.action or not isinstance(self.action, str):
            raise ValueError("audit event action is required")
        object.__setattr__(self, "status", _normalize_status(self.status))
        # ids are stored as text so integer and string keys chain identically
        for name in ("actor_id", "resource_id"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                object.__setattr__(self, name, str(value))

    def column_values(self) -> Dict[str, Any]:
        """Values for the storage insert, keyed by column name."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class AuditLogEntry:
    """
    Immutable stored audit record.

    previous_hash is the chain link: "" for the first entry, otherwise the
    digest of the preceding entry. None only for legacy rows that predate
    chaining and have not been backfilled.
    """
    id: int
    timestamp: datetime
    action: str
    status: str
    actor_id: Optional[str] = None
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_method: Optional[str] = None
    request_path: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    previous_hash: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AuditLogEntry":
        """Build from a storage row mapping; missing columns read as None."""
        return cls(**{f.name: row.get(f.name) for f in fields(cls)})

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation (camelCase keys, ISO timestamp)."""
        data = {WIRE_NAMES[f.name]: getattr(self, f.name) for f in fields(self)}
        data["timestamp"] = format_timestamp(self.timestamp) if self.timestamp else None
        return data
