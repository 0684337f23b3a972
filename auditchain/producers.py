"""
Audit helpers for the common security events.

Controllers describe who did what through a RequestContext and call one of
these; each builds the event and submits it to the writer. Request bodies
and credentials are never recorded (a login records only the email).
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .core.entry import AuditStatus
from .writer import AuditWriter


@dataclass(frozen=True)
class RequestContext:
    """
    Request-scoped identity and network context.

    actor_* are None for unauthenticated requests. endpoint is the full
    original URL (path plus query), request_path the routed path.
    """
    actor_id: Optional[str] = None
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_method: Optional[str] = None
    request_path: Optional[str] = None
    endpoint: Optional[str] = None

    def request_fields(self) -> Dict[str, Any]:
        return {
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "request_method": self.request_method,
            "request_path": self.request_path,
        }

    def actor_fields(self) -> Dict[str, Any]:
        return {
            "actor_id": self.actor_id,
            "actor_email": self.actor_email,
            "actor_role": self.actor_role,
        }


def log_auth_event(
    writer: AuditWriter,
    ctx: RequestContext,
    action: str,
    status: str,
    error_message: Optional[str] = None,
    email: Optional[str] = None,
) -> bool:
    """Authentication step (login, logout, token refresh, otp...). Action becomes auth.<action>."""
    return writer.log_event(
        actor_id=ctx.actor_id,
        actor_email=ctx.actor_email or email,
        actor_role=ctx.actor_role,
        action=f"auth.{action}",
        resource_type="authentication",
        status=status,
        error_message=error_message,
        metadata={
            "endpoint": ctx.endpoint,
            "body": {"email": email} if action == "login" else {},
        },
        **ctx.request_fields(),
    )


def log_phi_access(
    writer: AuditWriter,
    ctx: RequestContext,
    resource_type: str,
    resource_id: Any,
    action: str,
) -> bool:
    """Protected health information touched. Action becomes phi.<action>."""
    return writer.log_event(
        action=f"phi.{action}",
        resource_type=resource_type,
        resource_id=resource_id,
        status=AuditStatus.SUCCESS,
        metadata={"endpoint": ctx.endpoint},
        **ctx.actor_fields(),
        **ctx.request_fields(),
    )


def log_privilege_change(
    writer: AuditWriter,
    ctx: RequestContext,
    target_user_id: Any,
    changes: Dict[str, Any],
) -> bool:
    return writer.log_event(
        action="privilege.change",
        resource_type="user",
        resource_id=target_user_id,
        status=AuditStatus.SUCCESS,
        metadata={"changes": changes, "endpoint": ctx.endpoint},
        **ctx.actor_fields(),
        **ctx.request_fields(),
    )


def log_failed_access(
    writer: AuditWriter,
    ctx: RequestContext,
    reason: str,
    email: Optional[str] = None,
) -> bool:
    """
    Denied request. Recorded without an actor id: the principal is not
    trusted, only the claimed email is kept.
    """
    return writer.log_event(
        actor_email=email,
        action="access.denied",
        status=AuditStatus.FAILURE,
        error_message=reason,
        metadata={"endpoint": ctx.endpoint, "reason": reason},
        **ctx.request_fields(),
    )


def log_data_export(
    writer: AuditWriter,
    ctx: RequestContext,
    export_type: str,
    record_count: int,
) -> bool:
    return writer.log_event(
        action="data.export",
        resource_type=export_type,
        status=AuditStatus.SUCCESS,
        metadata={
            "exportType": export_type,
            "recordCount": record_count,
            "endpoint": ctx.endpoint,
        },
        **ctx.actor_fields(),
        **ctx.request_fields(),
    )
