"""
Read-side queries over the audit log (compliance tooling, dashboards).

Filtering and pagination follow the audit API: page < 1 reads as 1, a
limit outside 1..1000 reads as 50, the action filter is a case-insensitive
substring, and the date range is inclusive on both ends.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from .core.entry import AuditLogEntry
from .core.errors import AuditStoreError
from .log.schema import audit_logs
from .log.sql_store import SqlAuditStore

DEFAULT_LIMIT = 50
MAX_LIMIT = 1000


def _naive_utc(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is not None and ts.tzinfo is not None:
        return ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


@dataclass(frozen=True)
class AuditQuery:
    actor_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    action: Optional[str] = None
    resource_type: Optional[str] = None
    status: Optional[str] = None
    page: int = 1
    limit: int = DEFAULT_LIMIT

    def __post_init__(self) -> None:
        page = self.page if isinstance(self.page, int) and self.page >= 1 else 1
        limit = self.limit if isinstance(self.limit, int) and 1 <= self.limit <= MAX_LIMIT else DEFAULT_LIMIT
        object.__setattr__(self, "page", page)
        object.__setattr__(self, "limit", limit)
        if self.actor_id is not None:
            object.__setattr__(self, "actor_id", str(self.actor_id))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def conditions(self) -> list:
        c = audit_logs.c
        conds = []
        if self.actor_id:
            conds.append(c.actor_id == self.actor_id)
        if self.start_date is not None:
            conds.append(c.timestamp >= _naive_utc(self.start_date))
        if self.end_date is not None:
            conds.append(c.timestamp <= _naive_utc(self.end_date))
        if self.action:
            conds.append(func.lower(c.action).contains(self.action.lower(), autoescape=True))
        if self.resource_type:
            conds.append(c.resource_type == self.resource_type)
        if self.status:
            conds.append(c.status == self.status)
        return conds


@dataclass
class QueryResult:
    entries: List[AuditLogEntry] = field(default_factory=list)
    page: int = 1
    limit: int = DEFAULT_LIMIT
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
            },
        }


def query_entries(store: SqlAuditStore, query: AuditQuery) -> QueryResult:
    """
    Run a filtered, paginated query, newest first.

    Raises:
        AuditStoreError: If the read fails
    """
    conds = query.conditions()
    stmt = (
        select(audit_logs)
        .where(*conds)
        .order_by(audit_logs.c.timestamp.desc(), audit_logs.c.id.desc())
        .limit(query.limit)
        .offset(query.offset)
    )
    count_stmt = select(func.count()).select_from(audit_logs).where(*conds)
    try:
        with store.engine.connect() as conn:
            total = conn.execute(count_stmt).scalar_one()
            rows = conn.execute(stmt).mappings().all()
    except SQLAlchemyError as ex:
        raise AuditStoreError(f"audit log query failed: {ex}") from ex
    except (ValueError, TypeError) as ex:
        raise AuditStoreError(f"audit log query returned an undecodable row: {ex}") from ex
    return QueryResult(
        entries=[AuditLogEntry.from_row(r) for r in rows],
        page=query.page,
        limit=query.limit,
        total=total,
    )
