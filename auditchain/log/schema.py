"""
Persisted layout of the audit log.

A single append-only table. Indexes support the query collaborator
(actor, time range, action, resource, status, client ip) and chain lookups.
"""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

TABLE_NAME = "audit_logs"
CHAIN_COLUMN = "previous_hash"

metadata_obj = MetaData()

audit_logs = Table(
    TABLE_NAME,
    metadata_obj,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("timestamp", DateTime(timezone=False), nullable=False, server_default=func.current_timestamp()),
    Column("actor_id", String(64)),
    Column("actor_email", String(255)),
    Column("actor_role", String(50)),
    Column("action", String(100), nullable=False),
    Column("resource_type", String(100)),
    Column("resource_id", String(64)),
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("request_method", String(10)),
    Column("request_path", String(500)),
    Column("status", String(20), nullable=False),
    Column("error_code", String(50)),
    Column("error_message", Text),
    Column("metadata", JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")),
    Column(CHAIN_COLUMN, String(64)),
    CheckConstraint("status IN ('success', 'failure', 'error')", name="ck_audit_logs_status"),
    Index("idx_audit_logs_actor_id", "actor_id"),
    Index("idx_audit_logs_timestamp", "timestamp"),
    Index("idx_audit_logs_action", "action"),
    Index("idx_audit_logs_resource", "resource_type", "resource_id"),
    Index("idx_audit_logs_status", "status"),
    Index("idx_audit_logs_ip", "ip_address"),
    Index("idx_audit_logs_previous_hash", CHAIN_COLUMN),
    # ids are never reused, even after a (rejected) delete attempt
    sqlite_autoincrement=True,
)

# Columns present in logs written before chaining was introduced
LEGACY_COLUMNS = tuple(c for c in audit_logs.c if c.name != CHAIN_COLUMN)
