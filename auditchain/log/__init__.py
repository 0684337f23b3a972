"""
Audit log storage and hash chain.

This module provides:
- AuditStore: Abstract interface for append-only audit persistence
- SqlAuditStore: SQLAlchemy-backed store (SQLite, PostgreSQL)
- Integrity: Hash chain calculator
- Schema: Table definition of the persisted layout
"""

from .integrity import EMPTY_HASH, HASH_FIELDS, compute_hash, next_seed
from .schema import CHAIN_COLUMN, TABLE_NAME, audit_logs, metadata_obj
from .sql_store import IMMUTABLE_MARKER, SqlAuditStore, create_audit_engine, translate_violation
from .store import AppendResult, AuditStore

__all__ = [
    "EMPTY_HASH",
    "HASH_FIELDS",
    "compute_hash",
    "next_seed",
    "CHAIN_COLUMN",
    "TABLE_NAME",
    "audit_logs",
    "metadata_obj",
    "IMMUTABLE_MARKER",
    "SqlAuditStore",
    "create_audit_engine",
    "translate_violation",
    "AppendResult",
    "AuditStore",
]
