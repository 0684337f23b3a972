"""
Core primitives for the audit chain.

This module provides:
- Canonical: Deterministic serialization for hashing
- Entry: AuditEvent (producer input) and AuditLogEntry (stored record)
- Clock: UTC time sources
- Errors: Exception hierarchy
"""

from .canonical import canonicalize, canonical_json_bytes, canonical_json_str, format_timestamp
from .clock import FixedClock, SystemClock
from .entry import AuditEvent, AuditLogEntry, AuditStatus
from .errors import (
    AuditChainError,
    AuditStoreError,
    ImmutabilityViolation,
    IntegrityError,
    MigrationError,
    UnreadableEntry,
    VerificationCancelled,
)

__all__ = [
    "canonicalize",
    "canonical_json_bytes",
    "canonical_json_str",
    "format_timestamp",
    "FixedClock",
    "SystemClock",
    "AuditEvent",
    "AuditLogEntry",
    "AuditStatus",
    "AuditChainError",
    "AuditStoreError",
    "ImmutabilityViolation",
    "IntegrityError",
    "MigrationError",
    "UnreadableEntry",
    "VerificationCancelled",
]
