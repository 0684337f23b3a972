"""
Audit chain verification.
"""

from .chain import (
    FAILED_MESSAGE,
    ISSUE_CHAIN_BROKEN,
    ISSUE_FIRST_NOT_EMPTY,
    ISSUE_MISSING_HASH,
    ISSUE_UNREADABLE,
    IntegrityReport,
    TamperedEntry,
    verify_integrity,
)

__all__ = [
    "FAILED_MESSAGE",
    "ISSUE_CHAIN_BROKEN",
    "ISSUE_FIRST_NOT_EMPTY",
    "ISSUE_MISSING_HASH",
    "ISSUE_UNREADABLE",
    "IntegrityReport",
    "TamperedEntry",
    "verify_integrity",
]
