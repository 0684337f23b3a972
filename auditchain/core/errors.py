"""
Exception types for the audit chain.
"""

from typing import Optional


class AuditChainError(Exception):
    """Base class for all audit chain errors."""
    pass


class AuditStoreError(AuditChainError):
    """Raised when audit log storage operations fail."""
    pass


class ImmutabilityViolation(AuditStoreError):
    """
    Raised when the storage engine rejects an UPDATE or DELETE on an audit entry.

    These must never be swallowed: they indicate a bug or an intrusion attempt.
    """

    def __init__(self, message: str, entry_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.entry_id = entry_id


class MigrationError(AuditChainError):
    """Raised when backfill fails or its preconditions are violated. Halts startup."""
    pass


class IntegrityError(AuditChainError):
    """Raised when checkpoint signature or anchor verification cannot proceed."""
    pass


class VerificationCancelled(AuditChainError):
    """Raised when an operator aborts a running chain verification."""
    pass


class UnreadableEntry(AuditStoreError):
    """
    Raised when a stored row no longer decodes (malformed JSON, unparseable timestamp).

    Carries the columns that could still be read so a verifier can report it.
    """

    def __init__(
        self,
        message: str,
        entry_id: int,
        action: Optional[str] = None,
        previous_hash: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.entry_id = entry_id
        self.action = action
        self.previous_hash = previous_hash
