"""
Hash chain verification.

Replays the ordered log inside one snapshot and recomputes every link:

    expected(e[i]) = compute_hash(e[i-1], e[i-1].previous_hash)

Detection latency: editing the content of e[k] leaves e[k].previous_hash
untouched, so e[k] itself still verifies. The edit is caught on e[k+1],
whose stored link was computed from the original e[k]. It follows that an
edit to the newest entry cannot be detected by this scan: there is no
successor holding its digest, and the next append will chain from the
edited content. Closing that gap needs an external anchor
(auditchain.checkpoint).
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..core.canonical import format_timestamp
from ..core.entry import AuditLogEntry
from ..core.errors import AuditStoreError, UnreadableEntry, VerificationCancelled
from ..log.integrity import EMPTY_HASH, compute_hash
from ..log.store import AuditStore
from ..metrics import set_tampered_entries, track_verify_duration

logger = logging.getLogger(__name__)

ISSUE_FIRST_NOT_EMPTY = "First entry should have empty previous_hash"
ISSUE_MISSING_HASH = "Missing hash (pre-migration log)"
ISSUE_CHAIN_BROKEN = "Hash chain broken - possible tampering"
ISSUE_UNREADABLE = "Entry cannot be decoded - possible tampering"

FAILED_MESSAGE = "Failed to verify audit log integrity"


@dataclass(frozen=True)
class TamperedEntry:
    id: int
    timestamp: Any
    action: str
    expected_previous_hash: str
    stored_previous_hash: Optional[str]
    issue: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp) if self.timestamp else None,
            "action": self.action,
            "expectedPreviousHash": self.expected_previous_hash,
            "storedPreviousHash": self.stored_previous_hash,
            "issue": self.issue,
        }


@dataclass
class IntegrityReport:
    """
    Result of verify_integrity().

    A storage failure is reported with error set and no tampered entries,
    so it can never be mistaken for detected tampering.
    """
    is_valid: bool
    total_logs: int = 0
    verified_logs: int = 0
    tampered_entries: List[TamperedEntry] = field(default_factory=list)
    message: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "isValid": self.is_valid,
            "message": self.message,
        }
        if self.error is not None:
            data["error"] = self.error
            return data
        data.update(
            {
                "totalLogs": self.total_logs,
                "verifiedLogs": self.verified_logs,
                "tamperedEntries": [t.to_dict() for t in self.tampered_entries],
            }
        )
        return data


def _check_first(entry: AuditLogEntry) -> Optional[TamperedEntry]:
    # NULL is tolerated: legacy logs used it before the "" marker existed
    if entry.previous_hash in (None, EMPTY_HASH):
        return None
    return TamperedEntry(
        id=entry.id,
        timestamp=entry.timestamp,
        action=entry.action,
        expected_previous_hash=EMPTY_HASH,
        stored_previous_hash=entry.previous_hash,
        issue=ISSUE_FIRST_NOT_EMPTY,
    )


def _check_link(prev: AuditLogEntry, entry: AuditLogEntry) -> Optional[TamperedEntry]:
    expected = compute_hash(prev, prev.previous_hash)
    if entry.previous_hash == expected:
        return None
    return TamperedEntry(
        id=entry.id,
        timestamp=entry.timestamp,
        action=entry.action,
        expected_previous_hash=expected,
        stored_previous_hash=entry.previous_hash,
        issue=ISSUE_MISSING_HASH if entry.previous_hash is None else ISSUE_CHAIN_BROKEN,
    )


def _unreadable(ex: UnreadableEntry, prev: Optional[AuditLogEntry], first: bool) -> TamperedEntry:
    if first:
        expected = EMPTY_HASH
    elif prev is not None:
        expected = compute_hash(prev, prev.previous_hash)
    else:
        expected = ""
    return TamperedEntry(
        id=ex.entry_id,
        timestamp=None,
        action=ex.action,
        expected_previous_hash=expected,
        stored_previous_hash=ex.previous_hash,
        issue=ISSUE_UNREADABLE,
    )


def verify_integrity(
    store: AuditStore,
    batch_size: int = 1000,
    cancel: Optional[threading.Event] = None,
) -> IntegrityReport:
    """
    Verify the whole hash chain.

    Read-only; runs against a single snapshot and does not block appends.

    Args:
        store: Audit store to scan
        batch_size: Rows fetched per round trip
        cancel: Set by an operator to abort a long scan

    Returns:
        IntegrityReport

    Raises:
        VerificationCancelled: If cancel was set during the scan
    """
    started = time.monotonic()
    tampered: List[TamperedEntry] = []
    total = 0

    try:
        with track_verify_duration():
            with store.snapshot() as snap:
                total = store.count(connection=snap)
                prev: Optional[AuditLogEntry] = None
                after_id = 0
                link_unknown = False
                while True:
                    try:
                        for entry in store.iter_entries(batch_size=batch_size, connection=snap, after_id=after_id):
                            if cancel is not None and cancel.is_set():
                                raise VerificationCancelled(f"verification cancelled at entry {entry.id}")
                            if link_unknown:
                                # predecessor could not be decoded, so this link cannot be recomputed
                                issue = None
                            elif prev is None and after_id == 0:
                                issue = _check_first(entry)
                            else:
                                issue = _check_link(prev, entry)
                            if issue is not None:
                                tampered.append(issue)
                            prev, after_id, link_unknown = entry, entry.id, False
                        break
                    except UnreadableEntry as ex:
                        tampered.append(_unreadable(ex, prev, first=after_id == 0))
                        prev, after_id, link_unknown = None, ex.entry_id, True
    except (AuditStoreError, SQLAlchemyError) as ex:
        logger.error("Audit chain verification failed: %s", ex)
        return IntegrityReport(is_valid=False, message=FAILED_MESSAGE, error=str(ex))

    set_tampered_entries(len(tampered))
    elapsed = time.monotonic() - started

    if total == 0:
        return IntegrityReport(is_valid=True, message="No audit logs found")

    verified = total - len(tampered)
    if tampered:
        logger.warning(
            "Audit chain verification found %d tampered entries out of %d (%.2fs)",
            len(tampered),
            total,
            elapsed,
        )
        return IntegrityReport(
            is_valid=False,
            total_logs=total,
            verified_logs=verified,
            tampered_entries=tampered,
            message=f"Integrity check failed: {len(tampered)} tampered or unverifiable entries detected",
        )

    logger.info("Audit chain verified: %d entries (%.2fs)", total, elapsed)
    return IntegrityReport(
        is_valid=True,
        total_logs=total,
        verified_logs=verified,
        message=f"All {total} audit log entries verified; hash chain intact",
    )
