"""
Tests for chain verification.

Covers the first-entry rule, the one-entry detection latency, the
undetectable last-entry edit, corrupted rows and snapshot reads.
"""

import threading

import pytest
from sqlalchemy import text, update

from auditchain.core.entry import AuditEvent
from auditchain.core.errors import AuditStoreError, UnreadableEntry, VerificationCancelled
from auditchain.log import SqlAuditStore, audit_logs, create_audit_engine
from auditchain.verify import (
    FAILED_MESSAGE,
    ISSUE_CHAIN_BROKEN,
    ISSUE_FIRST_NOT_EMPTY,
    ISSUE_MISSING_HASH,
    ISSUE_UNREADABLE,
    verify_integrity,
)


def _append(store, *actions):
    return [store.append(AuditEvent(action=a, status="success")).entry_id for a in actions]


def _tamper(store, entry_id, **values):
    with store.engine.begin() as conn:
        conn.execute(update(audit_logs).where(audit_logs.c.id == entry_id).values(**values))


def test_empty_log_is_valid(store):
    report = verify_integrity(store)
    assert report.is_valid
    assert report.total_logs == 0
    assert report.message == "No audit logs found"


def test_intact_chain(store):
    _append(store, "a", "b", "c")
    report = verify_integrity(store)
    assert report.is_valid
    assert (report.total_logs, report.verified_logs) == (3, 3)
    assert report.to_dict()["tamperedEntries"] == []


def test_first_entry_with_non_empty_previous_hash_flagged(store):
    a, _ = _append(store, "a", "b")
    _tamper(store, a, previous_hash="0" * 64)
    report = verify_integrity(store)
    assert not report.is_valid
    flagged = report.tampered_entries[0]
    assert flagged.id == a
    assert flagged.issue == ISSUE_FIRST_NOT_EMPTY
    assert flagged.expected_previous_hash == ""


def test_first_entry_with_null_previous_hash_accepted(store):
    """Legacy convention: NULL on the first row is equivalent to ""."""
    a, _ = _append(store, "a", "b")
    _tamper(store, a, previous_hash=None)
    assert verify_integrity(store).is_valid


def test_content_edit_detected_on_successor(store):
    """Editing B is invisible on B itself and is caught on C."""
    a, b, c = _append(store, "a", "b", "c")
    _tamper(store, b, action="b.edited")
    report = verify_integrity(store)
    assert not report.is_valid
    assert [t.id for t in report.tampered_entries] == [c]
    assert report.tampered_entries[0].issue == ISSUE_CHAIN_BROKEN
    assert report.verified_logs == 2


def test_metadata_edit_detected(store):
    a = store.append(AuditEvent(action="a", status="success", metadata={"n": 1})).entry_id
    b = _append(store, "b")[0]
    _tamper(store, a, metadata={"n": 2})
    assert [t.id for t in verify_integrity(store).tampered_entries] == [b]


def test_last_entry_edit_not_detectable(store):
    """
    Known limitation: nothing holds the digest of the newest entry, so an
    edit to it passes verification, and stays invisible after the next
    append because the new entry chains from the edited content.
    """
    a, b, c = _append(store, "a", "b", "c")
    _tamper(store, c, action="c.edited", status="failure")
    assert verify_integrity(store).is_valid

    _append(store, "d")
    report = verify_integrity(store)
    assert report.is_valid
    assert report.total_logs == 4


def test_edit_after_successor_exists_is_detected(store):
    a, b, c = _append(store, "a", "b", "c")
    _append(store, "d")
    _tamper(store, c, action="c.edited")
    report = verify_integrity(store)
    assert [t.id for t in report.tampered_entries] == [c + 1]


def test_missing_hash_reported_as_pre_migration(store):
    a, b, c = _append(store, "a", "b", "c")
    _tamper(store, b, previous_hash=None)
    report = verify_integrity(store)
    flagged = {t.id: t for t in report.tampered_entries}
    assert flagged[b].issue == ISSUE_MISSING_HASH
    assert flagged[b].stored_previous_hash is None


def test_deleted_entry_breaks_chain(store):
    a, b, c = _append(store, "a", "b", "c")
    with store.engine.begin() as conn:
        conn.execute(audit_logs.delete().where(audit_logs.c.id == b))
    report = verify_integrity(store)
    assert [t.id for t in report.tampered_entries] == [c]


def test_report_dict_shape(store):
    a, b, c = _append(store, "a", "b", "c")
    _tamper(store, b, action="b.edited")
    data = verify_integrity(store).to_dict()
    assert set(data) == {"isValid", "message", "totalLogs", "verifiedLogs", "tamperedEntries"}
    entry = data["tamperedEntries"][0]
    assert set(entry) == {"id", "timestamp", "action", "expectedPreviousHash", "storedPreviousHash", "issue"}
    assert entry["action"] == "c"


def test_storage_failure_is_distinct_from_tampering(tmp_path):
    store = SqlAuditStore(create_audit_engine(f"sqlite:///{tmp_path / 'missing.db'}"))
    report = verify_integrity(store)
    assert not report.is_valid
    assert report.message == FAILED_MESSAGE
    assert report.error
    assert report.tampered_entries == []
    assert set(report.to_dict()) == {"isValid", "message", "error"}


def test_cancellation(store):
    _append(store, "a", "b", "c")
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(VerificationCancelled):
        verify_integrity(store, cancel=cancel)


def test_actor_anonymization_keeps_chain_valid(store):
    for i in range(3):
        store.append(AuditEvent(action="phi.read", status="success", actor_id="7", actor_email="a@b.c"))
    assert store.anonymize_actor(7) == 3
    assert all(e.actor_id is None for e in store.iter_entries())
    assert verify_integrity(store).is_valid


def _corrupt(store, entry_id, column, raw):
    """Write a raw value the column type cannot decode."""
    with store.engine.begin() as conn:
        conn.execute(text(f"UPDATE audit_logs SET {column} = :raw WHERE id = :id"), {"raw": raw, "id": entry_id})


@pytest.mark.parametrize(
    "column,raw",
    [
        ("metadata", "{not json"),
        ("timestamp", "yesterday"),
    ],
)
def test_undecodable_entry_reported_as_tampered(store, column, raw):
    a, b, c = _append(store, "a", "b", "c")
    stored_link = store.get(b).previous_hash
    _corrupt(store, b, column, raw)

    report = verify_integrity(store)
    assert not report.is_valid
    assert report.error is None
    assert report.total_logs == 3
    assert [t.id for t in report.tampered_entries] == [b]
    flagged = report.tampered_entries[0]
    assert flagged.issue == ISSUE_UNREADABLE
    assert flagged.action == "b"
    assert flagged.stored_previous_hash == stored_link
    assert flagged.expected_previous_hash == stored_link
    assert report.to_dict()["tamperedEntries"][0]["timestamp"] is None


def test_undecodable_first_entry(store):
    a, b = _append(store, "a", "b")
    _corrupt(store, a, "metadata", "[1,")
    report = verify_integrity(store, batch_size=1)
    assert [t.id for t in report.tampered_entries] == [a]
    assert report.tampered_entries[0].expected_previous_hash == ""


def test_iter_entries_raises_store_error_on_undecodable_row(store):
    a, b, c = _append(store, "a", "b", "c")
    _corrupt(store, b, "metadata", "{not json")
    seen = []
    with pytest.raises(UnreadableEntry) as exc_info:
        for entry in store.iter_entries():
            seen.append(entry.id)
    assert seen == [a]
    assert exc_info.value.entry_id == b
    assert isinstance(exc_info.value, AuditStoreError)


def test_undecodable_tail_fails_append_cleanly(store):
    a, b = _append(store, "a", "b")
    _corrupt(store, b, "timestamp", "yesterday")
    with pytest.raises(AuditStoreError):
        store.append(AuditEvent(action="c", status="success"))
    assert store.count() == 2


def test_snapshot_ignores_appends_made_mid_scan(store, db_url):
    _append(store, "a", "b", "c")
    other = SqlAuditStore(create_audit_engine(db_url))
    seen = []
    with store.snapshot() as snap:
        total = store.count(connection=snap)
        for entry in store.iter_entries(batch_size=1, connection=snap):
            seen.append(entry.id)
            if len(seen) == 1:
                other.append(AuditEvent(action="concurrent", status="success"))
    assert seen == [1, 2, 3]
    assert total == 3
    assert other.count() == 4
    other.engine.dispose()


def test_verifier_unaffected_by_concurrent_append(store, db_url, monkeypatch):
    _append(store, "a", "b", "c")
    other = SqlAuditStore(create_audit_engine(db_url))
    scan = store.iter_entries

    def scan_with_append(*args, **kwargs):
        for i, entry in enumerate(scan(*args, **kwargs)):
            if i == 0:
                other.append(AuditEvent(action="concurrent", status="success"))
            yield entry

    monkeypatch.setattr(store, "iter_entries", scan_with_append)
    report = verify_integrity(store, batch_size=1)
    assert report.is_valid
    assert (report.total_logs, report.verified_logs) == (3, 3)
    assert other.count() == 4
    other.engine.dispose()
