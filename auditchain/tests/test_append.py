"""
Tests for the append path: chained inserts and the best-effort writer.
"""

from datetime import datetime

import pytest

from auditchain.core.entry import AuditEvent
from auditchain.core.errors import AuditStoreError
from auditchain.log import SqlAuditStore, create_audit_engine
from auditchain.log.integrity import EMPTY_HASH, compute_hash
from auditchain.verify import verify_integrity
from auditchain.writer import AuditWriter


def _event(action="phi.read", **kw):
    kw.setdefault("status", "success")
    return AuditEvent(action=action, **kw)


def test_first_entry_has_empty_previous_hash(store):
    result = store.append(_event())
    assert result.previous_hash == EMPTY_HASH
    assert store.get(result.entry_id).previous_hash == ""


def test_entries_chain_to_predecessor(store):
    results = [store.append(_event(f"test.{i}")) for i in range(5)]
    entries = list(store.iter_entries())
    assert [e.id for e in entries] == [r.entry_id for r in results]
    for prev, cur in zip(entries, entries[1:]):
        assert cur.previous_hash == compute_hash(prev, prev.previous_hash)


def test_returned_entry_matches_stored_row(store):
    """The digest of what append() saw must equal the digest of what was stored."""
    result = store.append(
        _event(actor_id=42, resource_id=7, metadata={"b": [1, 2], "a": {"z": None}}, error_code=None)
    )
    stored = store.get(result.entry_id)
    assert stored.actor_id == "42"
    assert stored.resource_id == "7"
    assert stored.metadata == {"b": [1, 2], "a": {"z": None}}
    assert compute_hash(stored, stored.previous_hash) == compute_hash(result.entry, result.previous_hash)


def test_timestamp_assigned_by_store(store, clock):
    first = store.append(_event())
    second = store.append(_event())
    assert first.entry.timestamp == datetime(2024, 1, 1, 0, 0, 0)
    assert second.entry.timestamp > first.entry.timestamp


def test_event_requires_action_and_valid_status():
    with pytest.raises(ValueError):
        AuditEvent(action="", status="success")
    with pytest.raises(ValueError):
        AuditEvent(action="x", status="ok")


def test_n_serialized_appends_verify(store):
    for i in range(25):
        store.append(_event(f"test.{i}", metadata={"i": i}))
    report = verify_integrity(store, batch_size=7)
    assert report.is_valid
    assert report.total_logs == 25
    assert report.verified_logs == 25
    assert report.tampered_entries == []


def test_append_to_missing_table_raises_store_error(tmp_path):
    store = SqlAuditStore(create_audit_engine(f"sqlite:///{tmp_path / 'empty.db'}"))
    with pytest.raises(AuditStoreError):
        store.append(_event())


def test_writer_appends_in_background(store):
    with AuditWriter(store) as writer:
        for i in range(10):
            assert writer.append(_event(f"test.{i}"))
        assert writer.flush(timeout=10)
    assert store.count() == 10
    assert verify_integrity(store).is_valid


def test_writer_swallows_storage_errors(tmp_path):
    """A broken store must never surface to the producer."""
    store = SqlAuditStore(create_audit_engine(f"sqlite:///{tmp_path / 'empty.db'}"))
    writer = AuditWriter(store)
    assert writer.append(_event()) is True
    assert writer.flush(timeout=10)
    assert writer.failed == 1
    writer.close()


class _ExplodingStore:
    def append(self, event, timestamp=None):
        raise RuntimeError("driver crashed")


def test_writer_survives_unexpected_errors():
    writer = AuditWriter(_ExplodingStore())
    writer.append(_event())
    writer.append(_event())
    assert writer.flush(timeout=10)
    assert writer.failed == 2
    writer.close()


def test_writer_drops_when_queue_full(store):
    writer = AuditWriter(store, queue_size=1, submit_timeout=0.01, autostart=False)
    assert writer.append(_event("test.1")) is True
    assert writer.append(_event("test.2")) is False
    writer.start()
    assert writer.flush(timeout=10)
    writer.close()
    assert [e.action for e in store.iter_entries()] == ["test.1"]


def test_writer_drops_after_close(store):
    writer = AuditWriter(store)
    writer.close()
    assert writer.append(_event()) is False
    assert store.count() == 0


def test_event_accepted_while_closing_is_written(store):
    """close() landing between the closed check and the enqueue must not strand the event."""
    writer = AuditWriter(store)
    real_put = writer._queue.put

    def put_after_close(item, *args, **kwargs):
        if isinstance(item, AuditEvent):
            writer.close(timeout=0.1)
        return real_put(item, *args, **kwargs)

    writer._queue.put = put_after_close
    assert writer.append(_event("late.event")) is True
    assert writer.flush(timeout=10)
    writer._thread.join(10)
    assert not writer._thread.is_alive()
    assert [e.action for e in store.iter_entries()] == ["late.event"]
    assert writer.failed == 0


def test_log_event_rejects_malformed_without_raising(store):
    with AuditWriter(store) as writer:
        assert writer.log_event(action="auth.login", status="bogus") is False
        assert writer.log_event(status="success") is False
        assert writer.log_event(action="auth.login", status="success") is True
        writer.flush(timeout=10)
    assert store.count() == 1


def test_writer_from_settings(store, monkeypatch):
    monkeypatch.setenv("AUDITCHAIN_QUEUE_SIZE", "3")
    monkeypatch.setenv("AUDITCHAIN_SUBMIT_TIMEOUT", "0.25")
    writer = AuditWriter.from_settings(store)
    try:
        assert writer.submit_timeout == 0.25
        assert writer._queue.maxsize == 3
    finally:
        writer.close()
