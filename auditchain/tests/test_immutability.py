"""
Tests for storage-level immutability.

The triggers are exercised with raw SQL, the way any other code path with
database credentials would reach the table.
"""

import pytest
from sqlalchemy import delete, update
from sqlalchemy.exc import DBAPIError

from auditchain.core.entry import AuditEvent
from auditchain.core.errors import ImmutabilityViolation, MigrationError
from auditchain.immutability import (
    ACTIVE,
    DELETE_TRIGGER,
    MISSING,
    TRUNCATE_TRIGGER,
    UPDATE_TRIGGER,
    install_enforcer,
    uninstall_enforcer,
    verify_immutability_status,
)
from auditchain.immutability.enforcer import _postgresql_ddl, _status_from_triggers
from auditchain.log import audit_logs, translate_violation
from auditchain.verify import verify_integrity


def _seed(store, n=3):
    return [
        store.append(
            AuditEvent(action="phi.read", status="success", actor_id="7", metadata={"n": i})
        ).entry_id
        for i in range(n)
    ]


def test_status_missing_without_triggers(store):
    status = verify_immutability_status(store.engine)
    assert status.delete_protection == MISSING
    assert status.update_protection == MISSING
    assert not status.is_fully_protected
    assert "NOT" in status.message


def test_status_active_after_install(protected_store):
    status = verify_immutability_status(protected_store.engine)
    assert status.to_dict() == {
        "deleteProtection": ACTIVE,
        "updateProtection": ACTIVE,
        "isFullyProtected": True,
        "message": "Audit log immutability is enforced at the database level",
    }


def test_install_is_idempotent(protected_store):
    assert install_enforcer(protected_store.engine).is_fully_protected


def test_delete_rejected(protected_store):
    ids = _seed(protected_store)
    with pytest.raises(DBAPIError, match="immutable"):
        with protected_store.engine.begin() as conn:
            conn.execute(delete(audit_logs).where(audit_logs.c.id == ids[0]))
    assert protected_store.count() == 3


@pytest.mark.parametrize(
    "values",
    [
        {"action": "phi.delete"},
        {"status": "failure"},
        {"metadata": {"n": 99}},
        {"previous_hash": "0" * 64},
        {"actor_id": "8"},
        {"actor_id": None, "action": "phi.delete"},
        {"ip_address": "192.0.2.1"},
        {"error_message": "later note"},
    ],
)
def test_update_rejected(protected_store, values):
    ids = _seed(protected_store)
    before = protected_store.get(ids[1])
    with pytest.raises(DBAPIError, match="immutable"):
        with protected_store.engine.begin() as conn:
            conn.execute(update(audit_logs).where(audit_logs.c.id == ids[1]).values(**values))
    assert protected_store.get(ids[1]) == before


def test_nulling_actor_id_allowed(protected_store):
    ids = _seed(protected_store)
    before = protected_store.get(ids[0])
    assert protected_store.anonymize_actor("7") == 3
    after = protected_store.get(ids[0])
    assert after.actor_id is None
    assert after.action == before.action and after.previous_hash == before.previous_hash
    assert verify_integrity(protected_store).is_valid


def test_store_translates_rejection(protected_store):
    ids = _seed(protected_store)
    try:
        with protected_store.engine.begin() as conn:
            conn.execute(delete(audit_logs).where(audit_logs.c.id == ids[2]))
    except DBAPIError as ex:
        violation = translate_violation(ex, entry_id=ids[2])
    else:
        pytest.fail("delete was not rejected")
    assert isinstance(violation, ImmutabilityViolation)
    assert violation.entry_id == ids[2]
    assert str(ids[2]) in str(violation)


def test_appends_still_allowed(protected_store):
    _seed(protected_store, 5)
    assert verify_integrity(protected_store).verified_logs == 5


def test_uninstall(protected_store):
    uninstall_enforcer(protected_store.engine)
    assert not verify_immutability_status(protected_store.engine).is_fully_protected


def test_install_requires_chain_column(engine):
    with engine.begin() as conn:
        conn.exec_driver_sql("CREATE TABLE audit_logs (id INTEGER PRIMARY KEY, action TEXT)")
    with pytest.raises(MigrationError):
        install_enforcer(engine)


def test_install_requires_table(engine):
    with pytest.raises(MigrationError):
        install_enforcer(engine)


def test_unqualified_delete_rejected(protected_store):
    """SQLite has no TRUNCATE; emptying the table goes through the row trigger."""
    _seed(protected_store)
    with pytest.raises(DBAPIError, match="immutable"):
        with protected_store.engine.begin() as conn:
            conn.execute(delete(audit_logs))
    assert protected_store.count() == 3


def test_sqlite_rejection_without_known_id(protected_store):
    """RAISE() takes a literal on SQLite, so the id only appears when the caller supplies it."""
    ids = _seed(protected_store)
    try:
        with protected_store.engine.begin() as conn:
            conn.execute(delete(audit_logs).where(audit_logs.c.id == ids[0]))
    except DBAPIError as ex:
        violation = translate_violation(ex)
    else:
        pytest.fail("delete was not rejected")
    assert isinstance(violation, ImmutabilityViolation)
    assert violation.entry_id is None
    assert "log ID" not in str(violation)


def test_postgresql_truncate_guarded_by_statement_trigger():
    ddl = _postgresql_ddl()
    truncate = [s for s in ddl if "BEFORE TRUNCATE" in s]
    assert len(truncate) == 1
    assert "FOR EACH STATEMENT" in truncate[0]
    assert TRUNCATE_TRIGGER in truncate[0]


def test_postgresql_delete_protection_needs_truncate_trigger():
    partial = _status_from_triggers({DELETE_TRIGGER, UPDATE_TRIGGER}, "postgresql")
    assert partial.delete_protection == MISSING
    assert partial.update_protection == ACTIVE
    assert not partial.is_fully_protected

    full = _status_from_triggers({DELETE_TRIGGER, UPDATE_TRIGGER, TRUNCATE_TRIGGER}, "postgresql")
    assert full.is_fully_protected


def test_sqlite_status_does_not_expect_truncate_trigger():
    assert _status_from_triggers({DELETE_TRIGGER, UPDATE_TRIGGER}, "sqlite").is_fully_protected
