"""
Storage-level immutability for the audit log.

Installs BEFORE DELETE / BEFORE UPDATE triggers on the audit table itself
(plus a statement-level BEFORE TRUNCATE trigger on PostgreSQL),
so the guarantee holds for every code path with database credentials, not
only for this package:

- DELETE is always rejected, and so is TRUNCATE on PostgreSQL.
- UPDATE is rejected unless the only change is actor_id going to NULL
  (actor deleted upstream; the historical record is kept).

Triggers must be installed after the chain backfill, which itself updates
existing rows. install_enforcer() refuses to run on an unchained table.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Set

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..core.errors import AuditStoreError, MigrationError
from ..log.schema import CHAIN_COLUMN, TABLE_NAME, audit_logs
from ..log.sql_store import IMMUTABLE_MARKER

logger = logging.getLogger(__name__)

DELETE_TRIGGER = f"{TABLE_NAME}_prevent_delete"
UPDATE_TRIGGER = f"{TABLE_NAME}_prevent_update"
TRUNCATE_TRIGGER = f"{TABLE_NAME}_prevent_truncate"
DELETE_FUNCTION = "prevent_audit_log_delete"
UPDATE_FUNCTION = "prevent_audit_log_update"
TRUNCATE_FUNCTION = "prevent_audit_log_truncate"

ACTIVE = "ACTIVE"
MISSING = "MISSING"

# Every column except actor_id must be unchanged by an UPDATE
_GUARDED_COLUMNS = [c.name for c in audit_logs.c if c.name != "actor_id"]


@dataclass(frozen=True)
class ImmutabilityStatus:
    delete_protection: str
    update_protection: str

    @property
    def is_fully_protected(self) -> bool:
        return self.delete_protection == ACTIVE and self.update_protection == ACTIVE

    @property
    def message(self) -> str:
        if self.is_fully_protected:
            return "Audit log immutability is enforced at the database level"
        missing = [
            name
            for name, state in (("DELETE", self.delete_protection), ("UPDATE", self.update_protection))
            if state != ACTIVE
        ]
        return f"Audit log immutability is NOT fully enforced: {', '.join(missing)} protection missing"

    def to_dict(self) -> Dict[str, object]:
        return {
            "deleteProtection": self.delete_protection,
            "updateProtection": self.update_protection,
            "isFullyProtected": self.is_fully_protected,
            "message": self.message,
        }


def _sqlite_ddl() -> List[str]:
    """
    SQLite triggers.

    RAISE() only takes a string literal here, so these messages cannot name
    the rejected row; translate_violation() attaches the id when the caller
    knows it. SQLite has no TRUNCATE: an unqualified DELETE still fires the
    row trigger.
    """
    unchanged = "\n        AND ".join(f'NEW."{c}" IS OLD."{c}"' for c in _GUARDED_COLUMNS)
    return [
        f"""
        CREATE TRIGGER IF NOT EXISTS {DELETE_TRIGGER}
        BEFORE DELETE ON {TABLE_NAME}
        FOR EACH ROW
        BEGIN
            SELECT RAISE(ABORT, '{IMMUTABLE_MARKER} and cannot be deleted');
        END
        """,
        f"""
        CREATE TRIGGER IF NOT EXISTS {UPDATE_TRIGGER}
        BEFORE UPDATE ON {TABLE_NAME}
        FOR EACH ROW
        WHEN NOT (
            {unchanged}
            AND (NEW.actor_id IS OLD.actor_id OR NEW.actor_id IS NULL)
        )
        BEGIN
            SELECT RAISE(ABORT, '{IMMUTABLE_MARKER} and cannot be modified');
        END
        """,
    ]


def _postgresql_ddl() -> List[str]:
    changed = "\n            OR ".join(f'OLD."{c}" IS DISTINCT FROM NEW."{c}"' for c in _GUARDED_COLUMNS)
    return [
        f"""
        CREATE OR REPLACE FUNCTION {DELETE_FUNCTION}()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION '{IMMUTABLE_MARKER} and cannot be deleted. Deletion attempted on log ID: %', OLD.id;
        END;
        $$ LANGUAGE plpgsql
        """,
        f"""
        CREATE OR REPLACE FUNCTION {UPDATE_FUNCTION}()
        RETURNS TRIGGER AS $$
        BEGIN
            IF (
                {changed}
                OR (OLD.actor_id IS DISTINCT FROM NEW.actor_id AND NEW.actor_id IS NOT NULL)
            ) THEN
                RAISE EXCEPTION '{IMMUTABLE_MARKER} and cannot be modified. Update attempted on log ID: %', OLD.id;
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """,
        f"""
        CREATE OR REPLACE FUNCTION {TRUNCATE_FUNCTION}()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION '{IMMUTABLE_MARKER} and cannot be truncated';
        END;
        $$ LANGUAGE plpgsql
        """,
        f"DROP TRIGGER IF EXISTS {DELETE_TRIGGER} ON {TABLE_NAME}",
        f"DROP TRIGGER IF EXISTS {UPDATE_TRIGGER} ON {TABLE_NAME}",
        f"DROP TRIGGER IF EXISTS {TRUNCATE_TRIGGER} ON {TABLE_NAME}",
        f"""
        CREATE TRIGGER {DELETE_TRIGGER}
        BEFORE DELETE ON {TABLE_NAME}
        FOR EACH ROW EXECUTE FUNCTION {DELETE_FUNCTION}()
        """,
        f"""
        CREATE TRIGGER {UPDATE_TRIGGER}
        BEFORE UPDATE ON {TABLE_NAME}
        FOR EACH ROW EXECUTE FUNCTION {UPDATE_FUNCTION}()
        """,
        # row triggers do not fire on TRUNCATE
        f"""
        CREATE TRIGGER {TRUNCATE_TRIGGER}
        BEFORE TRUNCATE ON {TABLE_NAME}
        FOR EACH STATEMENT EXECUTE FUNCTION {TRUNCATE_FUNCTION}()
        """,
    ]


def _ddl_for(dialect: str) -> List[str]:
    if dialect == "sqlite":
        return _sqlite_ddl()
    if dialect == "postgresql":
        return _postgresql_ddl()
    raise AuditStoreError(f"immutability triggers not supported for dialect {dialect!r}")


def _installed_triggers(conn: Connection) -> Set[str]:
    dialect = conn.dialect.name
    if dialect == "sqlite":
        rows = conn.execute(
            text("SELECT name FROM sqlite_master WHERE type = 'trigger' AND tbl_name = :table"),
            {"table": TABLE_NAME},
        )
    elif dialect == "postgresql":
        # disabled triggers (ALTER TABLE ... DISABLE TRIGGER) do not count
        rows = conn.execute(
            text(
                "SELECT tgname FROM pg_trigger "
                "WHERE tgrelid = to_regclass(:table) AND NOT tgisinternal AND tgenabled <> 'D'"
            ),
            {"table": TABLE_NAME},
        )
    else:
        raise AuditStoreError(f"immutability triggers not supported for dialect {dialect!r}")
    return {r[0] for r in rows}


def _status_from_triggers(names: Set[str], dialect: str) -> ImmutabilityStatus:
    """Delete protection on PostgreSQL needs the TRUNCATE trigger as well."""
    delete_required = {DELETE_TRIGGER}
    if dialect == "postgresql":
        delete_required.add(TRUNCATE_TRIGGER)
    return ImmutabilityStatus(
        delete_protection=ACTIVE if delete_required <= names else MISSING,
        update_protection=ACTIVE if UPDATE_TRIGGER in names else MISSING,
    )


def verify_immutability_status(engine: Engine) -> ImmutabilityStatus:
    """
    Report whether delete and update prevention are installed and active.

    Introspects the storage engine's trigger catalog, not application state.

    Raises:
        AuditStoreError: If the catalog cannot be read
    """
    try:
        with engine.connect() as conn:
            names = _installed_triggers(conn)
    except SQLAlchemyError as ex:
        raise AuditStoreError(f"failed to read trigger catalog: {ex}") from ex
    return _status_from_triggers(names, engine.dialect.name)


def enforcer_installed(engine: Engine) -> bool:
    """True if either protection is present (the table is no longer writable by migrations)."""
    status = verify_immutability_status(engine)
    return ACTIVE in (status.delete_protection, status.update_protection)


def install_enforcer(engine: Engine) -> ImmutabilityStatus:
    """
    Install the immutability triggers (idempotent).

    Raises:
        MigrationError: If the table is missing or not yet chained
        AuditStoreError: If the DDL fails
    """
    insp = inspect(engine)
    if not insp.has_table(TABLE_NAME):
        raise MigrationError(f"cannot install enforcer: table {TABLE_NAME} does not exist")
    if CHAIN_COLUMN not in {c["name"] for c in insp.get_columns(TABLE_NAME)}:
        raise MigrationError(
            f"cannot install enforcer: {TABLE_NAME}.{CHAIN_COLUMN} missing; run the chain backfill first"
        )

    try:
        with engine.begin() as conn:
            for stmt in _ddl_for(engine.dialect.name):
                conn.execute(text(stmt))
    except SQLAlchemyError as ex:
        raise AuditStoreError(f"failed to install immutability triggers: {ex}") from ex

    status = verify_immutability_status(engine)
    logger.info(
        "Immutability enforcer installed (delete=%s, update=%s)",
        status.delete_protection,
        status.update_protection,
    )
    return status


def uninstall_enforcer(engine: Engine) -> None:
    """
    Drop the immutability triggers.

    Only for controlled maintenance (e.g. a future schema migration) and
    test harnesses. Every call is logged at WARNING.
    """
    dialect = engine.dialect.name
    if dialect not in ("sqlite", "postgresql"):
        raise AuditStoreError(f"immutability triggers not supported for dialect {dialect!r}")
    suffix = f" ON {TABLE_NAME}" if dialect == "postgresql" else ""
    names = [DELETE_TRIGGER, UPDATE_TRIGGER]
    if dialect == "postgresql":
        names.append(TRUNCATE_TRIGGER)
    try:
        with engine.begin() as conn:
            for name in names:
                conn.execute(text(f"DROP TRIGGER IF EXISTS {name}{suffix}"))
    except SQLAlchemyError as ex:
        raise AuditStoreError(f"failed to drop immutability triggers: {ex}") from ex
    logger.warning("Immutability enforcer removed from %s", TABLE_NAME)
