"""
Chain backfill for audit logs written before hash chaining existed.

Walks the legacy rows in id order and assigns each its previous_hash from
the original content of its predecessor:

    row[0].previous_hash = ""
    row[i].previous_hash = compute_hash(row[i-1], row[i-1].previous_hash)

The backfill UPDATEs existing rows, so it must run before the immutability
triggers are installed. It is idempotent: a table that already has the
chain column is left alone.
"""

import logging

from sqlalchemy import bindparam, inspect, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..core.entry import AuditLogEntry
from ..core.errors import AuditStoreError, MigrationError
from ..immutability.enforcer import enforcer_installed
from ..log.integrity import EMPTY_HASH, compute_hash
from ..log.schema import CHAIN_COLUMN, LEGACY_COLUMNS, TABLE_NAME, audit_logs

logger = logging.getLogger(__name__)

_CHAIN_INDEX = next(i for i in audit_logs.indexes if i.name == "idx_audit_logs_previous_hash")


def needs_backfill(engine: Engine) -> bool:
    """True if the audit table exists and lacks the chain column."""
    insp = inspect(engine)
    if not insp.has_table(TABLE_NAME):
        return False
    return CHAIN_COLUMN not in {c["name"] for c in insp.get_columns(TABLE_NAME)}


def backfill_chain(engine: Engine, batch_size: int = 1000) -> int:
    """
    Add and populate the chain column on a legacy audit table.

    Column creation and every row update commit in one transaction: a
    failure leaves the table exactly as it was.

    Args:
        engine: Engine for the audit database
        batch_size: Rows read per round trip

    Returns:
        Number of entries chained (0 when there was nothing to do)

    Raises:
        MigrationError: If the immutability triggers are already installed
            on an unchained table, or the migration fails
    """
    try:
        if not needs_backfill(engine):
            logger.debug("Chain backfill not needed for %s", TABLE_NAME)
            return 0
        if enforcer_installed(engine):
            raise MigrationError(
                f"{TABLE_NAME} is unchained but immutability triggers are already installed; "
                "remove them, run the backfill, then reinstall"
            )
    except (SQLAlchemyError, AuditStoreError) as ex:
        raise MigrationError(f"failed to inspect {TABLE_NAME}: {ex}") from ex

    logger.info("Backfilling hash chain on legacy %s", TABLE_NAME)

    stmt_update = (
        update(audit_logs)
        .where(audit_logs.c.id == bindparam("b_id"))
        .values({CHAIN_COLUMN: bindparam("b_hash")})
    )

    chained = 0
    seed = EMPTY_HASH
    last_id = 0
    write_engine = engine.execution_options(sqlite_begin="IMMEDIATE")
    try:
        with write_engine.begin() as conn:
            conn.execute(text(f"ALTER TABLE {TABLE_NAME} ADD COLUMN {CHAIN_COLUMN} VARCHAR(64)"))
            _CHAIN_INDEX.create(conn, checkfirst=True)

            while True:
                rows = conn.execute(
                    select(*LEGACY_COLUMNS)
                    .where(audit_logs.c.id > last_id)
                    .order_by(audit_logs.c.id)
                    .limit(batch_size)
                ).mappings().all()
                if not rows:
                    break

                params = []
                for row in rows:
                    entry = AuditLogEntry.from_row(row)
                    params.append({"b_id": entry.id, "b_hash": seed})
                    seed = compute_hash(entry, seed)
                conn.execute(stmt_update, params)

                chained += len(rows)
                last_id = rows[-1]["id"]
                logger.info("Chained %d legacy audit entries (through id %d)", chained, last_id)
    except SQLAlchemyError as ex:
        raise MigrationError(f"chain backfill failed after {chained} entries: {ex}") from ex

    logger.info("Chain backfill complete: %d entries", chained)
    return chained
