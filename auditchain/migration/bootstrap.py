"""
Startup sequence for the audit log.

    1. ensure the table exists (fresh installs get the chained schema)
    2. backfill the chain on legacy tables
    3. install the immutability triggers

Step 3 only runs once step 2 has returned; backfill_chain() refuses to
run if the triggers are already in place.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..core.errors import MigrationError
from ..immutability.enforcer import ImmutabilityStatus, install_enforcer
from ..log.schema import TABLE_NAME, metadata_obj
from .backfill import backfill_chain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartupReport:
    created_table: bool
    backfilled: int
    immutability: ImmutabilityStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "createdTable": self.created_table,
            "backfilled": self.backfilled,
            "immutability": self.immutability.to_dict(),
        }


def ensure_schema(engine: Engine) -> bool:
    """Create the audit table and its indexes if missing. Returns True if created."""
    try:
        if inspect(engine).has_table(TABLE_NAME):
            return False
        metadata_obj.create_all(engine)
    except SQLAlchemyError as ex:
        raise MigrationError(f"failed to create {TABLE_NAME}: {ex}") from ex
    logger.info("Created audit table %s", TABLE_NAME)
    return True


def initialize_audit_log(engine: Engine, batch_size: int = 1000) -> StartupReport:
    """
    Bring the audit table to a chained, write-protected state.

    Safe to call on every process start.

    Raises:
        MigrationError: If any step fails; the caller must not start
            accepting audit events
    """
    created = ensure_schema(engine)
    backfilled = backfill_chain(engine, batch_size=batch_size)
    status = install_enforcer(engine)
    if not status.is_fully_protected:
        raise MigrationError(status.message)
    return StartupReport(created_table=created, backfilled=backfilled, immutability=status)
