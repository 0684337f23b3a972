"""
SQL-backed audit store (SQLAlchemy Core).

Supports SQLite (file databases, WAL mode) and PostgreSQL. Appends are
serialized twice over: an in-process lock for threads sharing this store,
and a database-level write lock for every other process or store instance
pointing at the same table:

- SQLite: the append transaction is opened with BEGIN IMMEDIATE
- PostgreSQL: pg_advisory_xact_lock() taken before the tail is read
"""

import logging
import threading
import zlib
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import create_engine, event, func, insert, select, text, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from ..core.clock import SystemClock
from ..core.entry import AuditEvent, AuditLogEntry
from ..core.errors import AuditStoreError, ImmutabilityViolation, UnreadableEntry
from .integrity import next_seed
from .schema import TABLE_NAME, audit_logs
from .store import AppendResult, AuditStore

logger = logging.getLogger(__name__)

# Substring present in every trigger rejection message (all dialects)
IMMUTABLE_MARKER = "Audit logs are immutable"

APPEND_LOCK_KEY = zlib.crc32(f"auditchain:{TABLE_NAME}".encode("utf-8"))


def _configure_sqlite(engine: Engine) -> None:
    """
    Take over transaction control from pysqlite.

    pysqlite defers BEGIN until the first DML statement, which would let two
    appenders read the same tail. Emitting BEGIN ourselves lets the append
    path request an IMMEDIATE (write-locked) transaction.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        mode = conn.get_execution_options().get("sqlite_begin", "DEFERRED")
        conn.exec_driver_sql(f"BEGIN {mode}")


def create_audit_engine(url: str, **kwargs: Any) -> Engine:
    """
    Create an engine configured for the audit store.

    Args:
        url: SQLAlchemy database URL
        **kwargs: Passed through to sqlalchemy.create_engine

    Returns:
        Engine
    """
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        engine = create_engine(url, connect_args=connect_args, **kwargs)
        _configure_sqlite(engine)
        return engine
    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


def _utc_naive(ts: datetime) -> datetime:
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def translate_violation(exc: DBAPIError, entry_id: Optional[int] = None) -> AuditStoreError:
    """Map a storage rejection to ImmutabilityViolation when a trigger raised it."""
    if IMMUTABLE_MARKER in str(exc.orig):
        detail = f"{IMMUTABLE_MARKER}: operation rejected"
        if entry_id is not None:
            detail += f" on log ID {entry_id}"
        return ImmutabilityViolation(detail, entry_id=entry_id)
    return AuditStoreError(str(exc))


class SqlAuditStore(AuditStore):
    """
    Append-only audit store on a relational database.

    The table is guarded at the storage engine by the immutability
    triggers (see auditchain.immutability); this class never issues
    DELETE and only issues the one permitted UPDATE (anonymize_actor).
    """

    def __init__(self, engine: Engine, clock=None) -> None:
        """
        Initialize SQL audit store.

        Args:
            engine: Engine from create_audit_engine()
            clock: Time source for entry timestamps (default: SystemClock)
        """
        self.engine = engine
        self.clock = clock or SystemClock()
        self.dialect = engine.dialect.name
        self._lock = threading.Lock()
        if self.dialect == "sqlite":
            self._write_engine = engine.execution_options(sqlite_begin="IMMEDIATE")
            self._read_engine = engine
        else:
            self._write_engine = engine
            self._read_engine = engine.execution_options(isolation_level="REPEATABLE READ")
        if self.dialect not in ("sqlite", "postgresql"):
            logger.warning(
                "No database-level append lock for dialect %s; appends are only "
                "serialized within this process",
                self.dialect,
            )

    @classmethod
    def from_url(cls, url: str, clock=None, **kwargs: Any) -> "SqlAuditStore":
        return cls(create_audit_engine(url, **kwargs), clock=clock)

    def _acquire_append_lock(self, conn: Connection) -> None:
        if self.dialect == "postgresql":
            conn.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": APPEND_LOCK_KEY})

    def _tail(self, conn: Connection) -> Optional[AuditLogEntry]:
        row = conn.execute(select(audit_logs).order_by(audit_logs.c.id.desc()).limit(1)).mappings().first()
        return AuditLogEntry.from_row(row) if row is not None else None

    def append(self, event: AuditEvent, timestamp: Optional[datetime] = None) -> AppendResult:
        """
        Append event chained to the current tail.

        Read tail, compute seed and insert run inside one write-locked
        transaction, so concurrent appenders observe a linear history.

        Raises:
            AuditStoreError: If the append fails (nothing is written)
        """
        values: Dict[str, Any] = event.column_values()
        try:
            with self._lock:
                with self._write_engine.begin() as conn:
                    self._acquire_append_lock(conn)
                    seed = next_seed(self._tail(conn))
                    values["timestamp"] = _utc_naive(timestamp or self.clock.now())
                    values["previous_hash"] = seed
                    result = conn.execute(insert(audit_logs).values(**values))
                    entry_id = result.inserted_primary_key[0]
        except SQLAlchemyError as ex:
            raise AuditStoreError(f"failed to append audit entry {event.action!r}: {ex}") from ex
        except (ValueError, TypeError) as ex:
            raise AuditStoreError(f"audit log tail cannot be decoded; not appending {event.action!r}: {ex}") from ex

        entry = AuditLogEntry(id=entry_id, **values)
        return AppendResult(entry=entry, previous_hash=seed)

    def tail(self) -> Optional[AuditLogEntry]:
        try:
            with self.engine.connect() as conn:
                return self._tail(conn)
        except SQLAlchemyError as ex:
            raise AuditStoreError(f"failed to read audit log tail: {ex}") from ex
        except (ValueError, TypeError) as ex:
            raise AuditStoreError(f"audit log tail cannot be decoded: {ex}") from ex

    def get(self, entry_id: int) -> Optional[AuditLogEntry]:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(select(audit_logs).where(audit_logs.c.id == entry_id)).mappings().first()
        except SQLAlchemyError as ex:
            raise AuditStoreError(f"failed to read audit entry {entry_id}: {ex}") from ex
        except (ValueError, TypeError) as ex:
            raise AuditStoreError(f"audit entry {entry_id} cannot be decoded: {ex}") from ex
        return AuditLogEntry.from_row(row) if row is not None else None

    def count(self, connection: Optional[Connection] = None) -> int:
        stmt = select(func.count()).select_from(audit_logs)
        try:
            if connection is not None:
                return connection.execute(stmt).scalar_one()
            with self.engine.connect() as conn:
                return conn.execute(stmt).scalar_one()
        except SQLAlchemyError as ex:
            raise AuditStoreError(f"failed to count audit entries: {ex}") from ex

    @contextmanager
    def snapshot(self) -> Iterator[Connection]:
        """
        Read-only transaction with a stable view of the table.

        SQLite in WAL mode pins the snapshot at the first read; PostgreSQL
        runs the transaction at REPEATABLE READ. Neither blocks appenders.
        """
        try:
            with self._read_engine.connect() as conn:
                with conn.begin():
                    yield conn
        except SQLAlchemyError as ex:
            raise AuditStoreError(f"failed to open audit log snapshot: {ex}") from ex

    def iter_entries(
        self,
        batch_size: int = 1000,
        connection: Optional[Connection] = None,
        after_id: int = 0,
    ) -> Iterator[AuditLogEntry]:
        if connection is None:
            with self.snapshot() as conn:
                yield from self._iter_batches(conn, batch_size, after_id)
            return
        yield from self._iter_batches(connection, batch_size, after_id)

    def _iter_batches(self, conn: Connection, batch_size: int, after_id: int = 0) -> Iterator[AuditLogEntry]:
        # Keyset pagination keeps memory flat on large logs
        last_id = after_id
        while True:
            stmt = (
                select(audit_logs)
                .where(audit_logs.c.id > last_id)
                .order_by(audit_logs.c.id)
                .limit(batch_size)
            )
            try:
                rows = conn.execute(stmt).mappings().all()
            except SQLAlchemyError as ex:
                raise AuditStoreError(f"failed to read audit entries after id {last_id}: {ex}") from ex
            except (ValueError, TypeError):
                # result processors failed on some row of this batch
                for entry in self._iter_rows(conn, last_id, batch_size):
                    yield entry
                    last_id = entry.id
                continue
            if not rows:
                return
            for row in rows:
                yield AuditLogEntry.from_row(row)
            last_id = rows[-1]["id"]

    def _iter_rows(self, conn: Connection, last_id: int, batch_size: int) -> Iterator[AuditLogEntry]:
        """Decode one batch row by row; raise UnreadableEntry at the first bad row."""
        ids = conn.execute(
            select(audit_logs.c.id).where(audit_logs.c.id > last_id).order_by(audit_logs.c.id).limit(batch_size)
        ).scalars().all()
        for entry_id in ids:
            try:
                row = conn.execute(select(audit_logs).where(audit_logs.c.id == entry_id)).mappings().one()
            except (ValueError, TypeError) as ex:
                raw = conn.execute(
                    select(audit_logs.c.action, audit_logs.c.previous_hash).where(audit_logs.c.id == entry_id)
                ).one()
                raise UnreadableEntry(
                    f"audit entry {entry_id} cannot be decoded: {ex}",
                    entry_id=entry_id,
                    action=raw.action,
                    previous_hash=raw.previous_hash,
                ) from ex
            yield AuditLogEntry.from_row(row)

    def recent(self, limit: int = 20) -> List[AuditLogEntry]:
        stmt = select(audit_logs).order_by(audit_logs.c.id.desc()).limit(limit)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as ex:
            raise AuditStoreError(f"failed to read recent audit entries: {ex}") from ex
        except (ValueError, TypeError) as ex:
            raise AuditStoreError(f"recent audit entries cannot be decoded: {ex}") from ex
        return [AuditLogEntry.from_row(r) for r in rows]

    def anonymize_actor(self, actor_id: Any) -> int:
        """
        Null actor_id on every entry referencing a deleted actor.

        This is the single UPDATE the immutability triggers permit. It does
        not affect chain verification of any other field.

        Returns:
            Number of entries updated

        Raises:
            ImmutabilityViolation: If the storage engine rejects the update
        """
        stmt = update(audit_logs).where(audit_logs.c.actor_id == str(actor_id)).values(actor_id=None)
        try:
            with self._lock:
                with self._write_engine.begin() as conn:
                    result = conn.execute(stmt)
        except DBAPIError as ex:
            raise translate_violation(ex) from ex
        except SQLAlchemyError as ex:
            raise AuditStoreError(f"failed to anonymize actor {actor_id}: {ex}") from ex
        logger.info("Anonymized actor %s on %d audit entries", actor_id, result.rowcount)
        return result.rowcount
