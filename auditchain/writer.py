"""
Append engine: single-writer audit logging.

Producers (request handlers, schedulers, controllers) call
AuditWriter.append() from any thread. Events go onto a bounded queue drained
by one writer thread, which is the only caller of AuditStore.append() in
this process. The store itself takes a database-level lock per append, so
several processes may each run their own writer against the same table.

Audit logging must never block or fail the caller's primary operation:
- append() waits at most submit_timeout for queue space, then drops
- storage errors are logged on the operational channel and counted
- append() never raises
"""

import logging
import queue
import threading
from typing import Any, Optional

from .config import Settings
from .core.entry import AuditEvent
from .core.errors import AuditStoreError
from .log.store import AuditStore
from .metrics import track_append, track_append_failure

logger = logging.getLogger(__name__)

_STOP = object()


class AuditWriter:
    """
    Serialized, best-effort audit appender.

    Usage:
        writer = AuditWriter(store)
        writer.append(AuditEvent(action="phi.read", status="success", ...))
        ...
        writer.close()
    """

    def __init__(
        self,
        store: AuditStore,
        queue_size: int = 10000,
        submit_timeout: float = 2.0,
        autostart: bool = True,
    ) -> None:
        """
        Args:
            store: Storage backend (its append() is the chained insert)
            queue_size: Max events waiting for the writer thread
            submit_timeout: Max seconds append() waits for queue space
            autostart: Start the writer thread immediately
        """
        self.store = store
        self.submit_timeout = submit_timeout
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self._pending = 0
        self._idle = threading.Condition()
        self._closed = False
        self._thread: Optional[threading.Thread] = None
        self.failed = 0
        if autostart:
            self.start()

    @classmethod
    def from_settings(cls, store: AuditStore, settings: Optional[Settings] = None) -> "AuditWriter":
        """Writer sized by AUDITCHAIN_QUEUE_SIZE and AUDITCHAIN_SUBMIT_TIMEOUT."""
        settings = settings or Settings.from_env()
        return cls(store, queue_size=settings.queue_size, submit_timeout=settings.submit_timeout)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="audit-writer", daemon=True)
        self._thread.start()

    def append(self, event: AuditEvent) -> bool:
        """
        Submit an event for appending. Never raises.

        Returns:
            True if the event was queued, False if it was dropped
        """
        with self._idle:
            # atomic with close(): an accepted event is always counted before _STOP
            closed = self._closed
            if not closed:
                self._pending += 1
        if closed:
            logger.warning("Audit writer closed; dropping event %s", event.action)
            track_append_failure("closed")
            return False

        try:
            self._queue.put(event, timeout=self.submit_timeout)
        except queue.Full:
            self._done()
            logger.error(
                "Audit queue full after %.1fs; dropping event %s", self.submit_timeout, event.action
            )
            track_append_failure("queue_full")
            return False
        return True

    def log_event(self, **fields: Any) -> bool:
        """
        Build and submit an event from keyword fields. Never raises.

        Invalid events (missing action, unknown status) are logged and dropped.
        """
        try:
            event = AuditEvent(**fields)
        except (TypeError, ValueError) as ex:
            logger.error("Rejected malformed audit event %s: %s", fields.get("action"), ex)
            track_append_failure("invalid")
            return False
        return self.append(event)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued event has been written or dropped.

        Returns:
            True if the queue drained within timeout
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Stop accepting events, drain the queue and stop the writer thread."""
        with self._idle:
            if self._closed:
                return
            self._closed = True
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.error("Audit writer did not drain within %.1fs", timeout)

    def __enter__(self) -> "AuditWriter":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _done(self) -> None:
        with self._idle:
            self._pending -= 1
            if self._pending == 0:
                self._idle.notify_all()

    def _run(self) -> None:
        stopping = False
        while True:
            if stopping:
                # events accepted before close() may still be landing behind _STOP
                with self._idle:
                    if self._pending == 0:
                        return
                try:
                    item = self._queue.get(timeout=0.05)
                except queue.Empty:
                    continue
            else:
                item = self._queue.get()
            if item is _STOP:
                stopping = True
                continue
            try:
                result = self.store.append(item)
                track_append(item.action)
                logger.debug("Audit entry %d appended (%s)", result.entry_id, item.action)
            except AuditStoreError as ex:
                self.failed += 1
                logger.error("Failed to log audit event %s: %s", item.action, ex)
                track_append_failure("storage")
            except Exception:
                # the writer thread must survive anything a backend throws
                self.failed += 1
                logger.exception("Unexpected error logging audit event %s", item.action)
                track_append_failure("storage")
            finally:
                self._done()
