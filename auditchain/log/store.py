"""
AuditStore abstract interface.

Defines contract for audit log storage implementations.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, List, Optional

from ..core.entry import AuditEvent, AuditLogEntry


@dataclass(frozen=True)
class AppendResult:
    """
    Result of a committed append.

    entry carries the storage-assigned id and timestamp; previous_hash is
    the seed computed from the tail observed inside the critical section.
    """

    entry: AuditLogEntry
    previous_hash: str

    @property
    def entry_id(self) -> int:
        return self.entry.id


class AuditStore(ABC):
    """
    Abstract audit log storage interface.

    All implementations must guarantee:
    - Append-only (no updates, no deletes, except nulling actor_id)
    - Linear history: read-tail / compute-seed / insert is one critical
      section, so no two entries ever share a previous_hash
    - Total order: id strictly increases with commit order
    """

    @abstractmethod
    def append(self, event: AuditEvent, timestamp: Optional[datetime] = None) -> AppendResult:
        """
        Append event to the log, chained to the current tail.

        Args:
            event: Event to record (id/timestamp/previous_hash assigned here)
            timestamp: Override for the assigned timestamp (tests, imports)

        Returns:
            AppendResult for the committed entry

        Raises:
            AuditStoreError: If the append fails
        """
        ...

    @abstractmethod
    def tail(self) -> Optional[AuditLogEntry]:
        """Return the entry with the highest id, or None for an empty log."""
        ...

    @abstractmethod
    def get(self, entry_id: int) -> Optional[AuditLogEntry]:
        ...

    @abstractmethod
    def count(self, connection: Any = None) -> int:
        ...

    @abstractmethod
    def iter_entries(
        self, batch_size: int = 1000, connection: Any = None, after_id: int = 0
    ) -> Iterator[AuditLogEntry]:
        """
        Stream entries in ascending id order.

        Args:
            batch_size: Rows fetched per round trip
            connection: Snapshot handle from snapshot(); None opens a fresh read
            after_id: Start after this id (resume past an unreadable row)

        Yields:
            Entries in id order

        Raises:
            UnreadableEntry: If a row no longer decodes
        """
        ...

    @contextmanager
    def snapshot(self) -> Iterator[Any]:
        """
        Consistent read view for long scans.

        Implementations should override with snapshot isolation. Default
        yields None (each read sees the latest committed state).
        """
        yield None

    def recent(self, limit: int = 20) -> List[AuditLogEntry]:
        """Newest entries first. Default implementation scans the whole log."""
        entries = list(self.iter_entries())
        return list(reversed(entries[-limit:])) if limit > 0 else []
