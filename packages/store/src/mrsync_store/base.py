"""Abstract store interface.

Every storage backend (SQLite, Gist, in-memory) implements this interface.
The reconciler depends on BaseStore, not on a concrete backend, so backends
are swappable without touching the sync logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mrsync_store.models import NotificationRecord


class StoreError(Exception):
    """Raised when a backend cannot read or write notification records.

    Callers treat this as fatal for the current sync pass: a write that is
    silently lost would make the next pass post a duplicate message.
    """


class BaseStore(ABC):
    """Durable mapping from merge request identity to its NotificationRecord.

    Implementations must keep at most one record per (project_id, mr_iid)
    and must raise StoreError rather than swallow backend failures.
    """

    @abstractmethod
    def get(self, project_id: int | str, mr_iid: int) -> NotificationRecord | None:
        """Return the record for a merge request, or None if none was stored."""

    @abstractmethod
    def put(self, record: NotificationRecord) -> None:
        """Insert or replace the record for the record's identity."""

    @abstractmethod
    def delete(self, project_id: int | str, mr_iid: int) -> None:
        """Remove a record. Missing records are ignored."""

    @abstractmethod
    def list_records(self, project_id: int | str | None = None) -> list[NotificationRecord]:
        """Return stored records, optionally for one project.

        Returns an empty list if nothing is stored.
        """

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Default is a no-op so callers can always call close() safely.
        """
