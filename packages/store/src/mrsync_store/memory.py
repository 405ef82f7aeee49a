"""In-memory store. Nothing survives the process.

Handy for tests and for trying a configuration against a scratch chat.
"""

from __future__ import annotations

import copy
import threading
from typing import TYPE_CHECKING

from mrsync_store.base import BaseStore
from mrsync_store.models import record_key

if TYPE_CHECKING:
    from mrsync_store.models import NotificationRecord


class MemoryStore(BaseStore):
    """Dict-backed store keyed by (project_id, mr_iid).

    Records are copied on the way in and out so callers cannot mutate
    stored state behind the store's back.
    """

    def __init__(self):
        self._records: dict[tuple[str, int], NotificationRecord] = {}
        self._lock = threading.Lock()

    def get(self, project_id, mr_iid):
        with self._lock:
            record = self._records.get(record_key(project_id, mr_iid))
            return copy.deepcopy(record) if record is not None else None

    def put(self, record):
        with self._lock:
            self._records[record.key] = copy.deepcopy(record)

    def delete(self, project_id, mr_iid):
        with self._lock:
            self._records.pop(record_key(project_id, mr_iid), None)

    def list_records(self, project_id=None):
        with self._lock:
            records = [copy.deepcopy(r) for r in self._records.values()]
        if project_id is not None:
            records = [r for r in records if str(r.project_id) == str(project_id)]
        return records
