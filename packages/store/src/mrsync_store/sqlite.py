"""SQLiteStore: local file-based store, the default for a single bot instance.

Schema:
  notifications — one row per merge request, keyed on (project_id, mr_iid).
                  Thread ids and up-voter names are stored as sorted JSON
                  arrays so the row stays flat and reads need no JOINs.

The primary key is what enforces one message per merge request: put() is an
upsert, so a second write for the same identity replaces the first.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading

from mrsync_store.base import BaseStore, StoreError
from mrsync_store.models import NotificationRecord, coerce_id, record_key

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS notifications (
    project_id   TEXT NOT NULL,
    mr_iid       INTEGER NOT NULL,
    chat_id      TEXT NOT NULL,
    message_id   INTEGER NOT NULL,
    threads_json TEXT DEFAULT '[]',
    voters_json  TEXT DEFAULT '[]',
    state        TEXT NOT NULL,
    updated_at   TEXT,
    PRIMARY KEY (project_id, mr_iid)
);
"""

_UPSERT = """
INSERT INTO notifications
  (project_id, mr_iid, chat_id, message_id, threads_json, voters_json, state, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (project_id, mr_iid) DO UPDATE SET
  chat_id      = excluded.chat_id,
  message_id   = excluded.message_id,
  threads_json = excluded.threads_json,
  voters_json  = excluded.voters_json,
  state        = excluded.state,
  updated_at   = excluded.updated_at
"""


class SQLiteStore(BaseStore):
    """Stores notification records in a local SQLite database file.

    The database file path defaults to `.mrsync.db` in the current working
    directory. Configure via .mrsync.yml: `store_path: /path/to/mrsync.db`.

    The scheduler runs one thread per tracked state, so the connection is
    shared across threads and every statement runs under a lock.
    """

    def __init__(self, db_path: str = ".mrsync.db"):
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open SQLite store at {db_path}: {e}") from e

    def get(self, project_id, mr_iid):
        pid, iid = record_key(project_id, mr_iid)
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT * FROM notifications WHERE project_id=? AND mr_iid=?",
                    (pid, iid),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"cannot read record {pid}!{iid}: {e}") from e
        return self._row_to_record(row) if row is not None else None

    def put(self, record):
        pid, iid = record.key
        params = (
            pid,
            iid,
            str(record.chat_id),
            record.message_id,
            json.dumps(sorted(record.threads)),
            json.dumps(sorted(record.up_voters)),
            record.state,
            record.updated_at,
        )
        try:
            with self._lock:
                self._conn.execute(_UPSERT, params)
                self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"cannot write record {pid}!{iid}: {e}") from e
        logger.debug("Stored record %s!%s (message %s)", pid, iid, record.message_id)

    def delete(self, project_id, mr_iid):
        pid, iid = record_key(project_id, mr_iid)
        try:
            with self._lock:
                self._conn.execute("DELETE FROM notifications WHERE project_id=? AND mr_iid=?", (pid, iid))
                self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"cannot delete record {pid}!{iid}: {e}") from e

    def list_records(self, project_id=None):
        try:
            with self._lock:
                if project_id is not None:
                    rows = self._conn.execute(
                        "SELECT * FROM notifications WHERE project_id=? ORDER BY mr_iid",
                        (str(project_id),),
                    ).fetchall()
                else:
                    rows = self._conn.execute("SELECT * FROM notifications ORDER BY project_id, mr_iid").fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"cannot list records: {e}") from e

        return [self._row_to_record(r) for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> NotificationRecord:
        return NotificationRecord(
            project_id=coerce_id(row["project_id"]),
            mr_iid=row["mr_iid"],
            chat_id=coerce_id(row["chat_id"]),
            message_id=row["message_id"],
            threads=set(json.loads(row["threads_json"] or "[]")),
            up_voters=set(json.loads(row["voters_json"] or "[]")),
            state=row["state"],
            updated_at=row["updated_at"] or "",
        )
