"""Notification state data models.

Decoupled from mrsync_core so the store layer can be used independently
and backends never need to import GitLab or Telegram types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class NotificationRecord:
    """The chat message posted for one merge request, plus the last-seen snapshot.

    Identity is (project_id, mr_iid). Stores keep at most one record per
    identity; put() replaces the previous one.
    """

    project_id: int | str
    mr_iid: int
    chat_id: int | str
    message_id: int
    threads: set[str] = field(default_factory=set)
    up_voters: set[str] = field(default_factory=set)
    state: str = "opened"
    updated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def key(self) -> tuple[str, int]:
        return record_key(self.project_id, self.mr_iid)


def record_key(project_id: int | str, mr_iid: int) -> tuple[str, int]:
    """Normalise an identity so 42 and "42" address the same record."""
    return str(project_id), int(mr_iid)


def record_to_dict(record: NotificationRecord) -> dict:
    return {
        "project_id": record.project_id,
        "mr_iid": record.mr_iid,
        "chat_id": record.chat_id,
        "message_id": record.message_id,
        "threads": sorted(record.threads),
        "up_voters": sorted(record.up_voters),
        "state": record.state,
        "updated_at": record.updated_at,
    }


def record_from_dict(d: dict) -> NotificationRecord:
    return NotificationRecord(
        project_id=d.get("project_id", ""),
        mr_iid=d.get("mr_iid", 0),
        chat_id=d.get("chat_id", ""),
        message_id=d.get("message_id", 0),
        threads=set(d.get("threads") or []),
        up_voters=set(d.get("up_voters") or []),
        state=d.get("state", "opened"),
        updated_at=d.get("updated_at", ""),
    )


def coerce_id(value: int | str) -> int | str:
    """Turn numeric strings read back from text columns into ints again."""
    if isinstance(value, str) and value.lstrip("-").isdigit():
        return int(value)
    return value
