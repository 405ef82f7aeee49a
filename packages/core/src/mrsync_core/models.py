from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from mrsync_core.errors import ChannelError


class MergeRequestState(str, Enum):
    OPENED = "opened"
    MERGED = "merged"
    CLOSED = "closed"


TRACKED_STATES = (MergeRequestState.OPENED, MergeRequestState.MERGED)


@dataclass(frozen=True)
class MergeRequest:
    """A merge request as read from GitLab. The sync logic never mutates it."""

    project_id: int | str
    iid: int
    title: str
    source_branch: str
    target_branch: str
    web_url: str
    author_name: str
    created_at: datetime
    state: MergeRequestState
    unresolved_threads: dict[str, str] = field(default_factory=dict)  # thread id -> short description
    up_voters: list[str] = field(default_factory=list)

    @property
    def key(self) -> tuple[int | str, int]:
        return self.project_id, self.iid


@dataclass(frozen=True)
class Delivered:
    """The channel accepted the call. ``message_id`` is the chat message it touched."""

    message_id: int


@dataclass(frozen=True)
class Failed:
    error: ChannelError

    def __str__(self) -> str:
        return str(self.error)


DeliveryResult = Delivered | Failed
