"""Shared fakes for the sync pipeline tests."""

from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from mrsync_core.errors import ChannelError, SourceUnavailableError
from mrsync_core.models import Delivered, Failed, MergeRequest, MergeRequestState
from mrsync_core.render import MessageRenderer
from mrsync_store.memory import MemoryStore


def _make_mr(iid=42, project_id=7, state=MergeRequestState.OPENED, threads=None, up_voters=None, **overrides):
    mr = MergeRequest(
        project_id=project_id,
        iid=iid,
        title="Add login form",
        source_branch="feature/login",
        target_branch="main",
        web_url=f"https://gitlab.example.com/group/app/-/merge_requests/{iid}",
        author_name="Jane Doe",
        created_at=datetime(2024, 3, 5, 9, 30, tzinfo=timezone.utc),
        state=state,
        unresolved_threads=dict(threads or {}),
        up_voters=list(up_voters or []),
    )
    return replace(mr, **overrides) if overrides else mr


class FakeSource:
    """Serves whatever merge requests the test put in ``by_state``."""

    def __init__(self):
        self.by_state: dict[MergeRequestState, list[MergeRequest]] = {s: [] for s in MergeRequestState}
        self.fail = False
        self.calls: list[tuple] = []

    def fetch_by_state(self, project_id, state):
        self.calls.append((project_id, state))
        if self.fail:
            raise SourceUnavailableError("gitlab is down")
        return [mr for mr in self.by_state[state] if mr.project_id == project_id]


class FakeChannel:
    """Records every call; create and edit fail while ``fail_all`` is set."""

    def __init__(self):
        self.created: list[tuple] = []
        self.edited: list[tuple] = []
        self.deleted: list[tuple] = []
        self.fail_all = False
        self._ids = itertools.count(1000)

    @property
    def calls(self) -> int:
        return len(self.created) + len(self.edited) + len(self.deleted)

    def create(self, chat_id, text):
        self.created.append((chat_id, text))
        if self.fail_all:
            return Failed(ChannelError("Bad Request: chat not found", 400))
        return Delivered(message_id=next(self._ids))

    def edit(self, chat_id, message_id, text):
        self.edited.append((chat_id, message_id, text))
        if self.fail_all:
            return Failed(ChannelError("Too Many Requests", 429))
        return Delivered(message_id=message_id)

    def delete(self, chat_id, message_id):
        self.deleted.append((chat_id, message_id))
        return Delivered(message_id=message_id)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def renderer():
    return MessageRenderer(tz="UTC")


@pytest.fixture
def make_mr():
    return _make_mr
