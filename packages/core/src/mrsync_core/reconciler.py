"""Keep one Telegram message per merge request in sync with GitLab.

A reconciler owns one merge request state. Each pass:

    fetch every configured project     ← any failure aborts, nothing written
    for each merge request:
        no record      → post message   → on success store a new record
        record differs → edit message   → on success overwrite the snapshot
        record matches → nothing

The store is only written after the chat confirmed the change, so a failed
call leaves the record as it was and the next pass retries the same action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from mrsync_core.models import Failed
from mrsync_store.models import NotificationRecord

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mrsync_core.gl.merge_request import GitLabSource
    from mrsync_core.models import MergeRequest, MergeRequestState
    from mrsync_core.render import MessageRenderer
    from mrsync_core.telegram.client import TelegramChannel
    from mrsync_store.base import BaseStore

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PassReport:
    """What one reconciliation pass did, as logged and shown by `mrsync sync`."""

    state: str
    fetched: int = 0
    created: int = 0
    edited: int = 0
    unchanged: int = 0
    failed: int = 0
    started_at: str = field(default_factory=_now)
    finished_at: str = ""


def thread_delta(mr: MergeRequest, record: NotificationRecord) -> dict[str, str]:
    """Unresolved threads that were not in the record's snapshot."""
    return {tid: desc for tid, desc in mr.unresolved_threads.items() if tid not in record.threads}


def has_changed(mr: MergeRequest, record: NotificationRecord) -> bool:
    return (
        set(mr.unresolved_threads) != record.threads
        or set(mr.up_voters) != record.up_voters
        or mr.state.value != record.state
    )


class Reconciler:
    def __init__(
        self,
        state: MergeRequestState,
        source: GitLabSource,
        store: BaseStore,
        channel: TelegramChannel,
        project_ids: Sequence[int | str],
        chat_id: int | str,
        renderer: MessageRenderer,
    ):
        self.state = state
        self._source = source
        self._store = store
        self._channel = channel
        self._project_ids = list(project_ids)
        self._chat_id = chat_id
        self._renderer = renderer

    def __repr__(self) -> str:
        return f"Reconciler(state={self.state.value!r}, projects={self._project_ids!r})"

    def process(self) -> PassReport:
        """Run one pass for this reconciler's state.

        Raises SourceUnavailableError before any write if GitLab cannot be
        read, and lets StoreError propagate. Channel failures are counted in
        the report and retried on the next pass.
        """
        report = PassReport(state=self.state.value)

        # Fetch everything first: a pass never acts on partial data.
        merge_requests: list[MergeRequest] = []
        for project_id in self._project_ids:
            merge_requests.extend(self._source.fetch_by_state(project_id, self.state))
        report.fetched = len(merge_requests)

        for mr in merge_requests:
            record = self._store.get(mr.project_id, mr.iid)
            if record is None:
                self._notify_new(mr, report)
            elif has_changed(mr, record):
                self._notify_update(mr, record, report)
            else:
                report.unchanged += 1

        report.finished_at = _now()
        logger.info(
            "%s pass: %d fetched, %d created, %d edited, %d unchanged, %d failed",
            report.state,
            report.fetched,
            report.created,
            report.edited,
            report.unchanged,
            report.failed,
        )
        return report

    def _notify_new(self, mr: MergeRequest, report: PassReport) -> None:
        result = self._channel.create(self._chat_id, self._renderer.render_message(mr))
        if isinstance(result, Failed):
            logger.warning("Could not post !%s of project %s, will retry next pass: %s", mr.iid, mr.project_id, result)
            report.failed += 1
            return

        self._store.put(
            NotificationRecord(
                project_id=mr.project_id,
                mr_iid=mr.iid,
                chat_id=self._chat_id,
                message_id=result.message_id,
                threads=set(mr.unresolved_threads),
                up_voters=set(mr.up_voters),
                state=mr.state.value,
                updated_at=_now(),
            )
        )
        logger.info("Posted !%s of project %s as message %s", mr.iid, mr.project_id, result.message_id)
        report.created += 1

    def _notify_update(self, mr: MergeRequest, record: NotificationRecord, report: PassReport) -> None:
        text = self._renderer.render_update(mr, thread_delta(mr, record), list(mr.up_voters))
        # The record's chat, not the configured one: messages stay where they were posted.
        result = self._channel.edit(record.chat_id, record.message_id, text)
        if isinstance(result, Failed):
            logger.warning(
                "Could not edit message %s for !%s of project %s, will retry next pass: %s",
                record.message_id,
                mr.iid,
                mr.project_id,
                result,
            )
            report.failed += 1
            return

        record.threads = set(mr.unresolved_threads)
        record.up_voters = set(mr.up_voters)
        record.state = mr.state.value
        record.updated_at = _now()
        self._store.put(record)
        logger.info("Edited message %s for !%s of project %s", record.message_id, mr.iid, mr.project_id)
        report.edited += 1
