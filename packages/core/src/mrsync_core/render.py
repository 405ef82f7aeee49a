"""Telegram message text for a merge request.

Messages use Telegram's legacy Markdown parse mode, matching what the
channel sends. Only the characters that mode treats as markup are escaped.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from mrsync_core.models import MergeRequestState

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from mrsync_core.models import MergeRequest

_MESSAGE_TEMPLATE = "[Merge request !{iid}]({url})\n`{source}` -> `{target}`\n{title}\nOpened {created} by {author}"
_STATE_TEMPLATE = "\n\n*{label}*"
_THREADS_TEMPLATE = "\n\n*Unresolved threads*\n{lines}"
_UP_VOTERS_TEMPLATE = "\n\n\U0001f44d - {count} by {names}"

_STATE_LABELS = {
    MergeRequestState.MERGED: "Merged",
    MergeRequestState.CLOSED: "Closed",
}

_MARKDOWN_SPECIAL = re.compile(r"([_*`\[])")


def escape_markdown(text: str) -> str:
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text or "")


def _escape_code(text: str) -> str:
    # Inside `code` spans only the backtick itself is special.
    return (text or "").replace("`", "'")


class MessageRenderer:
    def __init__(self, tz: str = "UTC", date_format: str = "%d %B %H:%M"):
        self._tz = ZoneInfo(tz)
        self._date_format = date_format

    def render_message(self, mr: MergeRequest) -> str:
        """Text of the message posted when a merge request is first seen."""
        text = _MESSAGE_TEMPLATE.format(
            iid=mr.iid,
            url=mr.web_url,
            source=_escape_code(mr.source_branch),
            target=_escape_code(mr.target_branch),
            title=escape_markdown(mr.title),
            created=mr.created_at.astimezone(self._tz).strftime(self._date_format),
            author=escape_markdown(mr.author_name),
        )
        label = _STATE_LABELS.get(mr.state)
        if label:
            text += _STATE_TEMPLATE.format(label=label)
        return text

    def render_update(self, mr: MergeRequest, thread_delta: Mapping[str, str], up_voters: Sequence[str]) -> str:
        """Text of an edited message.

        ``thread_delta`` holds only threads that became unresolved since the
        last edit; ``up_voters`` is the full current list.
        """
        text = self.render_message(mr)

        if thread_delta:
            lines = "\n".join(
                f"\t\t{escape_markdown(thread_id)} - {escape_markdown(description)}"
                for thread_id, description in thread_delta.items()
            )
            text += _THREADS_TEMPLATE.format(lines=lines)

        if up_voters:
            names = ", ".join(escape_markdown(name) for name in up_voters)
            text += _UP_VOTERS_TEMPLATE.format(count=len(up_voters), names=names)

        return text
