"""Wire the GitLab source, Telegram channel and store into a StrategySelector.

The CLI owns the long-lived clients: it builds them here, hands them to the
reconcilers, and closes them when the command finishes.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

import click

from mrsync_core.config import validate_config
from mrsync_core.gl.merge_request import GitLabSource, connect
from mrsync_core.render import MessageRenderer
from mrsync_core.strategy import build_selector
from mrsync_core.telegram.client import TelegramChannel

if TYPE_CHECKING:
    from collections.abc import Iterator

    from mrsync_core.strategy import StrategySelector
    from mrsync_store.base import BaseStore


def open_channel(config: dict) -> TelegramChannel:
    if not config.get("telegram_token"):
        raise click.UsageError("TELEGRAM_BOT_TOKEN environment variable is not set.")
    return TelegramChannel(token=config["telegram_token"], proxy=config.get("proxy"))


@contextmanager
def open_selector(config: dict, store: BaseStore) -> Iterator[StrategySelector]:
    """Yield a ready selector; the Telegram client is closed on exit."""
    problems = validate_config(config)
    if problems:
        raise click.UsageError("\n".join(problems))

    source = GitLabSource(
        connect(config["gitlab_url"], config["gitlab_token"], ssl_verify=config.get("ssl_verify", True)),
        thread_preview_chars=config.get("thread_preview_chars", 80),
        merged_after=config.get("merged_after"),
    )
    renderer = MessageRenderer(tz=config.get("timezone", "UTC"), date_format=config.get("date_format", "%d %B %H:%M"))
    channel = open_channel(config)
    try:
        yield build_selector(
            source=source,
            store=store,
            channel=channel,
            project_ids=config["projects"],
            chat_id=config["chat_id"],
            renderer=renderer,
        )
    finally:
        channel.close()
