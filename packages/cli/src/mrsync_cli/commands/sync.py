"""sync command — run one reconciliation pass."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from mrsync_core.errors import SourceUnavailableError, StoreError
from mrsync_core.models import TRACKED_STATES, MergeRequestState

console = Console()


def print_report(report) -> None:
    table = Table(title=f"Sync pass — {report.state}", show_header=True, header_style="bold cyan")
    for column in ("Fetched", "Created", "Edited", "Unchanged", "Failed"):
        table.add_column(column, justify="right")
    failed = f"[red]{report.failed}[/red]" if report.failed else "0"
    table.add_row(str(report.fetched), str(report.created), str(report.edited), str(report.unchanged), failed)
    console.print(table)


@click.command("sync")
@click.option(
    "--state",
    "states",
    type=click.Choice([s.value for s in TRACKED_STATES]),
    multiple=True,
    help="Merge request state to reconcile. Repeatable; defaults to every tracked state.",
)
@click.pass_context
def sync_cmd(ctx, states: tuple[str, ...]):
    """Reconcile chat messages with GitLab once and exit.

    Posts a message for every merge request without one and edits messages
    whose threads, approvals or state changed. Suitable for running from an
    external scheduler such as cron or a CI schedule.

    \b
    Required environment variables:
      GITLAB_TOKEN         GitLab access token (or use glab CLI)
      TELEGRAM_BOT_TOKEN   Telegram bot token
    """
    from mrsync_cli.runtime import open_selector

    config = ctx.obj["config"]
    store = ctx.obj["store"]
    selected = [MergeRequestState(s) for s in states] or list(TRACKED_STATES)

    aborted = False
    with open_selector(config, store) as selector:
        for state in selected:
            try:
                report = selector.select(state).process()
            except (SourceUnavailableError, StoreError) as e:
                console.print(f"[red]{state.value} pass aborted: {e}[/red]")
                aborted = True
                continue
            print_report(report)

    if aborted:
        ctx.exit(1)
