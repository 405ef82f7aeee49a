"""retract command — remove a merge request's message from the chat."""

from __future__ import annotations

import click
from rich.console import Console

from mrsync_core.models import Failed

console = Console()


@click.command("retract")
@click.option("--project", "project_id", required=True, help="Numeric GitLab project id, as shown by `mrsync history`.")
@click.option("--iid", "mr_iid", type=int, required=True, help="Merge request iid (the !number).")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_context
def retract_cmd(ctx, project_id: str, mr_iid: int, yes: bool):
    """Delete the chat message posted for a merge request and forget it.

    The record is only removed once Telegram confirmed the deletion. If the
    merge request is still open, the next sync pass posts a fresh message.
    """
    from mrsync_cli.runtime import open_channel

    store = ctx.obj["store"]
    record = store.get(project_id, mr_iid)
    if record is None:
        raise click.ClickException(f"No message recorded for !{mr_iid} of project {project_id}.")

    if not yes:
        click.confirm(
            f"Delete message {record.message_id} in chat {record.chat_id} for !{mr_iid}?",
            abort=True,
        )

    channel = open_channel(ctx.obj["config"])
    try:
        result = channel.delete(record.chat_id, record.message_id)
    finally:
        channel.close()

    if isinstance(result, Failed):
        raise click.ClickException(f"Telegram refused to delete message {record.message_id}: {result}")

    store.delete(project_id, mr_iid)
    console.print(f"[green]Retracted !{mr_iid} of project {project_id}.[/green]")
