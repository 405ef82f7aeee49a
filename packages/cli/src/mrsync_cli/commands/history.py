"""history command — display stored notification records."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()

_STATE_STYLE = {
    "opened": "green",
    "merged": "magenta",
    "closed": "red",
}


@click.command("history")
@click.option("--project", "project_id", default=None, help="Only show records of this numeric GitLab project id.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, project_id: str | None, limit: int):
    """Show the merge requests mrsync has posted, most recently updated first."""
    from mrsync_store.memory import MemoryStore

    store = ctx.obj["store"]
    if isinstance(store, MemoryStore):
        raise click.UsageError("The in-memory store keeps no history. Use 'store: sqlite' or 'store: gist'.")

    records = store.list_records(project_id)
    if not records:
        console.print("[yellow]No notification records found.[/yellow]")
        return

    records = sorted(records, key=lambda r: r.updated_at, reverse=True)[:limit]

    title = f"Notifications — project {project_id}" if project_id else "Notifications"
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Project")
    table.add_column("MR", style="bold", width=6)
    table.add_column("State", width=8)
    table.add_column("Message", justify="right")
    table.add_column("Threads", justify="right")
    table.add_column("Up-voters")
    table.add_column("Updated At", width=20)

    for r in records:
        style = _STATE_STYLE.get(r.state, "white")
        table.add_row(
            str(r.project_id),
            f"!{r.mr_iid}",
            f"[{style}]{r.state}[/{style}]",
            str(r.message_id),
            str(len(r.threads)),
            ", ".join(sorted(r.up_voters)),
            r.updated_at[:19].replace("T", " "),
        )

    console.print(table)
