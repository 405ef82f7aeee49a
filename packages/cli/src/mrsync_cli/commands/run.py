"""run command — keep reconciling on a schedule."""

from __future__ import annotations

import click
from rich.console import Console

console = Console()


@click.command("run")
@click.option("--opened-every", type=float, default=None, help="Seconds between passes over opened merge requests.")
@click.option("--merged-every", type=float, default=None, help="Seconds between passes over merged merge requests.")
@click.pass_context
def run_cmd(ctx, opened_every: float | None, merged_every: float | None):
    """Reconcile every tracked state on its own schedule until Ctrl-C.

    Intervals come from the `schedule` section of .mrsync.yml unless
    overridden here. A failed pass is logged and retried on the next tick.
    """
    from mrsync_cli.runtime import open_selector
    from mrsync_core.scheduler import Scheduler

    config = ctx.obj["config"]
    intervals = dict(config["schedule"])
    if opened_every is not None:
        intervals["opened"] = opened_every
    if merged_every is not None:
        intervals["merged"] = merged_every
    config["schedule"] = intervals

    with open_selector(config, ctx.obj["store"]) as selector:
        scheduler = Scheduler(selector, intervals)
        console.print(
            "[bold]mrsync running[/bold] — "
            + ", ".join(f"{state} every {seconds:g}s" for state, seconds in intervals.items())
            + ". Press Ctrl-C to stop."
        )
        scheduler.run_forever()
