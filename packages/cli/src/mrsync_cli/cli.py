"""CLI entry point for mrsync.

Commands:
  sync     — one reconciliation pass for a merge request state
  run      — reconcile every tracked state on its schedule until stopped
  history  — display stored notification records
  retract  — delete a merge request's chat message and its record
  init     — interactive setup wizard writing .mrsync.yml
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from mrsync_cli.commands.history import history_cmd
from mrsync_cli.commands.init import init_cmd
from mrsync_cli.commands.retract import retract_cmd
from mrsync_cli.commands.run import run_cmd
from mrsync_cli.commands.sync import sync_cmd

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request URL at INFO, and Telegram URLs carry the bot token.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _build_store(config: dict):
    """Instantiate the configured store from .mrsync.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (store_path, default .mrsync.db), the default
      store: gist   → GistStore   (requires gist_id and GITHUB_TOKEN)
      store: memory → MemoryStore (nothing persisted; every run re-posts)
    """
    store_type = config.get("store", "sqlite")

    if store_type == "gist":
        from mrsync_store.gist import GistStore

        gist_id = config.get("gist_id")
        token = config.get("github_token")
        if not gist_id or not token:
            raise click.UsageError("store: gist requires gist_id in .mrsync.yml and GITHUB_TOKEN in the environment.")
        return GistStore(gist_id=gist_id, token=token)

    if store_type == "memory":
        from mrsync_store.memory import MemoryStore

        console.print("[yellow]Using the in-memory store: notifications are not remembered between runs.[/yellow]")
        return MemoryStore()

    if store_type == "sqlite":
        from mrsync_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path", ".mrsync.db"))

    raise click.UsageError(f"Unknown store {store_type!r}. Choose 'sqlite', 'gist' or 'memory'.")


@click.group()
@click.version_option(
    version=importlib.metadata.version("mrsync"),
    prog_name="mrsync",
)
@click.option(
    "--config",
    "config_path",
    default=".mrsync.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="MRSYNC_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Mirror GitLab merge requests as Telegram messages."""
    from mrsync_cli.auth import resolve_gitlab_token, resolve_telegram_token
    from mrsync_core.config import load_config

    ctx.ensure_object(dict)
    _configure_logging(verbose)

    config = load_config(config_path)
    config["config_path"] = config_path

    # Resolve tokens early so all subcommands share the same resolution.
    gitlab_token = resolve_gitlab_token(config["gitlab_url"])
    if gitlab_token:
        config["gitlab_token"] = gitlab_token
    telegram_token = resolve_telegram_token()
    if telegram_token:
        config["telegram_token"] = telegram_token

    ctx.obj["config"] = config
    # init writes the config the store would be read from; don't open one for it.
    if ctx.invoked_subcommand == "init":
        return
    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.call_on_close(store.close)


main.add_command(sync_cmd)
main.add_command(run_cmd)
main.add_command(history_cmd)
main.add_command(retract_cmd)
main.add_command(init_cmd)
