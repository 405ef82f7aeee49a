"""init command — interactive setup wizard.

Writes .mrsync.yml with the GitLab project, Telegram chat and store, can
create the Gist used by the shared store, and can generate a GitLab CI job
that runs `mrsync sync` from a pipeline schedule.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from urllib.parse import urlparse

import click
import yaml
from rich.console import Console

logger = logging.getLogger(__name__)
console = Console()

_GIST_FILENAME = "mrsync_notifications.json"

_CI_TEMPLATE = """\
# Include from .gitlab-ci.yml and run from a pipeline schedule
# (CI/CD > Schedules). Define GITLAB_TOKEN, TELEGRAM_BOT_TOKEN and
# GITHUB_TOKEN as masked CI/CD variables.
mrsync:
  image: python:3.12-slim
  rules:
    - if: $CI_PIPELINE_SOURCE == "schedule"
  script:
    - pip install "mrsync=={version}"
    - mrsync --config {config_path} sync
"""


@click.command("init")
@click.option("--project", "project", default=None, help="GitLab project path. Auto-detected from git remote.")
@click.pass_context
def init_cmd(ctx, project: str | None):
    """Set up mrsync for a project.

    Creates .mrsync.yml, optionally creates a private GitHub Gist for shared
    notification state, and generates a GitLab CI job for scheduled runs.
    """
    config_path = Path(ctx.obj["config"].get("config_path", ".mrsync.yml"))
    console.print("\n[bold cyan]mrsync init[/bold cyan] — setup wizard\n")

    detected_url, detected_project = _detect_project_from_git()
    gitlab_url = click.prompt("GitLab URL", default=detected_url or "https://gitlab.com")
    if project is None:
        project = click.prompt("GitLab project (id or group/name)", default=detected_project or None)

    chat_id = click.prompt("Telegram chat id (e.g. -1001234567890 or @channel)")

    console.print("\nNotification store:")
    console.print("  [bold]sqlite[/bold]  — local SQLite file (default, for a long-running `mrsync run`)")
    console.print("  [bold]gist[/bold]    — private GitHub Gist, for scheduled CI runs without a disk")
    console.print("  [bold]memory[/bold]  — nothing remembered; every run posts again")
    store_type = click.prompt(
        "Store backend",
        type=click.Choice(["sqlite", "gist", "memory"]),
        default="sqlite",
    )

    config: dict = {
        "gitlab_url": gitlab_url,
        "projects": [_coerce_id(project)],
        "chat_id": _coerce_id(chat_id),
        "store": store_type,
    }

    if store_type == "sqlite":
        db_path = click.prompt("SQLite database path", default=".mrsync.db")
        if db_path != ".mrsync.db":
            config["store_path"] = db_path
        console.print(f"[green]SQLite store configured at {db_path}[/green]")

    elif store_type == "gist":
        gist_id = _create_gist(ctx.obj["config"].get("github_token"), project)
        if gist_id:
            console.print(f"[green]Created Gist: {gist_id}[/green]")
            config["gist_id"] = gist_id
        else:
            console.print(f"[yellow]Gist creation failed — add gist_id manually to {config_path}[/yellow]")

    _write_config(config_path, config)
    console.print(f"[green]Wrote {config_path}[/green]")

    if click.confirm("\nGenerate mrsync.gitlab-ci.yml for scheduled pipelines?", default=store_type == "gist"):
        _write_ci_job(config_path)
        console.print("[green]Created mrsync.gitlab-ci.yml[/green]")

    console.print("\n[bold green]Setup complete![/bold green]")
    console.print("Run one pass with: [bold]mrsync sync[/bold], or keep it running with [bold]mrsync run[/bold]")


def _coerce_id(value: str) -> int | str:
    value = str(value).strip()
    return int(value) if value.lstrip("-").isdigit() else value


def _detect_project_from_git() -> tuple[str | None, str | None]:
    """Guess (GitLab base URL, project path) from the origin remote."""
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None, None
    if result.returncode != 0:
        return None, None
    return parse_remote(result.stdout.strip())


def parse_remote(url: str) -> tuple[str | None, str | None]:
    """Split a git remote into (https base URL, project path).

    https://gitlab.example.com/group/sub/app.git  →  (https://gitlab.example.com, group/sub/app)
    git@gitlab.example.com:group/app.git          →  (https://gitlab.example.com, group/app)
    """
    if url.startswith("git@"):
        host, _, path = url[len("git@") :].partition(":")
    else:
        parsed = urlparse(url)
        host, path = parsed.hostname, parsed.path
    path = (path or "").strip("/").removesuffix(".git")
    if not host or "/" not in path:
        return None, None
    return f"https://{host}", path


def _create_gist(token: str | None, project: str) -> str | None:
    """Create a private Gist holding an empty record file and return its id."""
    if not token:
        console.print("[yellow]GITHUB_TOKEN is not set; cannot create the Gist.[/yellow]")
        return None

    from github import Auth, Github, GithubException, InputFileContent

    try:
        gist = Github(auth=Auth.Token(token)).get_user().create_gist(
            False,
            {_GIST_FILENAME: InputFileContent("{}")},
            f"mrsync notification state for {project}",
        )
    except GithubException as e:
        logger.warning("Gist creation failed: %s", e)
        return None
    return gist.id


def _write_config(path: Path, config: dict) -> None:
    """Write or update the config file, preserving any existing keys."""
    existing: dict = {}
    if path.exists():
        existing = yaml.safe_load(path.read_text()) or {}
    existing.update(config)
    path.write_text(yaml.dump(existing, default_flow_style=False, sort_keys=False))


def _get_version() -> str:
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("mrsync")
    except PackageNotFoundError:
        return "0.1.0"


def _write_ci_job(config_path: Path) -> None:
    Path("mrsync.gitlab-ci.yml").write_text(_CI_TEMPLATE.format(version=_get_version(), config_path=config_path))
