"""Tests for the CLI entry point."""

import subprocess
from unittest.mock import MagicMock

import click
import pytest
import yaml
from click.testing import CliRunner

from mrsync_cli.cli import _build_store, main
from mrsync_core.errors import SourceUnavailableError
from mrsync_core.models import Delivered, Failed, MergeRequestState
from mrsync_core.reconciler import PassReport
from mrsync_store.gist import GistStore
from mrsync_store.memory import MemoryStore
from mrsync_store.models import NotificationRecord
from mrsync_store.sqlite import SQLiteStore


def _make_config(gitlab_token="glpat", telegram_token="tg", **overrides):
    config = {
        "gitlab_url": "https://gitlab.example.com",
        "gitlab_token": gitlab_token,
        "telegram_token": telegram_token,
        "github_token": None,
        "projects": [7],
        "chat_id": -1001,
        "store": "sqlite",
        "store_path": ".mrsync.db",
        "gist_id": None,
        "schedule": {"opened": 60, "merged": 300},
        "timezone": "UTC",
        "date_format": "%d %B %H:%M",
        "thread_preview_chars": 80,
        "proxy": None,
        "ssl_verify": True,
    }
    config.update(overrides)
    return config


def _patch_common(mocker, config=None, store=None):
    """Patch config loading, token resolution and _build_store for most tests."""
    cfg = config or _make_config()
    mocker.patch("mrsync_core.config.load_config", return_value=cfg)
    mocker.patch("mrsync_cli.auth.resolve_gitlab_token", return_value=cfg.get("gitlab_token"))
    mocker.patch("mrsync_cli.auth.resolve_telegram_token", return_value=cfg.get("telegram_token"))
    if store is None:
        store = MagicMock(spec=SQLiteStore)
        store.list_records.return_value = []
    mocker.patch("mrsync_cli.cli._build_store", return_value=store)
    return cfg, store


def _patch_runtime(mocker, reconcilers):
    """Replace the GitLab/Telegram wiring with a selector over the given reconcilers."""
    selector = MagicMock()
    selector.select.side_effect = lambda state: reconcilers[MergeRequestState(state)]
    mocker.patch("mrsync_cli.runtime.connect", return_value=MagicMock())
    mocker.patch("mrsync_cli.runtime.build_selector", return_value=selector)
    channel = MagicMock()
    mocker.patch("mrsync_cli.runtime.TelegramChannel", return_value=channel)
    return selector, channel


def _reconciler(report=None, error=None):
    reconciler = MagicMock()
    if error is not None:
        reconciler.process.side_effect = error
    else:
        reconciler.process.return_value = report
    return reconciler


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


class TestSync:
    def test_missing_gitlab_token(self, mocker):
        _patch_common(mocker, config=_make_config(gitlab_token=None))

        result = CliRunner().invoke(main, ["sync"])

        assert result.exit_code != 0
        assert "GITLAB_TOKEN" in result.output

    def test_missing_telegram_token(self, mocker):
        _patch_common(mocker, config=_make_config(telegram_token=None))

        result = CliRunner().invoke(main, ["sync"])

        assert result.exit_code != 0
        assert "TELEGRAM_BOT_TOKEN" in result.output

    def test_runs_every_tracked_state_by_default(self, mocker):
        _patch_common(mocker)
        reconcilers = {
            MergeRequestState.OPENED: _reconciler(PassReport(state="opened", fetched=2, created=1, unchanged=1)),
            MergeRequestState.MERGED: _reconciler(PassReport(state="merged")),
        }
        selector, channel = _patch_runtime(mocker, reconcilers)

        result = CliRunner().invoke(main, ["sync"])

        assert result.exit_code == 0, result.output
        assert [c.args[0] for c in selector.select.call_args_list] == [
            MergeRequestState.OPENED,
            MergeRequestState.MERGED,
        ]
        assert "opened" in result.output
        channel.close.assert_called_once()

    def test_single_state(self, mocker):
        _patch_common(mocker)
        reconcilers = {MergeRequestState.MERGED: _reconciler(PassReport(state="merged"))}
        selector, _ = _patch_runtime(mocker, reconcilers)

        result = CliRunner().invoke(main, ["sync", "--state", "merged"])

        assert result.exit_code == 0, result.output
        selector.select.assert_called_once_with(MergeRequestState.MERGED)

    def test_closed_state_rejected(self, mocker):
        _patch_common(mocker)
        result = CliRunner().invoke(main, ["sync", "--state", "closed"])
        assert result.exit_code != 0

    def test_fetch_failure_exits_non_zero_but_runs_other_states(self, mocker):
        _patch_common(mocker)
        merged = _reconciler(PassReport(state="merged"))
        reconcilers = {
            MergeRequestState.OPENED: _reconciler(error=SourceUnavailableError("gitlab is down")),
            MergeRequestState.MERGED: merged,
        }
        _patch_runtime(mocker, reconcilers)

        result = CliRunner().invoke(main, ["sync"])

        assert result.exit_code == 1
        assert "gitlab is down" in result.output
        merged.process.assert_called_once()

    def test_store_closed_on_exit(self, mocker):
        _, store = _patch_common(mocker)
        _patch_runtime(mocker, {MergeRequestState.OPENED: _reconciler(PassReport(state="opened"))})

        CliRunner().invoke(main, ["sync", "--state", "opened"])

        store.close.assert_called_once()


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRun:
    def test_starts_scheduler_with_configured_intervals(self, mocker):
        _patch_common(mocker)
        _patch_runtime(mocker, {})
        scheduler_cls = mocker.patch("mrsync_core.scheduler.Scheduler")

        result = CliRunner().invoke(main, ["run", "--merged-every", "900"])

        assert result.exit_code == 0, result.output
        intervals = scheduler_cls.call_args.args[1]
        assert intervals == {"opened": 60, "merged": 900.0}
        scheduler_cls.return_value.run_forever.assert_called_once()

    def test_invalid_interval_rejected(self, mocker):
        _patch_common(mocker)
        _patch_runtime(mocker, {})
        scheduler_cls = mocker.patch("mrsync_core.scheduler.Scheduler")

        result = CliRunner().invoke(main, ["run", "--opened-every", "0"])

        assert result.exit_code != 0
        assert "schedule.opened" in result.output
        scheduler_cls.assert_not_called()


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------


class TestHistory:
    def test_memory_store_rejected(self, mocker):
        _patch_common(mocker, store=MemoryStore())

        result = CliRunner().invoke(main, ["history"])

        assert result.exit_code != 0
        assert "in-memory" in result.output

    def test_empty_history(self, mocker):
        _patch_common(mocker)

        result = CliRunner().invoke(main, ["history"])

        assert result.exit_code == 0
        assert "No notification records" in result.output

    def test_lists_records(self, mocker):
        _, store = _patch_common(mocker)
        store.list_records.return_value = [
            NotificationRecord(
                project_id=7,
                mr_iid=42,
                chat_id=-1001,
                message_id=100,
                threads={"t1"},
                up_voters={"alice"},
                state="merged",
                updated_at="2024-03-05T09:30:00+00:00",
            )
        ]

        result = CliRunner().invoke(main, ["history", "--project", "7"])

        assert result.exit_code == 0, result.output
        store.list_records.assert_called_once_with("7")
        assert "!42" in result.output
        assert "alice" in result.output


# ---------------------------------------------------------------------------
# retract
# ---------------------------------------------------------------------------


class TestRetract:
    def _store_with_record(self):
        store = MemoryStore()
        store.put(NotificationRecord(project_id=7, mr_iid=42, chat_id=-1001, message_id=100))
        return store

    def test_deletes_message_then_record(self, mocker):
        store = self._store_with_record()
        _patch_common(mocker, store=store)
        channel = MagicMock()
        channel.delete.return_value = Delivered(message_id=100)
        mocker.patch("mrsync_cli.runtime.TelegramChannel", return_value=channel)

        result = CliRunner().invoke(main, ["retract", "--project", "7", "--iid", "42", "--yes"])

        assert result.exit_code == 0, result.output
        channel.delete.assert_called_once_with(-1001, 100)
        channel.close.assert_called_once()
        assert store.get(7, 42) is None

    def test_failed_delete_keeps_record(self, mocker):
        from mrsync_core.errors import ChannelError

        store = self._store_with_record()
        _patch_common(mocker, store=store)
        channel = MagicMock()
        channel.delete.return_value = Failed(ChannelError("message can't be deleted"))
        mocker.patch("mrsync_cli.runtime.TelegramChannel", return_value=channel)

        result = CliRunner().invoke(main, ["retract", "--project", "7", "--iid", "42", "--yes"])

        assert result.exit_code != 0
        assert store.get(7, 42) is not None

    def test_unknown_merge_request(self, mocker):
        _patch_common(mocker, store=MemoryStore())

        result = CliRunner().invoke(main, ["retract", "--project", "7", "--iid", "1", "--yes"])

        assert result.exit_code != 0
        assert "No message recorded" in result.output

    def test_confirmation_declined(self, mocker):
        store = self._store_with_record()
        _patch_common(mocker, store=store)
        channel_cls = mocker.patch("mrsync_cli.runtime.TelegramChannel")

        result = CliRunner().invoke(main, ["retract", "--project", "7", "--iid", "42"], input="n\n")

        assert result.exit_code != 0
        channel_cls.assert_not_called()
        assert store.get(7, 42) is not None


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


class TestInit:
    def test_writes_sqlite_config(self, mocker, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        _patch_common(mocker, config=_make_config(config_path=".mrsync.yml"))
        build_store = mocker.patch("mrsync_cli.cli._build_store")
        mocker.patch(
            "mrsync_cli.commands.init.subprocess.run",
            return_value=subprocess.CompletedProcess([], 0, stdout="git@gitlab.example.com:group/app.git\n"),
        )

        # GitLab URL, project, chat id, store, db path, CI job
        answers = "\n\n-1001\nsqlite\n\nn\n"
        result = CliRunner().invoke(main, ["init"], input=answers)

        assert result.exit_code == 0, result.output
        written = yaml.safe_load((tmp_path / ".mrsync.yml").read_text())
        assert written["gitlab_url"] == "https://gitlab.example.com"
        assert written["projects"] == ["group/app"]
        assert written["chat_id"] == -1001
        assert written["store"] == "sqlite"
        assert not (tmp_path / "mrsync.gitlab-ci.yml").exists()
        build_store.assert_not_called()


def test_create_gist_uses_token_auth_and_input_file(mocker):
    from github import Auth, InputFileContent

    from mrsync_cli.commands.init import _create_gist

    github_cls = mocker.patch("github.Github")
    create_gist = github_cls.return_value.get_user.return_value.create_gist
    create_gist.return_value.id = "gist123"

    assert _create_gist("tok", "group/app") == "gist123"

    assert isinstance(github_cls.call_args.kwargs["auth"], Auth.Token)
    public, files, _description = create_gist.call_args.args
    assert public is False
    assert isinstance(files["mrsync_notifications.json"], InputFileContent)


def test_parse_remote():
    from mrsync_cli.commands.init import parse_remote

    assert parse_remote("https://gitlab.example.com/group/sub/app.git") == ("https://gitlab.example.com", "group/sub/app")
    assert parse_remote("git@gitlab.com:group/app.git") == ("https://gitlab.com", "group/app")
    assert parse_remote("not a remote") == (None, None)


# ---------------------------------------------------------------------------
# auth.py
# ---------------------------------------------------------------------------


class TestResolveGitlabToken:
    def test_returns_env_var_when_set(self, monkeypatch):
        from mrsync_cli.auth import resolve_gitlab_token

        monkeypatch.setenv("GITLAB_TOKEN", "env-token")
        assert resolve_gitlab_token() == "env-token"

    def test_falls_back_to_glab_cli(self, monkeypatch, mocker):
        from mrsync_cli.auth import resolve_gitlab_token

        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        mock_run = mocker.patch("subprocess.run")
        mock_run.return_value = MagicMock(returncode=0, stdout="glab-token\n")

        assert resolve_gitlab_token("https://gitlab.example.com") == "glab-token"
        assert mock_run.call_args.args[0] == ["glab", "config", "get", "token", "--host", "gitlab.example.com"]

    def test_returns_none_when_glab_not_installed(self, monkeypatch, mocker):
        from mrsync_cli.auth import resolve_gitlab_token

        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        mocker.patch("subprocess.run", side_effect=FileNotFoundError)
        assert resolve_gitlab_token() is None

    def test_returns_none_when_glab_times_out(self, monkeypatch, mocker):
        from mrsync_cli.auth import resolve_gitlab_token

        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        mocker.patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="glab", timeout=5))
        assert resolve_gitlab_token() is None

    def test_returns_none_when_glab_returns_error(self, monkeypatch, mocker):
        from mrsync_cli.auth import resolve_gitlab_token

        monkeypatch.delenv("GITLAB_TOKEN", raising=False)
        mocker.patch("subprocess.run", return_value=MagicMock(returncode=1, stdout=""))
        assert resolve_gitlab_token() is None


def test_resolve_telegram_token(monkeypatch):
    from mrsync_cli.auth import resolve_telegram_token

    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "tg-token")
    assert resolve_telegram_token() == "tg-token"
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "")
    assert resolve_telegram_token() is None


# ---------------------------------------------------------------------------
# _build_store
# ---------------------------------------------------------------------------


class TestBuildStore:
    def test_sqlite_is_default(self, tmp_path):
        store = _build_store({"store_path": str(tmp_path / "x.db")})
        assert isinstance(store, SQLiteStore)
        store.close()

    def test_memory(self):
        assert isinstance(_build_store({"store": "memory"}), MemoryStore)

    def test_gist(self):
        store = _build_store({"store": "gist", "gist_id": "abc", "github_token": "tok"})
        assert isinstance(store, GistStore)

    def test_gist_without_credentials(self):
        with pytest.raises(click.UsageError):
            _build_store({"store": "gist", "gist_id": "abc", "github_token": None})

    def test_unknown_store(self):
        with pytest.raises(click.UsageError):
            _build_store({"store": "postgres"})
