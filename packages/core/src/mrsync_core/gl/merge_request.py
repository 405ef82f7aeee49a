from __future__ import annotations

import logging
from datetime import date, datetime, timezone

import gitlab
import requests
from gitlab.exceptions import GitlabError

from mrsync_core.errors import SourceUnavailableError
from mrsync_core.models import MergeRequest, MergeRequestState

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30


def connect(url: str, token: str, ssl_verify: bool = True, timeout: float = _DEFAULT_TIMEOUT) -> gitlab.Gitlab:
    return gitlab.Gitlab(url, private_token=token, ssl_verify=ssl_verify, timeout=timeout)


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def thread_preview(body: str | None, limit: int = 80) -> str:
    """First non-empty line of a note, cut to ``limit`` characters."""
    first_line = next((line.strip() for line in (body or "").splitlines() if line.strip()), "")
    if len(first_line) > limit:
        return first_line[: limit - 1].rstrip() + "…"
    return first_line


def get_unresolved_threads(mr, preview_chars: int = 80) -> dict[str, str]:
    """Return {discussion id: preview} for every resolvable, unresolved discussion."""
    threads: dict[str, str] = {}
    for discussion in mr.discussions.list(get_all=True):
        notes = discussion.attributes.get("notes") or []
        resolvable = [n for n in notes if n.get("resolvable")]
        if not resolvable or all(n.get("resolved") for n in resolvable):
            continue
        threads[str(discussion.id)] = thread_preview(notes[0].get("body"), preview_chars)
    return threads


def get_up_voters(mr) -> list[str]:
    """Names of users who approved the merge request, in approval order."""
    approvals = mr.approvals.get()
    names = []
    for entry in approvals.attributes.get("approved_by") or []:
        user = entry.get("user") or {}
        name = user.get("name") or user.get("username")
        if name:
            names.append(name)
    return names


class GitLabSource:
    """Read-only access to a GitLab instance's merge requests."""

    def __init__(self, client: gitlab.Gitlab, thread_preview_chars: int = 80, merged_after: str | date | None = None):
        self._gl = client
        self._preview_chars = thread_preview_chars
        # Only applied to MERGED listings; opened MRs are always all listed.
        self._merged_after = merged_after.isoformat() if isinstance(merged_after, date) else merged_after

    def fetch_by_state(self, project_id: int | str, state: MergeRequestState) -> list[MergeRequest]:
        """Return every merge request of ``project_id`` currently in ``state``.

        Any GitLab or transport failure is raised as SourceUnavailableError so
        the caller can abort the pass before writing anything.
        """
        try:
            project = self._gl.projects.get(project_id, lazy=True)
            filters = {"state": state.value, "get_all": True}
            if state is MergeRequestState.MERGED and self._merged_after:
                filters["updated_after"] = self._merged_after
            raw_mrs = project.mergerequests.list(**filters)
            result = [self._to_model(project_id, mr) for mr in raw_mrs]
        except (GitlabError, requests.RequestException) as e:
            raise SourceUnavailableError(f"cannot fetch {state.value} merge requests of project {project_id}: {e}") from e

        logger.debug("Fetched %d %s merge request(s) for project %s", len(result), state.value, project_id)
        return result

    def _to_model(self, project_id: int | str, mr) -> MergeRequest:
        author = mr.attributes.get("author") or {}
        return MergeRequest(
            # Records are keyed by the numeric project id, whatever the config spells.
            project_id=mr.attributes.get("project_id") or project_id,
            iid=mr.iid,
            title=mr.title or "",
            source_branch=mr.source_branch,
            target_branch=mr.target_branch,
            web_url=mr.web_url,
            author_name=author.get("name") or author.get("username") or "",
            created_at=_parse_timestamp(mr.attributes.get("created_at")),
            state=MergeRequestState(mr.state),
            unresolved_threads=get_unresolved_threads(mr, self._preview_chars),
            up_voters=get_up_voters(mr),
        )
