"""GistStore: zero-infrastructure shared notification state via GitHub Gist.

Useful when the bot runs from a CI schedule with no persistent disk: each
run reads the Gist, reconciles, and writes changed records back.

Data format: a single JSON file named `mrsync_notifications.json` inside the
Gist. The file contains a JSON object mapping "<project_id>!<mr_iid>" to a
NotificationRecord dict. Keying by identity keeps one record per merge
request no matter how many runs write to it.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING

from github import Auth, Github, GithubException, InputFileContent

from mrsync_store.base import BaseStore, StoreError
from mrsync_store.models import record_from_dict, record_key, record_to_dict

if TYPE_CHECKING:
    from mrsync_store.models import NotificationRecord

logger = logging.getLogger(__name__)

_GIST_FILENAME = "mrsync_notifications.json"


def _gist_key(project_id, mr_iid) -> str:
    pid, iid = record_key(project_id, mr_iid)
    return f"{pid}!{iid}"


class GistStore(BaseStore):
    """Stores notification records in a GitHub Gist as one JSON object.

    Every put() is a read-modify-write of the whole file, fine for the
    hundreds of open merge requests a team has, not for tens of thousands.
    Unlike a review log, losing a write here would cause a duplicate chat
    message, so every failure is raised as StoreError.
    """

    def __init__(self, gist_id: str, token: str):
        self._gist_id = gist_id
        self._gh = Github(auth=Auth.Token(token))
        self._lock = threading.Lock()

    def _get_gist(self):
        return self._gh.get_gist(self._gist_id)

    def get(self, project_id, mr_iid):
        data = self._read_records(self._load())
        raw = data.get(_gist_key(project_id, mr_iid))
        return record_from_dict(raw) if raw is not None else None

    def put(self, record: NotificationRecord) -> None:
        with self._lock:
            gist = self._load()
            data = self._read_records(gist)
            data[_gist_key(record.project_id, record.mr_iid)] = record_to_dict(record)
            self._write(gist, data)

    def delete(self, project_id, mr_iid):
        with self._lock:
            gist = self._load()
            data = self._read_records(gist)
            if data.pop(_gist_key(project_id, mr_iid), None) is not None:
                self._write(gist, data)

    def list_records(self, project_id=None):
        data = self._read_records(self._load())
        records = [record_from_dict(d) for d in data.values()]
        if project_id is not None:
            records = [r for r in records if str(r.project_id) == str(project_id)]
        return sorted(records, key=lambda r: r.key)

    def _load(self):
        try:
            return self._get_gist()
        except GithubException as e:
            raise StoreError(f"cannot load gist {self._gist_id}: {e}") from e

    def _write(self, gist, data: dict) -> None:
        try:
            gist.edit(files={_GIST_FILENAME: InputFileContent(json.dumps(data, indent=2, sort_keys=True))})
        except GithubException as e:
            if e.status == 404:
                logger.error("Gist %s not found or token lacks 'gist' scope", self._gist_id)
            raise StoreError(f"cannot write gist {self._gist_id}: {e}") from e

    def _read_records(self, gist) -> dict:
        """Read the current JSON object from the Gist file, or return {}.

        A file that exists but does not parse is an error: treating it as
        empty would re-post every notification.
        """
        file_obj = gist.files.get(_GIST_FILENAME)
        if file_obj is None:
            return {}
        try:
            data = json.loads(file_obj.content or "{}")
        except json.JSONDecodeError as e:
            raise StoreError(f"{_GIST_FILENAME} in gist {self._gist_id} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"{_GIST_FILENAME} in gist {self._gist_id} does not hold a JSON object")
        return data
