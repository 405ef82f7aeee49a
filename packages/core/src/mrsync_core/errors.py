"""Exception taxonomy for a sync pass.

SourceUnavailableError and StoreError abort the whole pass; ChannelError is
per merge request and never raised out of the channel (it travels inside a
Failed result). UnsupportedStateError is a wiring bug.
"""

from __future__ import annotations

from mrsync_store.base import StoreError

__all__ = [
    "ChannelError",
    "MrsyncError",
    "SourceUnavailableError",
    "StoreError",
    "UnsupportedStateError",
]


class MrsyncError(Exception):
    pass


class SourceUnavailableError(MrsyncError):
    """GitLab could not be reached or refused the request."""


class ChannelError(MrsyncError):
    """Telegram rejected or never received a send/edit/delete call."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UnsupportedStateError(MrsyncError, ValueError):
    """A merge request state with no reconciler was requested."""
