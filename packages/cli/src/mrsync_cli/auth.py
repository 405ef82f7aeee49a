"""Credential resolution with GitLab CLI fallback.

GitLab token resolution order (stops at first success):
  1. GITLAB_TOKEN environment variable (CI / explicit override)
  2. `glab config get token --host <host>` (GitLab CLI session)

The Telegram bot token has no CLI session to borrow, so it comes from
TELEGRAM_BOT_TOKEN only.
"""

from __future__ import annotations

import logging
import os
import subprocess
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def resolve_gitlab_token(gitlab_url: str = "https://gitlab.com") -> str | None:
    """Return a GitLab token or None if no valid source is available.

    Never raises; callers should check for None and emit a UsageError.
    """
    token = os.environ.get("GITLAB_TOKEN")
    if token:
        return token

    host = urlparse(gitlab_url).hostname or gitlab_url
    try:
        result = subprocess.run(
            ["glab", "config", "get", "token", "--host", host],
            capture_output=True,
            text=True,
            timeout=5,
        )
        if result.returncode == 0:
            glab_token = result.stdout.strip()
            if glab_token:
                logger.debug("Resolved GitLab token via glab CLI session for %s.", host)
                return glab_token
    except (FileNotFoundError, subprocess.TimeoutExpired):
        # glab is not installed or timed out.
        pass

    return None


def resolve_telegram_token() -> str | None:
    return os.environ.get("TELEGRAM_BOT_TOKEN") or None
