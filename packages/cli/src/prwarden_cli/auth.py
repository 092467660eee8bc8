"""GitHub token resolution.

Sources, first hit wins:
  1. GITHUB_TOKEN, then GH_TOKEN (CI, or an explicit override)
  2. ``gh auth token`` from a logged-in GitHub CLI session
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


def _token_from_gh_cli() -> str | None:
    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, timeout=5)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        logger.debug("gh CLI unavailable; no token from a gh session.")
        return None
    if result.returncode != 0:
        logger.debug("gh auth token exited with %d.", result.returncode)
        return None
    return result.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None when no source has one. Never raises."""
    for name in TOKEN_ENV_VARS:
        token = os.environ.get(name)
        if token:
            return token

    token = _token_from_gh_cli()
    if token:
        logger.debug("Resolved GitHub token via gh CLI session.")
    return token
