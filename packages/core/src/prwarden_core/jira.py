"""JIRA lookup for the task linked to a pull request.

The task key is taken from the PR title or head branch (``ABC-123``). A PR
without a recognisable key, or a JIRA that cannot be reached, simply means no
task context, never a failed review.
"""

from __future__ import annotations

import logging
import re

import requests

from prwarden_core.context import ExternalTask, PRContext

logger = logging.getLogger(__name__)

_TASK_KEY_RE = re.compile(r"\b([A-Z][A-Z0-9]+-\d+)\b")


def find_task_key(*texts: str | None) -> str | None:
    for text in texts:
        match = _TASK_KEY_RE.search(text or "")
        if match:
            return match.group(1)
    return None


class JiraClient:
    def __init__(self, base_url: str, username: str, token: str, timeout: int = 30):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.auth = (username, token)
        self.session.headers.update({"Accept": "application/json"})

    def fetch_external_task(self, task_key: str) -> ExternalTask | None:
        url = f"{self.base_url}/rest/api/2/issue/{task_key}"
        logger.debug("Fetching JIRA task %s", url)
        response = self.session.get(url, params={"fields": "summary,description"}, timeout=self.timeout)
        if response.status_code == 404:
            logger.info("JIRA task %s not found.", task_key)
            return None
        response.raise_for_status()
        fields = response.json().get("fields") or {}
        return ExternalTask(
            key=task_key,
            summary=fields.get("summary") or "",
            description=fields.get("description") or "",
        )


def build_jira_client(config: dict) -> JiraClient | None:
    base_url = config.get("jira_base_url")
    username = config.get("jira_username")
    token = config.get("jira_token")
    if not (base_url and username and token):
        return None
    return JiraClient(base_url, username, token)


def resolve_task(client: JiraClient | None, pr: PRContext) -> ExternalTask | None:
    """Return the task linked to ``pr``, or None. Lookup errors are logged, not raised."""
    if client is None:
        return None
    key = find_task_key(pr.title, pr.head_ref)
    if key is None:
        logger.debug("No task key found in PR #%d title or branch.", pr.number)
        return None
    try:
        return client.fetch_external_task(key)
    except (requests.RequestException, ValueError) as e:
        logger.warning("Could not fetch JIRA task %s: %s", key, e)
        return None
