"""GitHub host collaborator.

``GitHubHost`` is bound to one pull request and exposes exactly the reads and
writes the review driver needs. GitHub is the system of record: nothing here
caches comments or reviews between calls.

Transient failures (HTTP 5xx, 429, dropped connections) are retried at the
call site with exponential backoff; anything else propagates to the caller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import requests
from github import Auth, Github, GithubException

from prwarden_core.comments import ReviewComment
from prwarden_core.context import PRContext
from prwarden_core.diff import ADDED, DELETED, MODIFIED, RENAMED

logger = logging.getLogger(__name__)

HOST_ATTEMPTS = 3
_TRANSIENT_STATUSES = {429, 500, 502, 503, 504}
_API_URL = "https://api.github.com"

# GitHub's files API statuses → DiffFile statuses.
_STATUS_MAP = {"added": ADDED, "removed": DELETED, "renamed": RENAMED}


class DiffTooLargeError(Exception):
    """GitHub refused to render the unified diff (HTTP 406, diff too large)."""


@dataclass(frozen=True)
class ChangedFile:
    path: str
    status: str
    additions: int
    deletions: int
    patch: str
    previous_path: str | None = None


def get_repo(repo_name: str, token: str):
    return Github(auth=Auth.Token(token)).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_pull_requests(repo, state: str = "open"):
    return repo.get_pulls(state=state)


def is_transient(exc: Exception) -> bool:
    if isinstance(exc, GithubException):
        return exc.status in _TRANSIENT_STATUSES
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code in _TRANSIENT_STATUSES
    return isinstance(exc, (requests.ConnectionError, requests.Timeout))


def with_retry(func, *args, **kwargs):
    """Call ``func`` up to HOST_ATTEMPTS times, backing off 1s, 2s, ... on transient errors."""
    for attempt in range(HOST_ATTEMPTS):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not is_transient(e) or attempt == HOST_ATTEMPTS - 1:
                raise
            delay = 2**attempt
            logger.warning(
                "GitHub API error (attempt %d/%d): %s. Retrying in %ds...",
                attempt + 1,
                HOST_ATTEMPTS,
                e,
                delay,
            )
            time.sleep(delay)


def _is_bot(user, bot_login: str | None) -> bool:
    if user is None:
        return False
    login = user.login or ""
    return user.type == "Bot" or login.endswith("[bot]") or (bot_login is not None and login == bot_login)


def to_review_comment(comment, bot_login: str | None = None) -> ReviewComment:
    """Convert a PyGithub PullRequestComment into a ReviewComment."""
    return ReviewComment(
        id=comment.id,
        path=comment.path,
        body=comment.body or "",
        position=comment.position,
        original_position=comment.original_position,
        line=comment.line,
        side=comment.side or "RIGHT",
        author_is_bot=_is_bot(comment.user, bot_login),
        in_reply_to_id=comment.in_reply_to_id,
        commit_id=comment.commit_id,
    )


class GitHubHost:
    """Reads and writes for one pull request.

    ``anchor_mode`` selects how new comments are placed. ``"position"`` (the
    default) anchors by diff position, which GitHub accepts regardless of
    which side of a split diff the line is on. ``"line"`` anchors by file line
    plus side, a compatibility shim for hosts/modes that reject positions.
    """

    def __init__(
        self,
        repo,
        pr_number: int,
        token: str,
        anchor_mode: str = "position",
        bot_login: str | None = None,
        timeout: int = 60,
    ):
        self.repo = repo
        self.pr_number = pr_number
        self.anchor_mode = anchor_mode
        self.bot_login = bot_login
        self._token = token
        self._timeout = timeout
        self._pr = None
        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"token {token}",
                "User-Agent": "prwarden",
            }
        )

    @classmethod
    def connect(cls, repo_name: str, pr_number: int, token: str, **kwargs) -> GitHubHost:
        return cls(get_repo(repo_name, token=token), pr_number, token, **kwargs)

    def _pull(self):
        if self._pr is None:
            self._pr = with_retry(get_pull, self.repo, self.pr_number)
        return self._pr

    # ------------------------------------------------------------------ #
    # Reads                                                                #
    # ------------------------------------------------------------------ #

    def fetch_pull_request(self) -> PRContext:
        # Always a fresh read: the PR object is the source of the head SHA and
        # the review-comment count the driver branches on.
        self._pr = with_retry(get_pull, self.repo, self.pr_number)
        pr = self._pr
        return PRContext(
            number=pr.number,
            title=pr.title or "",
            description=pr.body or "",
            head_sha=pr.head.sha,
            head_ref=pr.head.ref or "",
            existing_comment_count=pr.review_comments or 0,
        )

    def fetch_changed_files(self) -> list[ChangedFile]:
        files = with_retry(lambda: list(self._pull().get_files()))
        return [
            ChangedFile(
                path=f.filename,
                status=_STATUS_MAP.get(f.status, MODIFIED),
                additions=f.additions,
                deletions=f.deletions,
                patch=f.patch or "",
                previous_path=f.previous_filename,
            )
            for f in files
        ]

    def fetch_unified_diff(self) -> str:
        url = f"{_API_URL}/repos/{self.repo.full_name}/pulls/{self.pr_number}"

        def _get() -> str:
            response = self._session.get(
                url,
                headers={"Accept": "application/vnd.github.v3.diff"},
                timeout=self._timeout,
            )
            if response.status_code == 406:
                raise DiffTooLargeError(response.text[:200])
            response.raise_for_status()
            return response.text

        return with_retry(_get)

    def fetch_existing_comments(self) -> list[ReviewComment]:
        comments = with_retry(lambda: list(self._pull().get_review_comments()))
        return [to_review_comment(c, self.bot_login) for c in comments]

    def fetch_file_content(self, path: str, ref: str) -> str:
        """Return the text of ``path`` at commit ``ref``."""
        contents = with_retry(self.repo.get_contents, path, ref=ref)
        return contents.decoded_content.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------ #
    # Writes                                                               #
    # ------------------------------------------------------------------ #

    def post_review_comment(self, commit_id: str, side: str, position_or_line: int, path: str, body: str) -> int:
        """Create one inline comment and return its id."""
        pr = self._pull()
        commit = with_retry(self.repo.get_commit, commit_id)
        if self.anchor_mode == "line":
            comment = with_retry(
                pr.create_review_comment,
                body=body,
                commit=commit,
                path=path,
                line=position_or_line,
                side=side,
            )
            return comment.id

        # Position anchoring goes through the reviews endpoint, which still
        # accepts diff positions for inline comments.
        review = with_retry(
            pr.create_review,
            commit=commit,
            event="COMMENT",
            comments=[{"path": path, "position": position_or_line, "body": body}],
        )
        created = with_retry(lambda: list(pr.get_single_review_comments(review.id)))
        return created[0].id if created else review.id

    def delete_comment(self, comment_id: int) -> None:
        pr = self._pull()
        comment = with_retry(pr.get_review_comment, comment_id)
        with_retry(comment.delete)

    def reply_to_comment(self, comment_id: int, body: str) -> None:
        with_retry(self._pull().create_review_comment_reply, comment_id, body)

    def post_verdict(self, event: str, body: str) -> None:
        with_retry(self._pull().create_review, body=body, event=event)

    def update_pull_request_body(self, body: str) -> None:
        with_retry(self._pull().edit, body=body)
