"""Review comment template and correlation with the current diff.

Every comment prwarden posts uses the same labelled template::

    **What:** <the issue>
    **Why:** <why it matters>
    **How:** <how to fix it>
    **Impact:** <what happens if ignored>

The template is defined once here: ``CommentBody.format`` writes it and
``extract_what`` reads its What field back when later runs reconcile
persisted comments. Comments that don't follow the template (e.g. written by a
human) are treated as raw text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from prwarden_core.diff import DiffFile, DiffLine
from prwarden_core.utils.filters import normalize_path

FIELDS = ("What", "Why", "How", "Impact")
_EMPTY_FIELD = "N/A"

# Markers that mean "the model found nothing"; never published as comments.
NO_ISSUE_SENTINELS = frozenset({"lgtm", "looks good", "looks good to me", "no issues", "no issues found"})

# Posted in reply to a comment that a later run found resolved.
RESOLVED_REPLY = "✅ This looks resolved in the latest changes."


def _label_re(name: str) -> re.Pattern:
    return re.compile(rf"\*{{0,2}}\b{name}:\*{{0,2}}")


_LABELS = {name: _label_re(name) for name in FIELDS}


@dataclass(frozen=True)
class CommentBody:
    what: str
    why: str = ""
    how: str = ""
    impact: str = ""

    def format(self) -> str:
        values = (self.what, self.why, self.how, self.impact)
        return "\n\n".join(f"**{label}:** {(value or '').strip() or _EMPTY_FIELD}" for label, value in zip(FIELDS, values))


def extract_what(body: str | None) -> str:
    """Return the What payload of a comment body.

    Text between ``What:`` and ``Why:``; the remainder of the body when ``Why:``
    is missing; the whole body when the comment is not templated at all.
    """
    body = body or ""
    what = _LABELS["What"].search(body)
    if not what:
        return body.strip()
    rest = body[what.end() :]
    why = _LABELS["Why"].search(rest)
    payload = rest[: why.start()] if why else rest
    return payload.strip()


def is_sentinel(text: str | None) -> bool:
    normalized = (text or "").strip().strip("*_`").strip().rstrip(".!").strip().lower()
    return normalized in NO_ISSUE_SENTINELS


def normalize_summary(text: str) -> str:
    return " ".join(text.lower().split())


@dataclass(frozen=True)
class ReviewComment:
    """A review comment as persisted on the host."""

    id: int
    path: str
    body: str
    position: int | None = None
    original_position: int | None = None
    line: int | None = None
    side: str = "RIGHT"
    author_is_bot: bool = False
    in_reply_to_id: int | None = None
    commit_id: str | None = None

    @property
    def summary(self) -> str:
        return extract_what(self.body)


@dataclass(frozen=True)
class Finding:
    """A candidate comment proposed by the model, anchored to a diff position."""

    path: str
    position: int
    body: CommentBody
    commit_id: str
    side: str = "RIGHT"
    line: int | None = None

    @property
    def summary(self) -> str:
        return self.body.what


@dataclass(frozen=True)
class CorrelatedComment:
    comment: ReviewComment
    summary: str
    diff_line: DiffLine | None
    snippet: str


def summaries(comments: Iterable[ReviewComment]) -> list[str]:
    return [s for s in (c.summary for c in comments) if s]


def _is_resolved_reply(comment: ReviewComment) -> bool:
    return comment.author_is_bot and comment.in_reply_to_id is not None and comment.body.strip() == RESOLVED_REPLY


def open_comments(comments: Iterable[ReviewComment]) -> list[ReviewComment]:
    """Drop threads already answered with ``RESOLVED_REPLY``.

    Both the bot's reply and the comment it answers go; everything else is
    returned in its original order.
    """
    comments = list(comments)
    answered = {c.in_reply_to_id for c in comments if _is_resolved_reply(c)}
    return [c for c in comments if c.id not in answered and not _is_resolved_reply(c)]


def correlate(
    comments: Iterable[ReviewComment],
    files: Iterable[DiffFile],
    include_human: bool = False,
) -> dict[str, list[CorrelatedComment]]:
    """Group persisted comments by the diff file they belong to.

    Each comment is paired with the current diff line at its position (None
    once GitHub marks the comment outdated) and the code snippet the
    resolution check is asked about: the enclosing hunk, or the whole file
    diff when the comment can no longer be placed.
    """
    comments = [c for c in comments if include_human or c.author_is_bot]
    result: dict[str, list[CorrelatedComment]] = {}
    for diff_file in files:
        matched = []
        for comment in comments:
            if normalize_path(comment.path) != diff_file.path:
                continue
            hunk = diff_file.hunk_for(comment.position)
            matched.append(
                CorrelatedComment(
                    comment=comment,
                    summary=comment.summary,
                    diff_line=diff_file.line_at(comment.position),
                    snippet=hunk.render() if hunk is not None else diff_file.render(),
                )
            )
        if matched:
            result[diff_file.path] = matched
    return result
