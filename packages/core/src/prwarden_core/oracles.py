"""Model-backed judgement calls.

Each oracle wraps one ``review_content`` call with a fixed schema and maps
every failure (transport error, schema violation) to the conservative answer:
unresolved, not a duplicate, not approved, no findings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from prwarden_core.comments import CommentBody, Finding, normalize_summary
from prwarden_core.context import PRContext
from prwarden_core.diff import DiffFile, Hunk
from prwarden_core.prompts import (
    approval_prompts,
    duplicate_prompts,
    findings_prompts,
    resolution_prompts,
    summary_prompts,
)
from prwarden_core.schemas import (
    ApprovalResponse,
    DuplicateResponse,
    FindingsResponse,
    ResolutionResponse,
    SummaryResponse,
)

logger = logging.getLogger(__name__)

_VERDICT_RANK = {"APPROVE": 0, "COMMENT": 1, "REQUEST_CHANGES": 2}


class Resolution(str, Enum):
    RESOLVED = "RESOLVED"
    UNRESOLVED = "UNRESOLVED"


def most_severe_verdict(verdicts) -> str | None:
    """Pick the most severe of several verdict recommendations (None when there are none)."""
    ranked = [v for v in verdicts if v in _VERDICT_RANK]
    if not ranked:
        return None
    return max(ranked, key=_VERDICT_RANK.__getitem__)


class ResolutionChecker:
    def __init__(self, reviewer):
        self.reviewer = reviewer

    def check_resolved(self, code_snippet: str, comment_text: str) -> Resolution:
        system, user = resolution_prompts(code_snippet, comment_text)
        response = self.reviewer.review_content(system, user, ResolutionResponse)
        if response is None:
            return Resolution.UNRESOLVED
        return Resolution(response.status)


class Deduplicator:
    def __init__(self, reviewer):
        self.reviewer = reviewer

    def is_duplicate(self, existing_summaries: list[str], candidate_summary: str) -> bool:
        if not existing_summaries:
            return False
        # Identical wording needs no model call.
        candidate = normalize_summary(candidate_summary)
        if any(normalize_summary(s) == candidate for s in existing_summaries):
            return True
        system, user = duplicate_prompts(list(existing_summaries), candidate_summary)
        response = self.reviewer.review_content(system, user, DuplicateResponse)
        return bool(response is not None and response.is_duplicate)


class ApprovalChecker:
    def __init__(self, reviewer):
        self.reviewer = reviewer

    def is_approved(self, comment_summaries: list[str]) -> bool:
        system, user = approval_prompts(list(comment_summaries))
        response = self.reviewer.review_content(system, user, ApprovalResponse)
        return bool(response is not None and response.is_approved)


@dataclass
class FindingBatch:
    findings: list[Finding] = field(default_factory=list)
    verdict: str | None = None


class FindingGenerator:
    def __init__(self, reviewer, guidelines: str = "", max_chars: int = 20000):
        self.reviewer = reviewer
        self.guidelines = guidelines
        self.max_chars = max_chars

    def generate(
        self, pr: PRContext, diff_file: DiffFile, hunk: Hunk | None = None, file_content: str = ""
    ) -> FindingBatch:
        """Review one file (or one hunk of it) and return anchored candidate comments.

        ``file_content`` is the file at the head commit, given to the model as
        context around the diff.

        Candidates pointing at positions that don't exist in the file are
        dropped. The side is taken from the diff line itself, not the model.
        """
        system, user = findings_prompts(pr, diff_file, hunk, self.guidelines, self.max_chars, file_content)
        response = self.reviewer.review_content(system, user, FindingsResponse)
        if response is None:
            return FindingBatch()

        findings = []
        for comment in response.comments:
            line = diff_file.line_at(comment.position)
            if line is None:
                logger.debug("Skipping finding for %s: position %d is not in the diff", diff_file.path, comment.position)
                continue
            if not comment.what.strip():
                continue
            findings.append(
                Finding(
                    path=diff_file.path,
                    position=comment.position,
                    body=CommentBody(what=comment.what, why=comment.why, how=comment.how, impact=comment.impact),
                    commit_id=pr.head_sha,
                    side=line.side,
                    line=line.lineno,
                )
            )
        verdict = None if response.verdict == "NONE" else response.verdict
        return FindingBatch(findings=findings, verdict=verdict)


class PrSummarizer:
    def __init__(self, reviewer, max_chars: int = 40000):
        self.reviewer = reviewer
        self.max_chars = max_chars

    def summarize(self, title: str, diff_text: str) -> str | None:
        if len(diff_text) > self.max_chars:
            diff_text = diff_text[: self.max_chars] + "\n... [diff truncated]"
        system, user = summary_prompts(title, diff_text)
        response = self.reviewer.review_content(system, user, SummaryResponse)
        if response is None or not response.summary.strip():
            return None
        return response.summary.strip()
