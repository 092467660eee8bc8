"""Prompt builders for each model call.

Each builder returns a ``(system_prompt, user_prompt)`` pair. The output
format itself is enforced by the schema passed alongside (see schemas.py), so
prompts describe the task, not the JSON shape.
"""

from __future__ import annotations

from prwarden_core.context import PRContext
from prwarden_core.diff import DiffFile, Hunk

_REVIEWER_PERSONA = """You are a strict and precise senior code reviewer.
Review the changes for logical errors, security and performance problems, and typos.

Rules:
- Focus on added lines (starting with '+') for direct violations.
- Also consider implications of removed lines (starting with '-') — e.g. deleted null checks,
  removed error handling, dropped permission guards.
- Comment only when you are sure. Do not repeat the same issue in several places.
- Do not comment on code that already follows best practices."""


def findings_prompts(
    pr: PRContext,
    diff_file: DiffFile,
    hunk: Hunk | None = None,
    guidelines: str = "",
    max_chars: int = 20000,
    file_content: str = "",
) -> tuple[str, str]:
    system = _REVIEWER_PERSONA
    if guidelines:
        system += f"\n\n{guidelines}"

    task_section = ""
    if pr.task is not None:
        task_section = f"\n## Linked Task {pr.task.key}\n{pr.task.summary}\n\n{pr.task.description}\n"

    diff_text = hunk.render() if hunk is not None else diff_file.render()
    if len(diff_text) > max_chars:
        diff_text = diff_text[:max_chars] + "\n... [diff truncated]"

    content_section = ""
    if file_content:
        if len(file_content) > max_chars:
            file_content = file_content[:max_chars] + "\n... [file truncated]"
        content_section = f"\n## Full File Content\n{file_content}\n"
    user = f"""You are reviewing `{diff_file.path}` ({diff_file.status}).

## PR Title
{pr.title}

## PR Description
{pr.description}
{task_section}{content_section}
## Diff
Each line is prefixed with its diff position. Anchor every comment to one of these positions.

{diff_text}

For each issue give:
- position: the diff position of the offending line
- side: LEFT for a removed line, RIGHT for an added or context line
- what: the issue, one or two sentences
- why: why it matters
- how: how to fix it, with a code suggestion in a fenced block when useful
- impact: what happens if it is not fixed

Set verdict to REQUEST_CHANGES for blocking problems, COMMENT for suggestions only,
APPROVE when the change is clean, or NONE when you have no opinion.
If there are no issues, return an empty comments list."""
    return system, user


def resolution_prompts(code_snippet: str, comment_text: str) -> tuple[str, str]:
    system = (
        "You verify whether an earlier code review comment has been addressed. "
        "Answer RESOLVED only if the current code clearly fixes the concern; otherwise UNRESOLVED."
    )
    user = f"""## Review Comment
{comment_text}

## Current Code
{code_snippet}"""
    return system, user


def duplicate_prompts(existing_summaries: list[str], candidate_summary: str) -> tuple[str, str]:
    system = (
        "You compare code review comments. Decide whether the new comment raises the same "
        "concern as any of the existing ones, even if worded differently."
    )
    existing = "\n".join(f"- {s}" for s in existing_summaries)
    user = f"""## Existing Comments
{existing}

## New Comment
{candidate_summary}"""
    return system, user


def approval_prompts(comment_summaries: list[str]) -> tuple[str, str]:
    system = (
        "You decide whether a pull request can be approved. Approve only when none of the "
        "open review comments describe a security issue, a bug or a significant performance problem."
    )
    if comment_summaries:
        listed = "\n".join(f"- {s}" for s in comment_summaries)
    else:
        listed = "(no open review comments)"
    user = f"""## Open Review Comments
{listed}"""
    return system, user


def summary_prompts(title: str, diff_text: str) -> tuple[str, str]:
    system = (
        "You write pull request descriptions. Summarize what the change does and why, "
        "as short GitHub-flavored markdown with a bullet list of notable changes."
    )
    user = f"""## PR Title
{title}

## Diff
{diff_text}"""
    return system, user
