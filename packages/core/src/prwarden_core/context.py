"""Immutable snapshots of the pull request being reviewed."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExternalTask:
    key: str
    summary: str
    description: str = ""


@dataclass(frozen=True)
class PRContext:
    number: int
    title: str
    description: str
    head_sha: str
    head_ref: str = ""
    existing_comment_count: int = 0
    task: ExternalTask | None = None
