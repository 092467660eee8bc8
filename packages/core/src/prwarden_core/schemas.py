"""Structured-output schemas for every model call.

Each schema is strict: every field required, enumerations as ``Literal``, and
no additional properties. The JSON schema handed to the provider is generated
from the same model that validates the response, so the two cannot drift.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return cls.__name__

    @classmethod
    def json_schema(cls) -> dict:
        return cls.model_json_schema()


class ResolutionResponse(StrictModel):
    status: Literal["RESOLVED", "UNRESOLVED"]


class DuplicateResponse(StrictModel):
    is_duplicate: bool


class ApprovalResponse(StrictModel):
    is_approved: bool


class FindingComment(StrictModel):
    position: int
    side: Literal["LEFT", "RIGHT"]
    what: str
    why: str
    how: str
    impact: str


class FindingsResponse(StrictModel):
    verdict: Literal["APPROVE", "REQUEST_CHANGES", "COMMENT", "NONE"]
    comments: list[FindingComment]


class SummaryResponse(StrictModel):
    summary: str
