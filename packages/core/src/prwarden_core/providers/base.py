"""Base reviewer implementing the Template Method pattern.

Every model call in prwarden (finding generation, resolution checks,
duplicate checks, approval checks, PR summaries) goes through one method:

    review_content() → _call_with_retry() → _call_api()   ← only this differs per provider
                     → _parse()  (strict schema validation)

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call constrained to a JSON schema and return
    the JSON text

Prompts are built by the callers (see prompts.py); this layer only moves
text in and validated objects out.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import TypeVar

from pydantic import ValidationError

from prwarden_core.schemas import StrictModel

logger = logging.getLogger(__name__)

# Shared defaults — subclasses may override as class attributes if needed.
_MAX_RETRIES = 3
_MAX_TOKENS = 4096

T = TypeVar("T", bound=StrictModel)


class BaseReviewer(ABC):
    MODEL: str = ""
    TEMPERATURE: float = 0.2
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS

    def __init__(self, model: str | None = None, temperature: float | None = None, max_tokens: int | None = None):
        # Per-call limits are opaque pass-throughs; None keeps the class default.
        self.model = model or self.MODEL
        self.temperature = self.TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or self.MAX_TOKENS

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def review_content(self, system_prompt: str, user_prompt: str, response_model: type[T]) -> T | None:
        """Call the model and return a validated ``response_model`` instance.

        Returns None when the transport fails after all retries or when the
        response does not validate against the schema. Callers map None to
        their conservative default.
        """
        raw = self._call_with_retry(system_prompt, user_prompt, response_model)
        if raw is None:
            return None
        return self._parse(raw, response_model)

    # ------------------------------------------------------------------ #
    # Abstract — implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str, schema_name: str, schema: dict) -> str:
        """Make a single schema-constrained API call and return the raw JSON text.

        It should raise on failure — _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _call_with_retry(self, system_prompt: str, user_prompt: str, response_model: type[StrictModel]) -> str | None:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        schema_name = response_model.schema_name()
        schema = response_model.json_schema()
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(system_prompt, user_prompt, schema_name, schema)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts (%s): %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        schema_name,
                        e,
                    )
                    return None
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        return None

    def _parse(self, raw: str, response_model: type[T]) -> T | None:
        """Validate the model's JSON text against ``response_model``.

        Strips only an outer ```json fence — providers in strict mode should
        not emit one, but a stray fence is not worth failing the unit over.
        """
        cleaned = re.sub(r"^```(?:json)?\s*", "", (raw or "").strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            return response_model.model_validate(json.loads(cleaned))
        except json.JSONDecodeError:
            logger.warning(
                "%s: failed to parse %s response as JSON: %s",
                self.__class__.__name__,
                response_model.schema_name(),
                raw[:200],
            )
        except ValidationError as e:
            logger.warning(
                "%s: %s response failed schema validation: %s",
                self.__class__.__name__,
                response_model.schema_name(),
                e.errors()[:3],
            )
        return None
