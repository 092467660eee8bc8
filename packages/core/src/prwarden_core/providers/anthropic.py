from __future__ import annotations

import json

from prwarden_core.providers.base import BaseReviewer


class AnthropicReviewer(BaseReviewer):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.3

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install anthropic"
            )
        super().__init__(model=model, temperature=temperature, max_tokens=max_tokens)
        client_options = {"timeout": timeout} if timeout is not None else {}
        self.client = Anthropic(api_key=api_key, **client_options)

    def _call_api(self, system_prompt: str, user_prompt: str, schema_name: str, schema: dict) -> str:
        # Structured output via a single forced tool: the tool input must match
        # input_schema, so the answer arrives as an already-decoded dict.
        from anthropic.types import ToolUseBlock

        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            tools=[
                {
                    "name": schema_name,
                    "description": "Record the structured answer.",
                    "input_schema": schema,
                }
            ],
            tool_choice={"type": "tool", "name": schema_name},
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        for block in response.content:
            if isinstance(block, ToolUseBlock) and block.name == schema_name:
                return json.dumps(block.input)
        raise ValueError(f"response contained no {schema_name} tool call (stop_reason={response.stop_reason})")
