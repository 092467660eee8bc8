from __future__ import annotations

try:
    from openai import OpenAI as _OpenAI
except ImportError:
    _OpenAI = None  # type: ignore[assignment,misc]

from prwarden_core.providers.base import BaseReviewer


class OpenAIReviewer(BaseReviewer):
    MODEL = "gpt-4o"
    TEMPERATURE = 0.2

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ):
        if _OpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install openai"
            )
        super().__init__(model=model, temperature=temperature, max_tokens=max_tokens)
        client_options = {"timeout": timeout} if timeout is not None else {}
        self.client = _OpenAI(api_key=api_key, **client_options)

    def _call_api(self, system_prompt: str, user_prompt: str, schema_name: str, schema: dict) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            response_format={
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": schema, "strict": True},
            },
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        content = response.choices[0].message.content
        if content is None:
            raise ValueError(f"empty {schema_name} response (finish_reason={response.choices[0].finish_reason})")
        return content
