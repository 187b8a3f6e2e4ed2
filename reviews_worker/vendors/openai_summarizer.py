"""OpenAI chat-completions client that turns review texts into a ReviewAnalysis."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from openai import APIError, AsyncOpenAI

from reviews_worker.core.errors import ConfigurationMissing, MalformedInput, ProviderError
from reviews_worker.etl.analysis import ReviewAnalysis, build_prompt, parse_analysis

logger = logging.getLogger(__name__)

SYSTEM_PROMPT_JSON = "Return only valid JSON. No prose."
SYSTEM_PROMPT_TEXT = "You summarize customer reviews for a small business. Focus on recurring themes only."


class OpenAISummarizer:
    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-4o-mini",
        structured_output: bool = True,
        timeout: float = 60.0,
        client: Optional[Any] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.structured_output = structured_output
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationMissing("OPENAI_API_KEY is required for review analysis")
            self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    async def summarize(self, reviews: Sequence[str]) -> ReviewAnalysis:
        if not reviews:
            raise MalformedInput("At least one review is required for analysis")
        client = self._get_client()

        request: dict = {
            "model": self.model,
            "temperature": 0.2,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT_JSON if self.structured_output else SYSTEM_PROMPT_TEXT},
                {"role": "user", "content": build_prompt(reviews, structured=self.structured_output)},
            ],
        }
        if self.structured_output:
            request["response_format"] = {"type": "json_object"}

        logger.info("Summarizing %d reviews with %s", len(reviews), self.model)
        try:
            completion = await client.chat.completions.create(**request)
        except APIError as exc:
            logger.error("OpenAI request failed: %s", exc.__class__.__name__)
            raise ProviderError(
                f"OpenAI request failed: {exc.__class__.__name__}",
                status_code=getattr(exc, "status_code", None),
            ) from exc

        content = completion.choices[0].message.content if completion.choices else None
        return parse_analysis(content)
