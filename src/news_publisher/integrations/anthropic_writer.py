"""Anthropic-backed article drafting client."""

from __future__ import annotations

import logging

import anthropic

from news_publisher.config import LlmSettings
from news_publisher.errors import IntegrationError

logger = logging.getLogger(__name__)

SERVICE = "anthropic"


class AnthropicArticleWriter:
    """Calls Claude with a system and user prompt and returns the text blocks joined.

    SDK-level retries are disabled; the pipeline retry executor owns retries.
    """

    def __init__(self, settings: LlmSettings, *, client: anthropic.Anthropic | None = None) -> None:
        self._model = settings.writer_model
        self._max_tokens = settings.writer_max_tokens
        self._client = client or anthropic.Anthropic(
            api_key=settings.anthropic_api_key,
            timeout=settings.request_timeout_seconds,
            max_retries=0,
        )

    def complete(self, system: str, user: str) -> str:
        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system,
                messages=[{"role": "user", "content": user}],
            )
        except anthropic.APIStatusError as exc:
            raise IntegrationError(SERVICE, exc.message, status_code=exc.status_code) from exc
        except anthropic.APIError as exc:
            raise IntegrationError(SERVICE, str(exc)) from exc

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text.strip():
            raise IntegrationError(SERVICE, "model returned no text content")
        logger.debug(
            "Draft completion received (model=%s stop_reason=%s chars=%d).",
            self._model,
            response.stop_reason,
            len(text),
        )
        return text
