"""Jina web search used as drafting reference material."""

from __future__ import annotations

import logging

import httpx

from news_publisher.config import SearchSettings
from news_publisher.models import ReferenceResult

logger = logging.getLogger(__name__)

JINA_SEARCH_URL = "https://s.jina.ai/"


class JinaReferenceSearch:
    """Search client; unusable responses degrade to an empty result list."""

    def __init__(
        self,
        settings: SearchSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
            headers={
                "Authorization": f"Bearer {settings.jina_api_key}",
                "Accept": "application/json",
                "X-Respond-With": "no-content",
            },
            transport=transport,
        )

    def search(self, query: str) -> list[ReferenceResult]:
        try:
            response = self._client.get(JINA_SEARCH_URL, params={"q": query})
        except httpx.HTTPError as exc:
            logger.warning("Reference search failed for %r: %s", query, exc)
            return []
        if not response.is_success:
            logger.warning("Reference search returned HTTP %s for %r", response.status_code, query)
            return []
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Reference search returned invalid JSON for %r", query)
            return []

        rows = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(rows, list):
            return []
        return [
            ReferenceResult(
                title=str(row.get("title") or ""),
                url=str(row.get("url") or ""),
                description=str(row.get("description") or ""),
                content=row.get("content") or None,
            )
            for row in rows
            if isinstance(row, dict)
        ]

    def close(self) -> None:
        self._client.close()
