"""Google Custom Search image fallback."""

from __future__ import annotations

import logging

import httpx

from news_publisher.config import SearchSettings
from news_publisher.models import ImageSearchResult

logger = logging.getLogger(__name__)

CSE_URL = "https://www.googleapis.com/customsearch/v1"
CSE_MAX_RESULTS = 10


class GoogleImageSearch:
    def __init__(
        self,
        settings: SearchSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._client = httpx.Client(
            timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
            transport=transport,
        )

    def search_images(self, query: str, max_results: int) -> list[ImageSearchResult]:
        try:
            response = self._client.get(
                CSE_URL,
                params={
                    "key": self._settings.google_cse_api_key,
                    "cx": self._settings.google_cse_cx,
                    "searchType": "image",
                    "num": min(max(max_results, 1), CSE_MAX_RESULTS),
                    "imgSize": "large",
                    "imgType": "photo",
                    "q": query,
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("Image search failed for %r: %s", query, exc)
            return []
        if not response.is_success:
            logger.warning("Image search returned HTTP %s for %r", response.status_code, query)
            return []
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Image search returned invalid JSON for %r", query)
            return []
        items = (payload.get("items") if isinstance(payload, dict) else None) or []
        if not isinstance(items, list):
            return []
        return [
            ImageSearchResult(url=str(item["link"]), title=str(item.get("title") or ""))
            for item in items[:max_results]
            if isinstance(item, dict) and item.get("link")
        ]

    def close(self) -> None:
        self._client.close()
