"""StockNews trending headline source."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from news_publisher.config import HeadlineSettings
from news_publisher.errors import IntegrationError
from news_publisher.models import HeadlineItem

logger = logging.getLogger(__name__)

SERVICE = "stocknews"


class StockNewsHeadlineSource:
    """Fetch trending headlines and expand each one with its article excerpt."""

    def __init__(
        self,
        settings: HeadlineSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._client = httpx.Client(
            base_url=settings.base_url.rstrip("/"),
            timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
            transport=transport,
        )

    def fetch(self, count: int, date_selector: str) -> list[HeadlineItem]:
        payload = self._get_json(
            "/trending-headlines",
            {"token": self._settings.api_token, "date": date_selector, "items": count},
        )
        rows = payload.get("data")
        if not isinstance(rows, list):
            raise IntegrationError(SERVICE, "trending response has no data list")

        headlines: list[HeadlineItem] = []
        for row in rows[:count]:
            if not isinstance(row, dict):
                continue
            headlines.append(self._expand(row))
        logger.info("Fetched %d trending headlines (date=%s).", len(headlines), date_selector)
        return headlines

    def close(self) -> None:
        self._client.close()

    def _expand(self, trending: dict[str, Any]) -> HeadlineItem:
        """Merge the full article excerpt into a trending row; keep the trending row on failure."""

        news_id = str(trending.get("news_id") or trending.get("id") or "")
        article: dict[str, Any] = {}
        if news_id:
            try:
                payload = self._get_json(
                    "/category",
                    {
                        "section": "general",
                        "items": 100,
                        "token": self._settings.api_token,
                        "news_id": news_id,
                        "type": "article",
                    },
                )
                data = payload.get("data")
                if isinstance(data, list) and data and isinstance(data[0], dict):
                    article = data[0]
            except IntegrationError as error:
                logger.warning("Headline expansion failed (news_id=%s): %s", news_id, error)

        merged = {**trending, **{key: value for key, value in article.items() if value}}
        url = str(merged.get("news_url") or merged.get("url") or "").strip()
        if not url:
            raise IntegrationError(SERVICE, f"headline {news_id or '<unknown>'} has no URL")
        return HeadlineItem(
            news_id=news_id,
            title=str(merged.get("title") or merged.get("headline") or "").strip(),
            url=url,
            body=str(merged.get("text") or merged.get("description") or "").strip(),
            published_at=str(merged.get("date") or ""),
            image_url=(str(merged["image_url"]).strip() or None) if merged.get("image_url") else None,
        )

    def _get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise IntegrationError(SERVICE, str(exc)) from exc
        if not response.is_success:
            raise IntegrationError(SERVICE, response.text[:200], status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError as exc:
            raise IntegrationError(SERVICE, "response is not JSON") from exc
        if not isinstance(payload, dict):
            raise IntegrationError(SERVICE, "response is not a JSON object")
        return payload
