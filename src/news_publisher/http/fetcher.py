"""Blocking HTTP client with browser-like headers for page scrapes and image downloads."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx

from news_publisher.errors import IntegrationError
from news_publisher.models import DownloadedImage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


@dataclass(slots=True)
class FetchResult:
    """Result of a page fetch."""

    url: str
    status_code: int
    content: str
    content_type: str
    is_success: bool
    error: str | None = None


class HttpFetcher:
    """httpx client wrapper used by the image fallback chain."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        base_headers = dict(BROWSER_HEADERS)
        if headers:
            base_headers.update(headers)
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers=base_headers,
            transport=transport,
            follow_redirects=True,
        )

    def fetch(self, url: str, *, timeout_seconds: float | None = None) -> FetchResult:
        """Fetch a page, returning a structured result instead of raising."""

        try:
            response = self._client.get(url, **_timeout_kwargs(timeout_seconds))
            return FetchResult(
                url=url,
                status_code=response.status_code,
                content=response.text,
                content_type=response.headers.get("content-type", ""),
                is_success=response.is_success,
                error=None if response.is_success else f"HTTP {response.status_code}",
            )
        except httpx.TimeoutException:
            logger.warning("Timeout fetching %s", url)
            return FetchResult(
                url=url,
                status_code=0,
                content="",
                content_type="",
                is_success=False,
                error="timeout",
            )
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.warning("HTTP error fetching %s: %s", url, exc)
            return FetchResult(
                url=url,
                status_code=0,
                content="",
                content_type="",
                is_success=False,
                error=str(exc),
            )

    def download_image(
        self,
        url: str,
        *,
        referer: str | None = None,
        timeout_seconds: float | None = None,
    ) -> DownloadedImage:
        """Download ``url`` and require an ``image/*`` response."""

        headers = {"Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"}
        if referer:
            headers["Referer"] = referer
        try:
            response = self._client.get(url, headers=headers, **_timeout_kwargs(timeout_seconds))
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            raise IntegrationError("image-download", f"{url}: {exc}") from exc

        if not response.is_success:
            raise IntegrationError("image-download", url, status_code=response.status_code)
        mime_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if not mime_type.startswith("image/"):
            raise IntegrationError(
                "image-download",
                f"{url}: unexpected content type {mime_type or '<missing>'}",
            )
        if not response.content:
            raise IntegrationError("image-download", f"{url}: empty body")
        return DownloadedImage(url=url, data=response.content, mime_type=mime_type)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpFetcher:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def origin_referer(url: str) -> str | None:
    """``scheme://host/`` of ``url``, the referer hotlink-protected CDNs expect."""

    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}/"


def _timeout_kwargs(timeout_seconds: float | None) -> dict[str, httpx.Timeout]:
    if timeout_seconds is None:
        return {}
    return {"timeout": httpx.Timeout(timeout_seconds, connect=min(10.0, timeout_seconds))}
