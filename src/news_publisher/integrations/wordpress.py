"""WordPress REST client authenticated with an application password."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from news_publisher.config import WordPressCredential, WordPressSettings
from news_publisher.errors import IntegrationError, PublishError
from news_publisher.models import CreatedPost, MediaUpload, Site

logger = logging.getLogger(__name__)

SERVICE = "wordpress"


class WordPressClient:
    """Media, post and Rank Math metadata calls for one site."""

    def __init__(
        self,
        site: Site,
        credential: WordPressCredential,
        settings: WordPressSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.site = site
        self._settings = settings
        self._client = httpx.Client(
            base_url=f"{site.wp_base_url.rstrip('/')}/wp-json",
            auth=httpx.BasicAuth(credential.username, credential.app_password),
            timeout=httpx.Timeout(settings.api_timeout_seconds, connect=10.0),
            transport=transport,
        )

    def upload_media(self, data: bytes, file_name: str, mime_type: str) -> MediaUpload:
        payload = self._post(
            "upload_media",
            "/wp/v2/media",
            content=data,
            headers={
                "Content-Type": mime_type,
                "Content-Disposition": f'attachment; filename="{file_name}"',
            },
            timeout=self._settings.media_timeout_seconds,
        )
        return MediaUpload(id=int(payload["id"]), url=str(payload.get("source_url") or ""))

    def create_post(self, title: str, html: str, category_id: int, status: str) -> CreatedPost:
        body: dict[str, Any] = {"title": title, "content": html, "status": status}
        if category_id:
            body["categories"] = [category_id]
        payload = self._post("create_post", "/wp/v2/posts", json=body)
        return CreatedPost(id=int(payload["id"]), url=str(payload.get("link") or ""))

    def set_featured_image(self, post_id: int, media_id: int) -> None:
        self._post(
            "set_featured_image",
            f"/wp/v2/posts/{post_id}",
            json={"featured_media": media_id},
        )

    def update_seo_meta(self, post_id: int, title: str, description: str, keyword: str) -> None:
        self._post(
            "update_seo_meta",
            "/rank-math-api/v1/update-meta",
            data={
                "post_id": str(post_id),
                "rank_math_title": title,
                "rank_math_description": description,
                "rank_math_focus_keyword": keyword,
            },
        )

    def close(self) -> None:
        self._client.close()

    def _post(
        self,
        stage: str,
        path: str,
        *,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        if timeout is not None:
            kwargs["timeout"] = httpx.Timeout(timeout, connect=10.0)
        try:
            response = self._client.post(path, **kwargs)
        except httpx.HTTPError as exc:
            raise PublishError(self.site.slug, stage, str(exc)) from exc
        if not response.is_success:
            raise PublishError(
                self.site.slug,
                stage,
                str(IntegrationError(SERVICE, response.text[:200], response.status_code)),
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise PublishError(self.site.slug, stage, "response is not JSON") from exc
        if not isinstance(payload, dict):
            raise PublishError(self.site.slug, stage, "response is not a JSON object")
        return payload


class WordPressClientFactory:
    """Resolve a site's credential by slug and build its client."""

    def __init__(
        self,
        settings: WordPressSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    def __call__(self, site: Site) -> WordPressClient:
        credential = self._settings.credential_for(site.slug)
        if credential is None:
            raise PublishError(site.slug, "credentials", "no WORDPRESS_SITES entry for this slug")
        return WordPressClient(site, credential, self._settings, transport=self._transport)
