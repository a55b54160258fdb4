"""Collaborator contracts consumed by the pipeline steps."""

from __future__ import annotations

from typing import Protocol

from news_publisher.models import (
    CreatedPost,
    DownloadedImage,
    HeadlineItem,
    ImageSearchResult,
    ImageSelection,
    MediaUpload,
    ReferenceResult,
    SeoMeta,
    Site,
)


class HeadlineSource(Protocol):
    """Trending headline feed."""

    def fetch(self, count: int, date_selector: str) -> list[HeadlineItem]:
        """Return up to ``count`` normalized headlines; fewer is not an error."""
        raise NotImplementedError


class ReferenceSearch(Protocol):
    """Web search used to gather drafting material."""

    def search(self, query: str) -> list[ReferenceResult]:
        """Return search hits; an empty list is a valid result."""
        raise NotImplementedError


class ArticleWriter(Protocol):
    """Drafting LLM."""

    def complete(self, system: str, user: str) -> str:
        """Return the model's text completion."""
        raise NotImplementedError


class ImageSelector(Protocol):
    """Vision LLM that picks a candidate and a selective-color target."""

    def select(
        self,
        images: list[DownloadedImage],
        *,
        system_prompt: str,
        user_prompt: str,
    ) -> ImageSelection:
        """Return the raw model choice; callers clamp the index."""
        raise NotImplementedError


class ImageEditor(Protocol):
    """Image-edit service."""

    def edit(self, image: DownloadedImage, prompt: str) -> bytes:
        """Return the edited image bytes."""
        raise NotImplementedError


class ImageSearch(Protocol):
    """Image search fallback."""

    def search_images(self, query: str, max_results: int) -> list[ImageSearchResult]:
        """Return up to ``max_results`` image hits."""
        raise NotImplementedError


class ImageTransformer(Protocol):
    """Resize and re-encode edited images."""

    mime_type: str
    extension: str

    def transform(self, data: bytes) -> bytes:
        """Return the normalized image payload."""
        raise NotImplementedError


class SeoRewriter(Protocol):
    """LLM that rewrites metadata for one site."""

    def rewrite(  # noqa: PLR0913
        self,
        *,
        site_name: str,
        headline: str,
        content: str,
        category: str,
        sibling_titles: list[str],
    ) -> SeoMeta:
        """Return a site-specific meta title, description and focus keyword."""
        raise NotImplementedError


class PublishingTarget(Protocol):
    """WordPress REST operations used by the publish step."""

    def upload_media(self, data: bytes, file_name: str, mime_type: str) -> MediaUpload:
        raise NotImplementedError

    def create_post(self, title: str, html: str, category_id: int, status: str) -> CreatedPost:
        raise NotImplementedError

    def set_featured_image(self, post_id: int, media_id: int) -> None:
        raise NotImplementedError

    def update_seo_meta(self, post_id: int, title: str, description: str, keyword: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


class PublishingTargetFactory(Protocol):
    """Builds the WordPress client for one registered site."""

    def __call__(self, site: Site) -> PublishingTarget:
        raise NotImplementedError
