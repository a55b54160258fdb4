"""Editorial image sourcing and selective-colour transform.

Source images are resolved through three tiers, first success wins:

1. ``og:image`` (or ``og:image:url`` / ``twitter:image``) scraped from the article page,
   downloaded with the page origin as Referer;
2. the image URL carried by the headline feed;
3. an image search on the headline title, keeping every candidate that downloads.

Tiers 1 and 2 never raise; they log and fall through. Only tier 3 can fail the step,
when no candidate downloads. The chosen candidate is edited and re-encoded, and the
tier that supplied it is kept as provenance.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from news_publisher.config import ImageSettings
from news_publisher.errors import ImageUnavailableError, IntegrationError
from news_publisher.http.fetcher import HttpFetcher, origin_referer
from news_publisher.http.og_image import extract_og_image_url
from news_publisher.integrations.base import ImageEditor, ImageSearch, ImageSelector, ImageTransformer
from news_publisher.models import (
    ArticleResult,
    DownloadedImage,
    EditorPrompts,
    ImageSelection,
    ImageSource,
    ProcessedImage,
    RssFeedItem,
)
from news_publisher.pipeline.prompts import color_hint, fill_template, format_pivot_catalogs

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 60
DEFAULT_MAX_CANDIDATES = 5


@dataclass(slots=True)
class SourceImages:
    """Candidates from the tier that produced them."""

    image_source: ImageSource
    candidates: list[DownloadedImage]


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-") or "article"


def build_file_name(headline: str, timestamp_ms: int, extension: str) -> str:
    return f"{slugify(headline)}-{timestamp_ms}.{extension}"


def build_edit_prompt(
    template: str,
    selection: ImageSelection,
    *,
    hex_color: str,
    headline: str,
) -> str:
    return fill_template(
        template,
        {
            "subjectDescription": selection.subject_description,
            "reason": selection.reason,
            "colorTarget": selection.color_target,
            "hexColor": hex_color,
            "headline": headline,
        },
    ).strip()


def clamp_index(index: int, size: int) -> int:
    return min(max(index, 0), size - 1)


class ImageProcessor:
    """Runs the fallback chain, vision selection, edit and re-encode for one article."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        fetcher: HttpFetcher,
        image_search: ImageSearch,
        selector: ImageSelector,
        editor: ImageEditor,
        transformer: ImageTransformer,
        settings: ImageSettings,
        max_candidates: int = DEFAULT_MAX_CANDIDATES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fetcher = fetcher
        self._image_search = image_search
        self._selector = selector
        self._editor = editor
        self._transformer = transformer
        self._settings = settings
        self._max_candidates = max_candidates
        self._clock = clock

    def process(
        self,
        item: RssFeedItem,
        article: ArticleResult,
        *,
        prompts: EditorPrompts,
        pivot_catalogs: dict[str, Any] | None,
    ) -> ProcessedImage:
        source = self.resolve_source(item)
        selection = self._select(source.candidates, article, prompts, pivot_catalogs)
        chosen = source.candidates[clamp_index(selection.selected_index, len(source.candidates))]

        prompt = build_edit_prompt(
            prompts.image_edit_template or "",
            selection,
            hex_color=article.category_color,
            headline=article.headline,
        )
        logger.info(
            "Editing image (source=%s subject=%r color_target=%r hex=%s bytes=%d).",
            source.image_source.value,
            selection.subject_description,
            selection.color_target,
            article.category_color,
            len(chosen.data),
        )
        edited = self._editor.edit(chosen, prompt)
        data = self._transformer.transform(edited)
        return ProcessedImage(
            data=data,
            mime_type=self._transformer.mime_type,
            file_name=build_file_name(
                article.headline,
                int(self._clock() * 1000),
                self._transformer.extension,
            ),
            image_source=source.image_source,
            source_image_url=chosen.url,
        )

    def resolve_source(self, item: RssFeedItem) -> SourceImages:
        image = self._try_og_image(item.link)
        if image is not None:
            return SourceImages(ImageSource.OG_IMAGE, [image])

        image = self._try_feed_image(item.img_url)
        if image is not None:
            return SourceImages(ImageSource.IMG_URL, [image])

        logger.info("Image source: falling back to image search (query=%r).", item.title)
        return SourceImages(ImageSource.GOOGLE_CSE, self._search_candidates(item.title))

    def _try_og_image(self, article_url: str) -> DownloadedImage | None:
        page = self._fetcher.fetch(article_url, timeout_seconds=self._settings.scrape_timeout_seconds)
        if not page.is_success:
            logger.info("og:image: page fetch failed (url=%s error=%s).", article_url, page.error)
            return None

        image_url = extract_og_image_url(page.content, article_url)
        if image_url is None:
            logger.info("og:image: no meta tag found (url=%s).", article_url)
            return None

        try:
            image = self._fetcher.download_image(
                image_url,
                referer=origin_referer(article_url),
                timeout_seconds=self._settings.download_timeout_seconds,
            )
        except IntegrationError as error:
            logger.info("og:image: download failed (image_url=%s): %s", image_url, error)
            return None
        logger.info("og:image: using %s (%d bytes).", image_url, len(image.data))
        return image

    def _try_feed_image(self, image_url: str | None) -> DownloadedImage | None:
        if not image_url:
            logger.info("img_url: not present on the headline.")
            return None
        try:
            image = self._fetcher.download_image(
                image_url,
                timeout_seconds=self._settings.download_timeout_seconds,
            )
        except IntegrationError as error:
            logger.info("img_url: download failed (image_url=%s): %s", image_url, error)
            return None
        logger.info("img_url: using %s (%d bytes).", image_url, len(image.data))
        return image

    def _search_candidates(self, query: str) -> list[DownloadedImage]:
        results = self._image_search.search_images(query, self._max_candidates)
        if not results:
            raise ImageUnavailableError(f"Image search returned no results for {query!r}")

        candidates: list[DownloadedImage] = []
        for result in results[: self._max_candidates]:
            try:
                candidates.append(
                    self._fetcher.download_image(
                        result.url,
                        timeout_seconds=self._settings.download_timeout_seconds,
                    ),
                )
            except IntegrationError as error:
                logger.info("Image search candidate skipped (url=%s): %s", result.url, error)
        if not candidates:
            raise ImageUnavailableError(
                f"None of {len(results)} image search candidates could be downloaded",
            )
        logger.info("Image search: %d/%d candidates downloaded.", len(candidates), len(results))
        return candidates

    def _select(
        self,
        candidates: list[DownloadedImage],
        article: ArticleResult,
        prompts: EditorPrompts,
        pivot_catalogs: dict[str, Any] | None,
    ) -> ImageSelection:
        system_prompt = (prompts.image_selection_system or "") + format_pivot_catalogs(pivot_catalogs)
        user_prompt = fill_template(
            prompts.image_selection_user or "",
            {
                "articleTitle": article.headline,
                "category": article.category,
                "colorHint": color_hint(article.category_color),
                "imageCount": str(len(candidates)),
                "imageCountMax": str(max(0, len(candidates) - 1)),
            },
        )
        selection = self._selector.select(
            candidates,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
        )
        if not 0 <= selection.selected_index < len(candidates):
            logger.warning(
                "Vision model picked out-of-range index %d of %d candidates; clamping.",
                selection.selected_index,
                len(candidates),
            )
        return selection
