"""Publish one article to one WordPress site."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from news_publisher.errors import PublishError
from news_publisher.integrations.base import PublishingTarget
from news_publisher.models import ArticleResult, ProcessedImage, PublishResult, SiteArticle
from news_publisher.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)


def publish_to_wordpress(  # noqa: PLR0913
    target: PublishingTarget,
    site_article: SiteArticle,
    article: ArticleResult,
    image: ProcessedImage,
    *,
    post_status: str = "draft",
    push_seo_meta: bool = True,
    retry_policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PublishResult:
    """Upload media, create the post, attach the featured image, then push SEO meta.

    Media upload and featured-image calls are retried. Post creation is attempted once
    because a retry could leave a duplicate draft. A failed SEO meta push is logged and
    does not fail the publish.
    """

    slug = site_article.site.slug
    policy = retry_policy or RetryPolicy()

    media = with_retry(
        f"upload_media_{slug}",
        lambda: target.upload_media(image.data, image.file_name, image.mime_type),
        policy,
        sleep=sleep,
    )

    try:
        post = target.create_post(
            site_article.metatitle,
            article.cleaned_html,
            site_article.category_id,
            post_status,
        )
    except PublishError:
        logger.warning(
            "Post creation failed for site=%s; a draft may already exist remotely "
            "(media_id=%s). Check the site before re-running this article.",
            slug,
            media.id,
        )
        raise

    with_retry(
        f"set_featured_image_{slug}",
        lambda: target.set_featured_image(post.id, media.id),
        policy,
        sleep=sleep,
    )

    if push_seo_meta:
        try:
            target.update_seo_meta(
                post.id,
                site_article.metatitle,
                site_article.metadescription,
                site_article.keyword,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "SEO meta update failed, post kept (site=%s post_id=%s): %s",
                slug,
                post.id,
                exc,
            )

    return PublishResult(
        site_slug=slug,
        post_id=post.id,
        media_id=media.id,
        post_url=post.url,
        image_url=media.url,
    )
