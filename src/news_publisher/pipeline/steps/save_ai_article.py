"""Persist the article/site linkage after a successful publish."""

from __future__ import annotations

from news_publisher.models import ArticleResult, ProcessedImage, PublishResult, RssFeedItem, SiteArticle
from news_publisher.repository import PipelineRepository


def save_ai_article(
    repository: PipelineRepository,
    item: RssFeedItem,
    site_article: SiteArticle,
    article: ArticleResult,
    publish: PublishResult,
    image: ProcessedImage,
) -> str:
    return repository.insert_ai_article(
        rss_feed_id=item.id,
        title=site_article.metatitle,
        content=article.cleaned_html,
        site=site_article.site,
        publish=publish,
        image=image,
    )
