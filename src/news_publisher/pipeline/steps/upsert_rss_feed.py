"""Resolve a headline against headline history."""

from __future__ import annotations

import logging

from news_publisher.models import HeadlineItem, UpsertResult
from news_publisher.repository import PipelineRepository

logger = logging.getLogger(__name__)


def upsert_rss_feed_item(repository: PipelineRepository, headline: HeadlineItem) -> UpsertResult:
    """Insert a new history row, or flag the existing one for drafting and report a duplicate."""

    existing = repository.find_rss_item_by_link(headline.url)
    if existing is not None:
        repository.mark_should_draft(existing.id)
        existing.should_draft_article = True
        logger.info("Headline already known (rss_feed_id=%s link=%s).", existing.id, headline.url)
        return UpsertResult(item=existing, already_existed=True)

    item = repository.insert_rss_item(headline)
    return UpsertResult(item=item, already_existed=False)
