"""Run-level headline fetch."""

from __future__ import annotations

import logging

from news_publisher.config import clamp_headline_count, validate_headlines_date
from news_publisher.integrations.base import HeadlineSource
from news_publisher.models import HeadlineItem

logger = logging.getLogger(__name__)


def fetch_headlines(source: HeadlineSource, count: int, date_selector: str) -> list[HeadlineItem]:
    """Fetch up to ``count`` headlines, dropping items without a title or URL.

    A short list is accepted as long as the call itself succeeded.
    """

    count = clamp_headline_count(count)
    date_selector = validate_headlines_date(date_selector)
    items = source.fetch(count, date_selector)

    headlines = [item for item in items if item.title and item.url][:count]
    dropped = len(items) - len(headlines)
    if dropped > 0:
        logger.warning("Dropped %d headline(s) without title or URL.", dropped)
    return headlines
