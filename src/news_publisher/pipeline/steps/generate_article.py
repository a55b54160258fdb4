"""Article drafting: reference search, LLM draft and HTML normalization."""

from __future__ import annotations

import json
import logging
import re

from news_publisher.integrations.base import ArticleWriter, ReferenceSearch
from news_publisher.models import (
    NEUTRAL_CATEGORY,
    ArticleResult,
    CategoryInfo,
    EditorPrompts,
    RssFeedItem,
)
from news_publisher.pipeline.prompts import fill_template

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"

_ENTITY_REPLACEMENTS = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&hellip;", "..."),
)
_CHARACTER_REPLACEMENTS = str.maketrans(
    {
        "\u202f": " ",
        "\u00a0": " ",
        "\u2003": " ",
        "\u2009": " ",
        "\u2011": "-",
        "\u2013": "-",
        "\u2014": "-",
        "\u2018": "'",
        "\u2019": "'",
        "\u201c": '"',
        "\u201d": '"',
        "\u00ab": '"',
        "\u00bb": '"',
        "\u2026": "...",
    },
)

_H1 = re.compile(r"<h1[^>]*>(.*?)</h1>", re.IGNORECASE | re.DOTALL)
_CATEGORY = re.compile(r"<strong>\s*Category:\s*</strong>\s*([^<]+)", re.IGNORECASE)
_TAGS = re.compile(r"<strong>\s*Tags:\s*</strong>\s*([^<]+)", re.IGNORECASE)
_CATEGORY_BLOCK = re.compile(
    r"<p[^>]*>\s*<strong>\s*Category:\s*</strong>.*?</p>",
    re.IGNORECASE | re.DOTALL,
)
_TAGS_BLOCK = re.compile(r"<p[^>]*>\s*<strong>\s*Tags:\s*</strong>.*?</p>", re.IGNORECASE | re.DOTALL)
_EMPTY_PARAGRAPH = re.compile(r"<p[^>]*>\s*</p>")
_TAG = re.compile(r"<[^>]+>")


def clean_text(raw: str) -> str:
    """Decode common entities, normalize typographic characters and collapse whitespace."""

    text = raw
    for entity, replacement in _ENTITY_REPLACEMENTS:
        text = text.replace(entity, replacement)
    text = text.translate(_CHARACTER_REPLACEMENTS)

    text = text.replace("\\n", "")
    text = re.sub(r"\n\s*\n\s*\n", "\n\n", text)
    text = re.sub(r"\s+\n", "\n", text)
    text = re.sub(r"\n\s+", "\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r">\s+<", "><", text)
    text = text.strip()
    return re.sub(r"\n{3,}", "\n\n", text)


def extract_metadata(html: str) -> tuple[str, str, tuple[str, ...], str]:
    """Split drafted HTML into ``(headline, category, tags, body)``.

    The H1 and the ``Category:``/``Tags:`` marker paragraphs are removed from the body.
    """

    headline_match = _H1.search(html)
    headline = _TAG.sub("", headline_match.group(1)).strip() if headline_match else ""

    category_match = _CATEGORY.search(html)
    category = category_match.group(1).strip() if category_match else ""

    tags_match = _TAGS.search(html)
    tags = (
        tuple(tag.strip() for tag in tags_match.group(1).split(",") if tag.strip())
        if tags_match
        else ()
    )

    body = _H1.sub("", html, count=1)
    body = _CATEGORY_BLOCK.sub("", body, count=1)
    body = _TAGS_BLOCK.sub("", body, count=1)
    body = _EMPTY_PARAGRAPH.sub("", body).strip()
    return headline, category or UNCATEGORIZED, tags, body


def resolve_category(category: str, categories: dict[str, CategoryInfo]) -> CategoryInfo:
    return categories.get(category, NEUTRAL_CATEGORY)


class ArticleDrafter:
    """Gather references for a headline and turn the LLM draft into an ``ArticleResult``."""

    def __init__(
        self,
        *,
        search: ReferenceSearch,
        writer: ArticleWriter,
        max_reference_chars: int = 300_000,
    ) -> None:
        self._search = search
        self._writer = writer
        self._max_reference_chars = max_reference_chars

    def draft(
        self,
        item: RssFeedItem,
        *,
        prompts: EditorPrompts,
        categories: dict[str, CategoryInfo],
    ) -> ArticleResult:
        references = self._search.search(item.title)
        reference_text = json.dumps(
            [reference.to_payload() for reference in references],
            ensure_ascii=False,
        )[: self._max_reference_chars]

        user_prompt = fill_template(
            prompts.article_writing_user or "",
            {
                "rssTitle": item.title,
                "contentSnippet": item.content,
                "googleSearchContent": reference_text,
                "pubDate": item.pub_date,
            },
        )
        raw = self._writer.complete(prompts.article_writing_system or "", user_prompt)

        headline, category, tags, body = extract_metadata(clean_text(raw))
        if not headline:
            logger.warning("Draft has no <h1>; using the feed title (rss_feed_id=%s).", item.id)
            headline = item.title
        info = resolve_category(category, categories)
        logger.info(
            "Drafted article (rss_feed_id=%s category=%s references=%d chars=%d).",
            item.id,
            category,
            len(references),
            len(body),
        )
        return ArticleResult(
            headline=headline,
            cleaned_html=body,
            category=category,
            category_id=info.id,
            category_color=info.color,
            tags=tags,
        )
