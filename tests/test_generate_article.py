from __future__ import annotations

import json

import allure

from news_publisher.models import CategoryInfo, EditorPrompts, ReferenceResult, RssFeedItem
from news_publisher.pipeline.prompts import DEFAULT_CATEGORY_MAP, DEFAULT_PROMPTS, fill_template
from news_publisher.pipeline.steps.generate_article import (
    UNCATEGORIZED,
    ArticleDrafter,
    clean_text,
    extract_metadata,
)

from fakes import DRAFT_HTML, FakeArticleWriter, FakeReferenceSearch

pytestmark = [
    allure.epic("Publishing Pipeline"),
    allure.feature("Article Drafting"),
]


def _item() -> RssFeedItem:
    return RssFeedItem(
        id=12,
        title="Fed signals rate cut",
        link="https://news.example.com/fed",
        pub_date="Tue, 14 Oct 2026 10:00:00 -0400",
        content="The Federal Reserve hinted at a cut.",
    )


def test_clean_text_normalizes_entities_and_typography() -> None:
    raw = "<p>Rates &amp; “markets” — it’s&hellip;</p>\n\n\n\n<p>Next</p>"

    assert clean_text(raw) == "<p>Rates & \"markets\" - it's...</p><p>Next</p>"


def test_clean_text_drops_escaped_newlines_and_collapses_spaces() -> None:
    assert clean_text("  <h1>Title</h1>\\n   <p>a    b</p>  ") == "<h1>Title</h1><p>a b</p>"


def test_extract_metadata_strips_marker_paragraphs() -> None:
    headline, category, tags, body = extract_metadata(DRAFT_HTML)

    assert headline == "Markets Rally on Rate Cut Hopes"
    assert category == "Finance"
    assert tags == ("markets", "rates")
    assert body == "<p>Stocks climbed on Tuesday.</p>"


def test_extract_metadata_without_markers() -> None:
    headline, category, tags, body = extract_metadata("<p>Only a body.</p>")

    assert headline == ""
    assert category == UNCATEGORIZED
    assert tags == ()
    assert body == "<p>Only a body.</p>"


def test_drafter_fills_prompt_and_maps_category() -> None:
    search = FakeReferenceSearch(
        [ReferenceResult(title="Ref", url="https://ref.example", description="context")],
    )
    writer = FakeArticleWriter()
    drafter = ArticleDrafter(search=search, writer=writer)

    article = drafter.draft(_item(), prompts=DEFAULT_PROMPTS, categories=DEFAULT_CATEGORY_MAP)

    assert search.queries == ["Fed signals rate cut"]
    system, user = writer.calls[0]
    assert system == DEFAULT_PROMPTS.article_writing_system
    assert "Fed signals rate cut" in user
    assert "The Federal Reserve hinted at a cut." in user
    assert "https://ref.example" in user
    assert "{{" not in user
    assert article.headline == "Markets Rally on Rate Cut Hopes"
    assert article.category == "Finance"
    assert (article.category_id, article.category_color) == (7, "#00AB76")
    assert article.tags == ("markets", "rates")
    assert "<h1>" not in article.cleaned_html


def test_drafter_uses_feed_title_without_h1_and_neutral_category() -> None:
    writer = FakeArticleWriter("<p>Body only.</p><p><strong>Category:</strong> Sports</p>")
    drafter = ArticleDrafter(search=FakeReferenceSearch(), writer=writer)

    article = drafter.draft(
        _item(),
        prompts=DEFAULT_PROMPTS,
        categories={"Finance": CategoryInfo(id=7, color="#00AB76")},
    )

    assert article.headline == "Fed signals rate cut"
    assert article.category == "Sports"
    assert article.category_id == 0
    assert article.category_color == "#CCCCCC"


def test_reference_material_is_truncated() -> None:
    long_ref = ReferenceResult(title="Ref", url="https://ref.example", description="x" * 500)
    writer = FakeArticleWriter()
    drafter = ArticleDrafter(
        search=FakeReferenceSearch([long_ref]),
        writer=writer,
        max_reference_chars=50,
    )
    prompts = EditorPrompts(article_writing_system="sys", article_writing_user="{{googleSearchContent}}")

    drafter.draft(_item(), prompts=prompts, categories={})

    _, user = writer.calls[0]
    assert user == json.dumps([long_ref.to_payload()])[:50]


def test_fill_template_leaves_unknown_placeholders() -> None:
    assert fill_template("{{a}} and {{b}}", {"a": "x"}) == "x and {{b}}"
