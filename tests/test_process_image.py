from __future__ import annotations

import allure
import httpx
import pytest

from news_publisher.config import ImageSettings
from news_publisher.errors import ImageUnavailableError
from news_publisher.http.fetcher import HttpFetcher
from news_publisher.models import ArticleResult, ImageSelection, ImageSource, RssFeedItem
from news_publisher.pipeline.prompts import DEFAULT_PIVOT_CATALOGS, DEFAULT_PROMPTS
from news_publisher.pipeline.steps.process_image import (
    ImageProcessor,
    build_edit_prompt,
    build_file_name,
    clamp_index,
    slugify,
)

from fakes import FakeImageEditor, FakeImageSearch, FakeImageSelector, FakeTransformer

pytestmark = [
    allure.epic("Publishing Pipeline"),
    allure.feature("Image Fallback Chain"),
]

ARTICLE_URL = "https://news.example.com/markets/story"
OG_IMAGE_URL = "https://cdn.news.example.com/og.jpg"
FEED_IMAGE_URL = "https://feed-cdn.example.com/feed.jpg"
PAGE_WITH_OG = f'<html><head><meta property="og:image" content="{OG_IMAGE_URL}"></head></html>'


class _Web:
    """Routes mocked requests by URL; unknown URLs answer 404."""

    def __init__(self, routes: dict[str, httpx.Response]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.routes.get(str(request.url), httpx.Response(404))

    def referer_for(self, url: str) -> str | None:
        for request in self.requests:
            if str(request.url) == url:
                return request.headers.get("referer")
        return None


def _image(body: bytes) -> httpx.Response:
    return httpx.Response(200, content=body, headers={"content-type": "image/jpeg"})


def _page(html: str) -> httpx.Response:
    return httpx.Response(200, text=html, headers={"content-type": "text/html"})


def _item(img_url: str | None = None) -> RssFeedItem:
    return RssFeedItem(
        id=3,
        title="Oil prices jump",
        link=ARTICLE_URL,
        pub_date="",
        content="",
        img_url=img_url,
    )


def _article() -> ArticleResult:
    return ArticleResult(
        headline="Oil Prices Jump After Supply Cut!",
        cleaned_html="<p>Body</p>",
        category="Energy",
        category_id=5,
        category_color="#dc6a3f",
    )


def _processor(
    web: _Web,
    *,
    search: FakeImageSearch | None = None,
    selector: FakeImageSelector | None = None,
    editor: FakeImageEditor | None = None,
) -> ImageProcessor:
    return ImageProcessor(
        fetcher=HttpFetcher(transport=httpx.MockTransport(web)),
        image_search=search or FakeImageSearch(),
        selector=selector or FakeImageSelector(),
        editor=editor or FakeImageEditor(),
        transformer=FakeTransformer(),
        settings=ImageSettings(),
        max_candidates=3,
        clock=lambda: 1_760_000_000.5,
    )


def test_og_image_tier_wins_and_sends_origin_referer() -> None:
    web = _Web({ARTICLE_URL: _page(PAGE_WITH_OG), OG_IMAGE_URL: _image(b"og")})
    search = FakeImageSearch(["https://img.example.com/1.jpg"])
    editor = FakeImageEditor()

    image = _processor(web, search=search, editor=editor).process(
        _item(FEED_IMAGE_URL),
        _article(),
        prompts=DEFAULT_PROMPTS,
        pivot_catalogs=DEFAULT_PIVOT_CATALOGS,
    )

    assert image.image_source is ImageSource.OG_IMAGE
    assert image.source_image_url == OG_IMAGE_URL
    assert image.data == b"webp:edited:og"
    assert image.mime_type == "image/webp"
    assert image.file_name == "oil-prices-jump-after-supply-cut-1760000000500.webp"
    assert web.referer_for(OG_IMAGE_URL) == "https://news.example.com/"
    assert search.queries == []
    assert editor.calls[0][0] == OG_IMAGE_URL


def test_feed_image_used_when_page_has_no_og_image() -> None:
    web = _Web({ARTICLE_URL: _page("<html></html>"), FEED_IMAGE_URL: _image(b"feed")})

    image = _processor(web).process(
        _item(FEED_IMAGE_URL),
        _article(),
        prompts=DEFAULT_PROMPTS,
        pivot_catalogs=None,
    )

    assert image.image_source is ImageSource.IMG_URL
    assert image.source_image_url == FEED_IMAGE_URL


def test_feed_image_used_when_og_download_fails() -> None:
    web = _Web(
        {
            ARTICLE_URL: _page(PAGE_WITH_OG),
            OG_IMAGE_URL: httpx.Response(403),
            FEED_IMAGE_URL: _image(b"feed"),
        },
    )

    image = _processor(web).process(
        _item(FEED_IMAGE_URL),
        _article(),
        prompts=DEFAULT_PROMPTS,
        pivot_catalogs=None,
    )

    assert image.image_source is ImageSource.IMG_URL


def test_image_search_tier_keeps_downloadable_candidates() -> None:
    urls = [
        "https://img.example.com/1.jpg",
        "https://img.example.com/2.jpg",
        "https://img.example.com/3.jpg",
    ]
    web = _Web(
        {
            ARTICLE_URL: httpx.Response(500),
            urls[0]: httpx.Response(404),
            urls[1]: _image(b"two"),
            urls[2]: _image(b"three"),
        },
    )
    search = FakeImageSearch(urls)
    selector = FakeImageSelector(selected_index=1)

    image = _processor(web, search=search, selector=selector).process(
        _item(),
        _article(),
        prompts=DEFAULT_PROMPTS,
        pivot_catalogs=DEFAULT_PIVOT_CATALOGS,
    )

    assert search.queries == [("Oil prices jump", 3)]
    assert selector.calls[0]["urls"] == [urls[1], urls[2]]
    assert image.image_source is ImageSource.GOOGLE_CSE
    assert image.source_image_url == urls[2]


def test_selection_prompts_are_filled() -> None:
    web = _Web({ARTICLE_URL: _page(PAGE_WITH_OG), OG_IMAGE_URL: _image(b"og")})
    selector = FakeImageSelector()

    _processor(web, selector=selector).process(
        _item(),
        _article(),
        prompts=DEFAULT_PROMPTS,
        pivot_catalogs=DEFAULT_PIVOT_CATALOGS,
    )

    call = selector.calls[0]
    assert "COMPOSITION BLUEPRINTS" in call["system_prompt"]
    assert "Oil Prices Jump After Supply Cut!" in call["user_prompt"]
    assert "#dc6a3f" in call["user_prompt"]
    assert "{{" not in call["user_prompt"]


def test_out_of_range_selection_is_clamped() -> None:
    web = _Web({ARTICLE_URL: _page(PAGE_WITH_OG), OG_IMAGE_URL: _image(b"og")})

    image = _processor(web, selector=FakeImageSelector(selected_index=7)).process(
        _item(),
        _article(),
        prompts=DEFAULT_PROMPTS,
        pivot_catalogs=None,
    )

    assert image.source_image_url == OG_IMAGE_URL


def test_fails_when_no_tier_yields_an_image() -> None:
    web = _Web({ARTICLE_URL: httpx.Response(500)})
    editor = FakeImageEditor()

    with pytest.raises(ImageUnavailableError, match="no results"):
        _processor(web, search=FakeImageSearch([]), editor=editor).process(
            _item(),
            _article(),
            prompts=DEFAULT_PROMPTS,
            pivot_catalogs=None,
        )

    assert editor.calls == []


def test_fails_when_no_search_candidate_downloads() -> None:
    web = _Web({ARTICLE_URL: httpx.Response(500)})
    search = FakeImageSearch(["https://img.example.com/1.jpg", "https://img.example.com/2.jpg"])

    with pytest.raises(ImageUnavailableError, match="could be downloaded"):
        _processor(web, search=search).process(
            _item(),
            _article(),
            prompts=DEFAULT_PROMPTS,
            pivot_catalogs=None,
        )


def test_edit_prompt_carries_color_and_subject() -> None:
    prompt = build_edit_prompt(
        DEFAULT_PROMPTS.image_edit_template or "",
        ImageSelection(
            selected_index=0,
            reason="Clear subject",
            subject_description="an oil rig at sea",
            color_target="the drilling tower",
        ),
        hex_color="#dc6a3f",
        headline="Oil Prices Jump",
    )

    assert "#dc6a3f" in prompt
    assert "the drilling tower" in prompt
    assert "an oil rig at sea" in prompt
    assert "{{" not in prompt


def test_file_name_helpers() -> None:
    assert slugify("  Hello, World!  ") == "hello-world"
    assert slugify("!!!") == "article"
    assert len(slugify("word " * 40)) <= 60
    assert build_file_name("Fed Cuts Rates", 1234, "webp") == "fed-cuts-rates-1234.webp"
    assert clamp_index(-1, 3) == 0
    assert clamp_index(5, 3) == 2
    assert clamp_index(1, 3) == 1


def test_unparseable_og_image_url_falls_through_to_feed_image() -> None:
    page = '<html><head><meta property="og:image" content="https://[broken/og.jpg"></head></html>'
    web = _Web({ARTICLE_URL: _page(page), FEED_IMAGE_URL: _image(b"feed")})

    image = _processor(web).process(
        _item(FEED_IMAGE_URL),
        _article(),
        prompts=DEFAULT_PROMPTS,
        pivot_catalogs=None,
    )

    assert image.image_source is ImageSource.IMG_URL
    assert image.source_image_url == FEED_IMAGE_URL


def test_invalid_feed_image_url_falls_through_to_image_search() -> None:
    search_url = "https://img.example.com/1.jpg"
    web = _Web({ARTICLE_URL: _page("<html></html>"), search_url: _image(b"found")})
    search = FakeImageSearch([search_url])

    image = _processor(web, search=search).process(
        _item("http://exa mple.com/\x00a.jpg"),
        _article(),
        prompts=DEFAULT_PROMPTS,
        pivot_catalogs=None,
    )

    assert image.image_source is ImageSource.GOOGLE_CSE
    assert image.source_image_url == search_url
