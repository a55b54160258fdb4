"""Tests for the shared HTTP helpers."""

from __future__ import annotations

import httpx
import pytest

from news_publisher.errors import IntegrationError
from news_publisher.http.fetcher import HttpFetcher, origin_referer
from news_publisher.http.og_image import extract_og_image_url, resolve_url


class TestOgImage:
    def test_og_image_wins_over_twitter_image(self):
        html = (
            '<html><head><meta name="twitter:image" content="https://cdn.example.com/tw.jpg">'
            '<meta content="https://cdn.example.com/og.jpg" property="og:image"></head></html>'
        )
        assert (
            extract_og_image_url(html, "https://news.example.com/a")
            == "https://cdn.example.com/og.jpg"
        )

    def test_og_image_url_variant(self):
        html = '<meta property="og:image:url" content="/img/lead.png">'
        assert (
            extract_og_image_url(html, "https://news.example.com/section/story")
            == "https://news.example.com/img/lead.png"
        )

    def test_protocol_relative_url_keeps_page_scheme(self):
        assert (
            resolve_url("//cdn.example.com/x.jpg", "http://news.example.com/a")
            == "http://cdn.example.com/x.jpg"
        )

    def test_missing_or_empty_tag(self):
        assert extract_og_image_url('<meta property="og:image" content="  ">', "https://a.b/") is None
        assert extract_og_image_url("<p>no meta</p>", "https://a.b/") is None
        assert extract_og_image_url("", "https://a.b/") is None

    def test_unparseable_url_is_ignored(self):
        html = '<meta property="og:image" content="https://[broken/og.jpg">'
        assert extract_og_image_url(html, "https://news.example.com/a") is None


class TestHttpFetcher:
    def test_fetch_reports_http_errors_without_raising(self):
        fetcher = HttpFetcher(transport=httpx.MockTransport(lambda request: httpx.Response(403)))

        result = fetcher.fetch("https://news.example.com/a")

        assert not result.is_success
        assert result.status_code == 403
        assert result.error == "HTTP 403"

    def test_fetch_reports_network_errors_without_raising(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = HttpFetcher(transport=httpx.MockTransport(handler)).fetch("https://down.example/")

        assert not result.is_success
        assert result.status_code == 0

    def test_fetch_sends_browser_headers(self):
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, text="<html></html>", headers={"content-type": "text/html"})

        result = HttpFetcher(transport=httpx.MockTransport(handler)).fetch("https://a.example/")

        assert result.is_success
        assert "Chrome" in seen["user-agent"]
        assert seen["cache-control"] == "no-cache"

    def test_download_image_sends_referer(self):
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, content=b"jpeg", headers={"content-type": "image/jpeg"})

        image = HttpFetcher(transport=httpx.MockTransport(handler)).download_image(
            "https://cdn.example.com/a.jpg",
            referer="https://news.example.com/",
        )

        assert image.data == b"jpeg"
        assert image.mime_type == "image/jpeg"
        assert seen["referer"] == "https://news.example.com/"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(404),
            httpx.Response(200, content=b"<html>", headers={"content-type": "text/html"}),
            httpx.Response(200, content=b"", headers={"content-type": "image/png"}),
        ],
    )
    def test_download_image_rejects_unusable_responses(self, response):
        fetcher = HttpFetcher(transport=httpx.MockTransport(lambda request: response))

        with pytest.raises(IntegrationError):
            fetcher.download_image("https://cdn.example.com/a.jpg")

    def test_origin_referer(self):
        assert origin_referer("https://news.example.com/a/b?c=1") == "https://news.example.com/"
        assert origin_referer("not a url") is None

    def test_invalid_urls_do_not_escape_as_raw_errors(self):
        fetcher = HttpFetcher(transport=httpx.MockTransport(lambda request: httpx.Response(200)))

        page = fetcher.fetch("http://exa mple.com/\x00page")
        assert not page.is_success
        assert page.status_code == 0
        with pytest.raises(IntegrationError, match="image-download"):
            fetcher.download_image("http://exa mple.com/\x00a.jpg")
