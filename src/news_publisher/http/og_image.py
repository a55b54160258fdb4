"""Social preview image discovery in article HTML."""

from __future__ import annotations

from html.parser import HTMLParser
from urllib.parse import urljoin, urlsplit

IMAGE_META_KEYS = ("og:image", "og:image:url", "twitter:image")


class _MetaImageParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.found: dict[str, str] = {}

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag != "meta":
            return
        values = {name.lower(): (value or "") for name, value in attrs}
        key = (values.get("property") or values.get("name") or "").strip().lower()
        content = values.get("content", "").strip()
        if key in IMAGE_META_KEYS and content and key not in self.found:
            self.found[key] = content


def extract_og_image_url(html: str, page_url: str) -> str | None:
    """Return the preview image URL declared by the page, resolved to an absolute URL.

    ``og:image`` wins over ``og:image:url`` which wins over ``twitter:image``;
    attribute order inside the tag does not matter.
    """

    if not html:
        return None
    parser = _MetaImageParser()
    parser.feed(html)
    parser.close()
    for key in IMAGE_META_KEYS:
        candidate = parser.found.get(key)
        if not candidate:
            continue
        try:
            return resolve_url(candidate, page_url)
        except ValueError:
            return None
    return None


def resolve_url(candidate: str, page_url: str) -> str:
    """Absolute form of ``candidate``; raises ``ValueError`` for unparseable URLs."""

    if candidate.startswith("//"):
        return f"{urlsplit(page_url).scheme or 'https'}:{candidate}"
    if urlsplit(candidate).scheme in {"http", "https"}:
        return candidate
    return urljoin(page_url, candidate)
