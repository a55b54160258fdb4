"""Domain models for publishing runs, steps and article artifacts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class RunStatus(str, Enum):
    """Lifecycle states for pipeline runs."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class RunTrigger(str, Enum):
    """What started a run."""

    CRON = "cron"
    MANUAL = "manual"


class StepStatus(str, Enum):
    """Lifecycle states for one logged step."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self is not StepStatus.RUNNING


class StepKind(str, Enum):
    """Pipeline stage a step record belongs to."""

    FETCH_HEADLINES = "fetch_headlines"
    UPSERT_RSS_FEED = "upsert_rss_feed"
    GENERATE_ARTICLE = "generate_article"
    PROCESS_IMAGE = "process_image"
    SEO_PER_SITE = "seo_per_site"
    PUBLISH = "publish"

    def step_name(self, site_slug: str | None = None) -> str:
        """Return the stored step name; publish steps are suffixed with the site slug."""

        if self is StepKind.PUBLISH:
            if not site_slug:
                raise ValueError("Publish steps require a site slug.")
            return f"publish_{site_slug}"
        return self.value

    @property
    def display_stage(self) -> str:
        return DISPLAY_STAGE_BY_KIND[self]


DISPLAY_STAGE_BY_KIND: dict[StepKind, str] = {
    StepKind.FETCH_HEADLINES: "fetch",
    StepKind.UPSERT_RSS_FEED: "dedupe",
    StepKind.GENERATE_ARTICLE: "draft",
    StepKind.PROCESS_IMAGE: "image",
    StepKind.SEO_PER_SITE: "seo",
    StepKind.PUBLISH: "publish",
}

RUN_LEVEL_ARTICLE_INDEX = -1


class ImageSource(str, Enum):
    """Fallback tier that supplied the original image."""

    OG_IMAGE = "og:image"
    IMG_URL = "img_url"
    GOOGLE_CSE = "google_cse"


class ArticleOutcome(str, Enum):
    """How one headline left the per-article pipeline."""

    PUBLISHED = "published"
    DUPLICATE = "duplicate"


@dataclass(slots=True)
class HeadlineItem:
    """Normalized trending news item."""

    news_id: str
    title: str
    url: str
    body: str
    published_at: str
    image_url: str | None = None


@dataclass(slots=True)
class RssFeedItem:
    """Persisted headline history row."""

    id: int
    title: str
    link: str
    pub_date: str
    content: str
    img_url: str | None = None
    should_draft_article: bool = False
    created_at: datetime | None = None


@dataclass(slots=True)
class UpsertResult:
    """Result of resolving a headline against history."""

    item: RssFeedItem
    already_existed: bool


@dataclass(slots=True)
class CategoryInfo:
    """Category id and accent color for one taxonomy entry."""

    id: int
    color: str


NEUTRAL_CATEGORY = CategoryInfo(id=0, color="#CCCCCC")


@dataclass(frozen=True, slots=True)
class ArticleResult:
    """Drafting output consumed by image, SEO and publish steps."""

    headline: str
    cleaned_html: str
    category: str
    category_id: int
    category_color: str
    tags: tuple[str, ...] = ()


@dataclass(slots=True)
class DownloadedImage:
    """Raw image bytes fetched from a URL."""

    url: str
    data: bytes
    mime_type: str


@dataclass(slots=True)
class ImageSelection:
    """Vision model choice among candidate images."""

    selected_index: int
    reason: str
    subject_description: str
    color_target: str


@dataclass(frozen=True, slots=True)
class ProcessedImage:
    """Final edited image ready for upload."""

    data: bytes
    mime_type: str
    file_name: str
    image_source: ImageSource
    source_image_url: str


@dataclass(slots=True)
class Site:
    """Publishing target registered in the site table."""

    id: str
    name: str
    slug: str
    wp_base_url: str
    active: bool = True
    category_map: dict[str, CategoryInfo] = field(default_factory=dict)

    def category_for(self, category: str) -> CategoryInfo:
        return self.category_map.get(category, NEUTRAL_CATEGORY)


@dataclass(slots=True)
class SeoMeta:
    """Rewritten metadata returned by the SEO model."""

    metatitle: str
    metadescription: str
    keyword: str


@dataclass(slots=True)
class SiteArticle:
    """Per-site SEO package."""

    site: Site
    metatitle: str
    metadescription: str
    keyword: str
    category_id: int
    category_color: str


@dataclass(slots=True)
class PublishResult:
    """Per-site publish outcome."""

    site_slug: str
    post_id: int
    media_id: int
    post_url: str
    image_url: str


@dataclass(slots=True)
class MediaUpload:
    """WordPress media upload response."""

    id: int
    url: str


@dataclass(slots=True)
class CreatedPost:
    """WordPress post creation response."""

    id: int
    url: str


@dataclass(slots=True)
class ReferenceResult:
    """One reference search hit."""

    title: str
    url: str
    description: str
    content: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": self.title,
            "url": self.url,
            "description": self.description,
        }
        if self.content:
            payload["content"] = self.content
        return payload


@dataclass(slots=True)
class ImageSearchResult:
    """One image search hit."""

    url: str
    title: str = ""


@dataclass(slots=True)
class EditorPrompts:
    """Editor-configurable prompt templates; empty values fall back to defaults."""

    article_writing_system: str | None = None
    article_writing_user: str | None = None
    image_selection_system: str | None = None
    image_selection_user: str | None = None
    image_edit_template: str | None = None


@dataclass(slots=True)
class EditorConfig:
    """Database-held editor configuration."""

    prompts: EditorPrompts = field(default_factory=EditorPrompts)
    category_map: dict[str, CategoryInfo] = field(default_factory=dict)
    pivot_catalogs: dict[str, Any] | None = None
    headlines_to_fetch: int | None = None
    headlines_date: str | None = None


@dataclass(slots=True)
class RunUpdate:
    """Partial run update; ``None`` fields are left untouched."""

    status: RunStatus | None = None
    finished_at: datetime | None = None
    article_count: int | None = None
    error: str | None = None


@dataclass(slots=True)
class StepUpdate:
    """Terminal update for one step record."""

    status: StepStatus
    output_summary: str | None = None
    error: str | None = None
    finished_at: datetime | None = None


@dataclass(slots=True)
class RunView:
    """Read-only projection of a run."""

    run_id: str
    status: RunStatus
    trigger: RunTrigger
    started_at: datetime
    finished_at: datetime | None
    article_count: int
    error: str | None
    cancel_requested_at: datetime | None
    heartbeat_at: datetime | None = None


@dataclass(slots=True)
class StepView:
    """Read-only projection of a step."""

    step_id: str
    run_id: str
    article_index: int
    step_name: str
    step_kind: StepKind
    status: StepStatus
    input_summary: str | None
    output_summary: str | None
    error: str | None
    started_at: datetime
    finished_at: datetime | None

    @property
    def display_stage(self) -> str:
        return self.step_kind.display_stage


@dataclass(slots=True)
class RunDetails:
    """Run with its ordered step records."""

    run: RunView
    steps: list[StepView]


@dataclass(slots=True)
class AiArticleView:
    """Persisted published-article linkage."""

    id: str
    rss_feed_id: int
    title: str
    site_id: str
    wp_post_id: int | None
    wp_media_id: int | None
    wp_image_url: str | None
    image_source: str | None
    source_image_url: str | None
    created_at: datetime


@dataclass(slots=True)
class PipelineOptions:
    """Inputs for one pipeline run."""

    trigger: RunTrigger = RunTrigger.MANUAL
    article_count: int = 6
    headlines_date: str = "today"


@dataclass(slots=True)
class PipelineRunResult:
    """Summary returned after a run finishes."""

    run_id: str
    status: RunStatus
    articles_processed: int
    errors: list[str] = field(default_factory=list)


def category_map_from_payload(payload: Any) -> dict[str, CategoryInfo]:
    """Build a category table from ``{"Name": {"id": 7, "color": "#00AB76"}}`` JSON data."""

    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError("Category map must be a JSON object keyed by category name.")
    categories: dict[str, CategoryInfo] = {}
    for name, entry in payload.items():
        if not isinstance(entry, dict) or "id" not in entry:
            raise ValueError(f"Invalid category entry for {name!r}: {entry!r}")
        categories[str(name)] = CategoryInfo(
            id=int(entry["id"]),
            color=str(entry.get("color") or NEUTRAL_CATEGORY.color),
        )
    return categories


def category_map_to_payload(categories: dict[str, CategoryInfo]) -> dict[str, dict[str, Any]]:
    return {name: {"id": info.id, "color": info.color} for name, info in categories.items()}
