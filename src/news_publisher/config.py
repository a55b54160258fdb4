"""Runtime configuration for the publishing pipeline."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

MAX_HEADLINES_PER_RUN = 20
DEFAULT_HEADLINES_DATE = "today"
_DATE_RANGE_PATTERN = re.compile(r"^\d{8}-\d{8}$")


@dataclass(slots=True)
class HeadlineSettings:
    """Trending headline source settings."""

    api_token: str = ""
    base_url: str = "https://stocknewsapi.com/api/v1"
    default_count: int = 6
    default_date: str = DEFAULT_HEADLINES_DATE
    request_timeout_seconds: float = 30.0


@dataclass(slots=True)
class SearchSettings:
    """Reference and image search settings."""

    jina_api_key: str = ""
    google_cse_api_key: str = ""
    google_cse_cx: str = ""
    image_candidates: int = 5
    request_timeout_seconds: float = 30.0


@dataclass(slots=True)
class LlmSettings:
    """Model provider settings."""

    anthropic_api_key: str = ""
    openai_api_key: str = ""
    writer_model: str = "claude-sonnet-4-20250514"
    writer_max_tokens: int = 4096
    vision_model: str = "gpt-4o"
    image_model: str = "gpt-image-1"
    image_size: str = "1536x1024"
    max_reference_chars: int = 300_000
    request_timeout_seconds: float = 120.0


@dataclass(slots=True)
class ImageSettings:
    """Image sourcing and transform settings."""

    scrape_timeout_seconds: float = 12.0
    download_timeout_seconds: float = 15.0
    edit_timeout_seconds: float = 180.0
    output_width: int = 900
    output_height: int = 600
    webp_quality: int = 80


@dataclass(slots=True)
class WordPressCredential:
    """Application-password credential for one site slug."""

    slug: str
    username: str
    app_password: str


@dataclass(slots=True)
class WordPressSettings:
    """Publishing target settings."""

    credentials: tuple[WordPressCredential, ...] = ()
    post_status: str = "draft"
    push_seo_meta: bool = True
    media_timeout_seconds: float = 60.0
    api_timeout_seconds: float = 30.0

    def credential_for(self, slug: str) -> WordPressCredential | None:
        for credential in self.credentials:
            if credential.slug == slug:
                return credential
        return None


@dataclass(slots=True)
class RetrySettings:
    """Bounded exponential backoff settings for pipeline steps."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 15.0
    image_max_attempts: int = 2
    publish_max_attempts: int = 2


@dataclass(slots=True)
class RunSettings:
    """Run lifecycle settings."""

    stale_after_seconds: int = 3_600


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".news_publisher.db")
    headlines: HeadlineSettings = field(default_factory=HeadlineSettings)
    search: SearchSettings = field(default_factory=SearchSettings)
    llm: LlmSettings = field(default_factory=LlmSettings)
    image: ImageSettings = field(default_factory=ImageSettings)
    wordpress: WordPressSettings = field(default_factory=WordPressSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    run: RunSettings = field(default_factory=RunSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("NEWS_PUBLISHER_DB_PATH", ".news_publisher.db")),
            headlines=HeadlineSettings(
                api_token=os.getenv("STOCKNEWS_API_TOKEN", "").strip(),
                base_url=os.getenv(
                    "NEWS_PUBLISHER_HEADLINES_BASE_URL",
                    "https://stocknewsapi.com/api/v1",
                ),
                default_count=clamp_headline_count(
                    int(os.getenv("NEWS_PUBLISHER_HEADLINES_COUNT", "6")),
                ),
                default_date=os.getenv("NEWS_PUBLISHER_HEADLINES_DATE", DEFAULT_HEADLINES_DATE),
                request_timeout_seconds=float(
                    os.getenv("NEWS_PUBLISHER_HEADLINES_TIMEOUT_SECONDS", "30.0"),
                ),
            ),
            search=SearchSettings(
                jina_api_key=os.getenv("JINA_API_KEY", "").strip(),
                google_cse_api_key=os.getenv("GOOGLE_CSE_API_KEY", "").strip(),
                google_cse_cx=os.getenv("GOOGLE_CSE_CX", "").strip(),
                image_candidates=int(os.getenv("NEWS_PUBLISHER_IMAGE_CANDIDATES", "5")),
            ),
            llm=LlmSettings(
                anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", "").strip(),
                openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
                writer_model=os.getenv("NEWS_PUBLISHER_WRITER_MODEL", "claude-sonnet-4-20250514"),
                writer_max_tokens=int(os.getenv("NEWS_PUBLISHER_WRITER_MAX_TOKENS", "4096")),
                vision_model=os.getenv("NEWS_PUBLISHER_VISION_MODEL", "gpt-4o"),
                image_model=os.getenv("NEWS_PUBLISHER_IMAGE_MODEL", "gpt-image-1"),
            ),
            image=ImageSettings(
                edit_timeout_seconds=float(
                    os.getenv("NEWS_PUBLISHER_IMAGE_EDIT_TIMEOUT_SECONDS", "180.0"),
                ),
                output_width=int(os.getenv("NEWS_PUBLISHER_IMAGE_WIDTH", "900")),
                output_height=int(os.getenv("NEWS_PUBLISHER_IMAGE_HEIGHT", "600")),
                webp_quality=int(os.getenv("NEWS_PUBLISHER_IMAGE_QUALITY", "80")),
            ),
            wordpress=WordPressSettings(
                credentials=_parse_wordpress_credentials(os.getenv("WORDPRESS_SITES", "")),
                post_status=os.getenv("NEWS_PUBLISHER_PUBLISH_STATUS", "draft"),
                push_seo_meta=env_bool("NEWS_PUBLISHER_PUSH_SEO_META", default=True),
            ),
            retry=RetrySettings(
                max_attempts=int(os.getenv("NEWS_PUBLISHER_RETRY_MAX_ATTEMPTS", "3")),
                base_delay_seconds=float(
                    os.getenv("NEWS_PUBLISHER_RETRY_BASE_DELAY_SECONDS", "1.0"),
                ),
                max_delay_seconds=float(
                    os.getenv("NEWS_PUBLISHER_RETRY_MAX_DELAY_SECONDS", "15.0"),
                ),
            ),
            run=RunSettings(
                stale_after_seconds=int(
                    os.getenv("NEWS_PUBLISHER_RUN_STALE_AFTER_SECONDS", "3600"),
                ),
            ),
        )

    def validate_for_pipeline(self) -> None:
        """Raise configuration error if a collaborator credential is missing or invalid."""

        required = {
            "STOCKNEWS_API_TOKEN": self.headlines.api_token,
            "JINA_API_KEY": self.search.jina_api_key,
            "GOOGLE_CSE_API_KEY": self.search.google_cse_api_key,
            "GOOGLE_CSE_CX": self.search.google_cse_cx,
            "ANTHROPIC_API_KEY": self.llm.anthropic_api_key,
            "OPENAI_API_KEY": self.llm.openai_api_key,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")
        if not self.wordpress.credentials:
            raise ValueError("WORDPRESS_SITES must list at least one site credential.")
        if self.wordpress.post_status not in {"draft", "publish"}:
            raise ValueError("NEWS_PUBLISHER_PUBLISH_STATUS must be 'draft' or 'publish'.")
        if self.retry.max_attempts <= 0:
            raise ValueError("NEWS_PUBLISHER_RETRY_MAX_ATTEMPTS must be > 0.")
        if self.retry.max_delay_seconds < self.retry.base_delay_seconds:
            raise ValueError(
                "NEWS_PUBLISHER_RETRY_MAX_DELAY_SECONDS must be >= the base delay.",
            )
        if self.search.image_candidates <= 0:
            raise ValueError("NEWS_PUBLISHER_IMAGE_CANDIDATES must be a positive integer.")
        validate_headlines_date(self.headlines.default_date)


def clamp_headline_count(value: int) -> int:
    """Bound a requested headline count to the supported range."""

    return min(max(value, 1), MAX_HEADLINES_PER_RUN)


def validate_headlines_date(value: str) -> str:
    """Return the normalized date selector or raise for unsupported formats.

    Accepted: ``today``, ``yesterday`` or an explicit ``MMDDYYYY-MMDDYYYY`` range.
    """

    normalized = value.strip().lower()
    if normalized in {"today", "yesterday"}:
        return normalized
    if _DATE_RANGE_PATTERN.match(normalized):
        return normalized
    raise ValueError(
        f"Invalid headlines date selector: {value!r}. "
        "Expected 'today', 'yesterday' or 'MMDDYYYY-MMDDYYYY'.",
    )


def _parse_wordpress_credentials(raw: str) -> tuple[WordPressCredential, ...]:
    raw = raw.strip()
    if not raw:
        return ()
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise ValueError(f"WORDPRESS_SITES is not valid JSON: {error}") from error
    if not isinstance(payload, list):
        raise ValueError("WORDPRESS_SITES must be a JSON list of site credentials.")

    credentials: list[WordPressCredential] = []
    for entry in payload:
        if not isinstance(entry, dict):
            raise ValueError(f"Invalid WORDPRESS_SITES entry: {entry!r}")
        try:
            credentials.append(
                WordPressCredential(
                    slug=str(entry["slug"]).strip(),
                    username=str(entry["username"]).strip(),
                    app_password=str(entry.get("app_password") or entry["appPassword"]),
                ),
            )
        except KeyError as error:
            raise ValueError(
                f"WORDPRESS_SITES entry is missing field {error.args[0]!r}: {entry!r}",
            ) from error
    return tuple(credentials)


def env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
