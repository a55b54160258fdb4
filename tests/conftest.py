"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from news_publisher.config import Settings
from news_publisher.repository import PipelineRepository

_ENV_VARS = (
    "NEWS_PUBLISHER_DB_PATH",
    "STOCKNEWS_API_TOKEN",
    "JINA_API_KEY",
    "GOOGLE_CSE_API_KEY",
    "GOOGLE_CSE_CX",
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "WORDPRESS_SITES",
    "NEWS_PUBLISHER_HEADLINES_COUNT",
    "NEWS_PUBLISHER_HEADLINES_DATE",
    "NEWS_PUBLISHER_PUBLISH_STATUS",
    "NEWS_PUBLISHER_PUSH_SEO_META",
    "NEWS_PUBLISHER_RETRY_MAX_ATTEMPTS",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch) -> None:
    """Keep developer credentials out of the tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[PipelineRepository]:
    repo = PipelineRepository(tmp_path / "publisher.db")
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(db_path=tmp_path / "publisher.db")
