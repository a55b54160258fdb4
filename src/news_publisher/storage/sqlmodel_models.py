"""SQLModel ORM tables for run history and publishing records."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class WorkflowRun(SQLModel, table=True):
    __tablename__ = "workflow_runs"  # type: ignore[bad-override]

    run_id: str = Field(primary_key=True)
    status: str = Field(index=True)
    trigger: str
    started_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False),
    )
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    article_count: int = 0
    error: str | None = Field(default=None, sa_column=Column(Text))
    cancel_requested_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True)),
    )
    heartbeat_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class WorkflowStep(SQLModel, table=True):
    __tablename__ = "workflow_steps"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "run_id",
            "article_index",
            "step_name",
            name="uq_workflow_steps_run_article_step",
        ),
        Index("idx_workflow_steps_run_order", "run_id", "article_index", "started_at"),
    )

    step_id: str = Field(primary_key=True)
    run_id: str = Field(
        sa_column=Column(
            ForeignKey("workflow_runs.run_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    article_index: int
    step_name: str = Field(index=True)
    step_kind: str = Field(index=True)
    status: str = Field(index=True)
    input_summary: str | None = Field(default=None, sa_column=Column(Text))
    output_summary: str | None = Field(default=None, sa_column=Column(Text))
    error: str | None = Field(default=None, sa_column=Column(Text))
    started_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class RssFeed(SQLModel, table=True):
    __tablename__ = "rss_feed"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    title: str
    link: str = Field(index=True)
    pub_date: str = ""
    content: str = Field(default="", sa_column=Column(Text, nullable=False))
    img_url: str | None = None
    should_draft_article: bool = False
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class PublishingSite(SQLModel, table=True):
    __tablename__ = "sites"  # type: ignore[bad-override]

    site_id: str = Field(primary_key=True)
    name: str
    slug: str = Field(unique=True, index=True)
    wp_base_url: str
    active: bool = Field(default=True, index=True)
    category_map_json: str = Field(default="{}", sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class AiArticle(SQLModel, table=True):
    __tablename__ = "ai_articles"  # type: ignore[bad-override]

    id: str = Field(primary_key=True)
    rss_feed_id: int = Field(foreign_key="rss_feed.id", index=True)
    title: str
    content: str = Field(sa_column=Column(Text, nullable=False))
    site_id: str = Field(foreign_key="sites.site_id", index=True)
    wp_post_id: int | None = None
    wp_media_id: int | None = None
    wp_image_url: str | None = None
    image_source: str | None = None
    source_image_url: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class PipelineConfigRow(SQLModel, table=True):
    __tablename__ = "pipeline_config"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    headlines_to_fetch: int | None = None
    headlines_date: str | None = None
    editor_prompts_json: str | None = Field(default=None, sa_column=Column(Text))
    category_map_json: str | None = Field(default=None, sa_column=Column(Text))
    pivot_catalogs_json: str | None = Field(default=None, sa_column=Column(Text))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
