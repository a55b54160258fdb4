"""Initial publishing schema: runs, steps, headline history, sites and articles."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "workflow_runs",
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("trigger", sa.String(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("article_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("cancel_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("run_id"),
    )
    op.create_index("ix_workflow_runs_status", "workflow_runs", ["status"])
    op.create_index("ix_workflow_runs_started_at", "workflow_runs", ["started_at"])

    op.create_table(
        "workflow_steps",
        sa.Column("step_id", sa.String(), nullable=False),
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column("article_index", sa.Integer(), nullable=False),
        sa.Column("step_name", sa.String(), nullable=False),
        sa.Column("step_kind", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("input_summary", sa.Text(), nullable=True),
        sa.Column("output_summary", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["run_id"], ["workflow_runs.run_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("step_id"),
        sa.UniqueConstraint(
            "run_id",
            "article_index",
            "step_name",
            name="uq_workflow_steps_run_article_step",
        ),
    )
    op.create_index("ix_workflow_steps_run_id", "workflow_steps", ["run_id"])
    op.create_index("ix_workflow_steps_step_name", "workflow_steps", ["step_name"])
    op.create_index("ix_workflow_steps_step_kind", "workflow_steps", ["step_kind"])
    op.create_index("ix_workflow_steps_status", "workflow_steps", ["status"])
    op.create_index(
        "idx_workflow_steps_run_order",
        "workflow_steps",
        ["run_id", "article_index", "started_at"],
    )

    op.create_table(
        "rss_feed",
        sa.Column("id", sa.Integer(), nullable=False, autoincrement=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("link", sa.String(), nullable=False),
        sa.Column("pub_date", sa.String(), nullable=False, server_default=""),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("img_url", sa.String(), nullable=True),
        sa.Column(
            "should_draft_article",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rss_feed_link", "rss_feed", ["link"])

    op.create_table(
        "sites",
        sa.Column("site_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("wp_base_url", sa.String(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("category_map_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("site_id"),
    )
    op.create_index("ix_sites_slug", "sites", ["slug"], unique=True)
    op.create_index("ix_sites_active", "sites", ["active"])

    op.create_table(
        "ai_articles",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("rss_feed_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("site_id", sa.String(), nullable=False),
        sa.Column("wp_post_id", sa.Integer(), nullable=True),
        sa.Column("wp_media_id", sa.Integer(), nullable=True),
        sa.Column("wp_image_url", sa.String(), nullable=True),
        sa.Column("image_source", sa.String(), nullable=True),
        sa.Column("source_image_url", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["rss_feed_id"], ["rss_feed.id"]),
        sa.ForeignKeyConstraint(["site_id"], ["sites.site_id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_articles_rss_feed_id", "ai_articles", ["rss_feed_id"])
    op.create_index("ix_ai_articles_site_id", "ai_articles", ["site_id"])

    op.create_table(
        "pipeline_config",
        sa.Column("id", sa.Integer(), nullable=False, autoincrement=True),
        sa.Column("headlines_to_fetch", sa.Integer(), nullable=True),
        sa.Column("headlines_date", sa.String(), nullable=True),
        sa.Column("editor_prompts_json", sa.Text(), nullable=True),
        sa.Column("category_map_json", sa.Text(), nullable=True),
        sa.Column("pivot_catalogs_json", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("pipeline_config")
    op.drop_index("ix_ai_articles_site_id", table_name="ai_articles")
    op.drop_index("ix_ai_articles_rss_feed_id", table_name="ai_articles")
    op.drop_table("ai_articles")
    op.drop_index("ix_sites_active", table_name="sites")
    op.drop_index("ix_sites_slug", table_name="sites")
    op.drop_table("sites")
    op.drop_index("ix_rss_feed_link", table_name="rss_feed")
    op.drop_table("rss_feed")
    op.drop_index("idx_workflow_steps_run_order", table_name="workflow_steps")
    op.drop_index("ix_workflow_steps_status", table_name="workflow_steps")
    op.drop_index("ix_workflow_steps_step_kind", table_name="workflow_steps")
    op.drop_index("ix_workflow_steps_step_name", table_name="workflow_steps")
    op.drop_index("ix_workflow_steps_run_id", table_name="workflow_steps")
    op.drop_table("workflow_steps")
    op.drop_index("ix_workflow_runs_started_at", table_name="workflow_runs")
    op.drop_index("ix_workflow_runs_status", table_name="workflow_runs")
    op.drop_table("workflow_runs")
