"""SQLModel-backed record store for runs, steps and publishing artifacts."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlmodel import Session, col, select

from news_publisher.errors import RunStateError
from news_publisher.models import (
    AiArticleView,
    CategoryInfo,
    EditorConfig,
    EditorPrompts,
    HeadlineItem,
    ProcessedImage,
    PublishResult,
    RssFeedItem,
    RunStatus,
    RunTrigger,
    RunUpdate,
    RunView,
    Site,
    StepKind,
    StepStatus,
    StepUpdate,
    StepView,
    category_map_from_payload,
    category_map_to_payload,
)
from news_publisher.storage.alembic_runner import upgrade_head
from news_publisher.storage.common import (
    build_sqlite_engine,
    optional_utc_aware,
    to_utc_aware,
    utc_now,
)
from news_publisher.storage.sqlmodel_models import (
    AiArticle,
    PipelineConfigRow,
    PublishingSite,
    RssFeed,
    WorkflowRun,
    WorkflowStep,
)

logger = logging.getLogger(__name__)

DEFAULT_STALE_RUN_AFTER = timedelta(hours=1)
STALE_RUN_ERROR = "Run interrupted: process stopped before the run finished."

_UNSET: Any = object()


class PipelineRepository:
    """Facade that persists pipeline entities using SQLModel and Alembic."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    # Runs

    def create_run(self, trigger: RunTrigger) -> str:
        run_id = str(uuid4())
        now = utc_now()
        with Session(self.engine) as session:
            session.add(
                WorkflowRun(
                    run_id=run_id,
                    status=RunStatus.RUNNING.value,
                    trigger=trigger.value,
                    started_at=now,
                    heartbeat_at=now,
                ),
            )
            session.commit()
        return run_id

    def update_run(self, run_id: str, update: RunUpdate) -> None:
        """Apply a partial update; status may only move forward out of ``running``."""

        with Session(self.engine) as session:
            run = session.get(WorkflowRun, run_id)
            if run is None:
                raise RunStateError(f"Run not found: {run_id}")

            if update.status is not None:
                current = RunStatus(run.status)
                if current.is_terminal and update.status is not current:
                    raise RunStateError(
                        f"Run {run_id} is already {current.value}; "
                        f"cannot move to {update.status.value}.",
                    )
                run.status = update.status.value
            if update.finished_at is not None:
                run.finished_at = update.finished_at
                run.heartbeat_at = update.finished_at
            if update.article_count is not None:
                run.article_count = update.article_count
            if update.error is not None:
                run.error = update.error
            session.add(run)
            session.commit()

    def touch_run(self, run_id: str) -> None:
        with Session(self.engine) as session:
            run = session.get(WorkflowRun, run_id)
            if run is None or run.status != RunStatus.RUNNING.value:
                return
            run.heartbeat_at = utc_now()
            session.add(run)
            session.commit()

    def get_run(self, run_id: str) -> RunView | None:
        with Session(self.engine) as session:
            run = session.get(WorkflowRun, run_id)
            return _run_view(run) if run is not None else None

    def list_runs(self, *, limit: int = 20) -> list[RunView]:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        with Session(self.engine) as session:
            rows = session.exec(
                select(WorkflowRun)
                .order_by(col(WorkflowRun.started_at).desc(), col(WorkflowRun.run_id))
                .limit(limit),
            ).all()
            return [_run_view(row) for row in rows]

    def latest_running_run_id(self) -> str | None:
        with Session(self.engine) as session:
            return session.exec(
                select(WorkflowRun.run_id)
                .where(WorkflowRun.status == RunStatus.RUNNING.value)
                .order_by(col(WorkflowRun.started_at).desc())
                .limit(1),
            ).first()

    def request_cancel(self, run_id: str | None = None) -> str | None:
        """Flag a running run for cancellation and return its id, or ``None`` if none matches."""

        target_id = run_id or self.latest_running_run_id()
        if target_id is None:
            return None
        with Session(self.engine) as session:
            run = session.exec(
                select(WorkflowRun).where(
                    WorkflowRun.run_id == target_id,
                    WorkflowRun.status == RunStatus.RUNNING.value,
                ),
            ).one_or_none()
            if run is None:
                return None
            if run.cancel_requested_at is None:
                run.cancel_requested_at = utc_now()
                session.add(run)
                session.commit()
            return run.run_id

    def is_cancel_requested(self, run_id: str) -> bool:
        with Session(self.engine) as session:
            run = session.get(WorkflowRun, run_id)
            if run is None:
                raise RunStateError(f"Run not found: {run_id}")
            return run.cancel_requested_at is not None

    def recover_stale_runs(self, *, stale_after: timedelta = DEFAULT_STALE_RUN_AFTER) -> list[str]:
        """Fail ``running`` runs whose heartbeat is older than ``stale_after``.

        The orchestrator touches the heartbeat on every step boundary, so only runs
        whose process died stop refreshing it.
        """

        if stale_after.total_seconds() <= 0:
            raise ValueError("stale_after must be > 0")

        cutoff = utc_now() - stale_after
        recovered: list[str] = []
        with Session(self.engine) as session:
            rows = session.exec(
                select(WorkflowRun).where(WorkflowRun.status == RunStatus.RUNNING.value),
            ).all()
            for run in rows:
                if to_utc_aware(run.heartbeat_at or run.started_at) > cutoff:
                    continue
                run.status = RunStatus.FAILED.value
                run.finished_at = utc_now()
                run.error = f"{run.error}\n{STALE_RUN_ERROR}" if run.error else STALE_RUN_ERROR
                session.add(run)
                recovered.append(run.run_id)
            session.commit()

        for run_id in recovered:
            logger.warning("Recovered stale running pipeline run (run_id=%s).", run_id)
        return recovered

    # Steps

    def log_step(
        self,
        run_id: str,
        article_index: int,
        kind: StepKind,
        *,
        site_slug: str | None = None,
        input_summary: str | None = None,
    ) -> str:
        step_id = str(uuid4())
        with Session(self.engine) as session:
            session.add(
                WorkflowStep(
                    step_id=step_id,
                    run_id=run_id,
                    article_index=article_index,
                    step_name=kind.step_name(site_slug),
                    step_kind=kind.value,
                    status=StepStatus.RUNNING.value,
                    input_summary=input_summary,
                    started_at=utc_now(),
                ),
            )
            session.commit()
        return step_id

    def update_step(self, step_id: str, update: StepUpdate) -> None:
        """Move a running step to its terminal status; terminal steps are left untouched."""

        if not update.status.is_terminal:
            raise ValueError("Step updates must set a terminal status.")
        with Session(self.engine) as session:
            step = session.get(WorkflowStep, step_id)
            if step is None:
                raise RunStateError(f"Step not found: {step_id}")
            if StepStatus(step.status).is_terminal:
                logger.warning(
                    "Ignoring update of finished step (step_id=%s status=%s).",
                    step_id,
                    step.status,
                )
                return
            step.status = update.status.value
            step.output_summary = update.output_summary
            step.error = update.error
            step.finished_at = update.finished_at or utc_now()
            session.add(step)
            session.commit()

    def list_steps(self, run_id: str) -> list[StepView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(WorkflowStep)
                .where(WorkflowStep.run_id == run_id)
                .order_by(
                    col(WorkflowStep.article_index),
                    col(WorkflowStep.started_at),
                    col(WorkflowStep.step_name),
                ),
            ).all()
            return [_step_view(row) for row in rows]

    # Headline history

    def find_rss_item_by_link(self, link: str) -> RssFeedItem | None:
        """Lowest-id row for ``link``; tolerates historical duplicate rows."""

        with Session(self.engine) as session:
            row = session.exec(
                select(RssFeed).where(RssFeed.link == link).order_by(col(RssFeed.id)).limit(1),
            ).first()
            return _rss_item(row) if row is not None else None

    def mark_should_draft(self, item_id: int) -> None:
        with Session(self.engine) as session:
            row = session.get(RssFeed, item_id)
            if row is None:
                raise LookupError(f"RSS feed item not found: {item_id}")
            row.should_draft_article = True
            session.add(row)
            session.commit()

    def insert_rss_item(self, headline: HeadlineItem) -> RssFeedItem:
        with Session(self.engine) as session:
            row = RssFeed(
                title=headline.title,
                link=headline.url,
                pub_date=headline.published_at,
                content=headline.body,
                img_url=headline.image_url,
                should_draft_article=False,
                created_at=utc_now(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _rss_item(row)

    # Sites

    def upsert_site(
        self,
        *,
        slug: str,
        name: str,
        wp_base_url: str,
        active: bool = True,
        category_map: dict[str, CategoryInfo] | None = None,
    ) -> Site:
        with Session(self.engine) as session:
            row = session.exec(
                select(PublishingSite).where(PublishingSite.slug == slug),
            ).one_or_none()
            if row is None:
                row = PublishingSite(
                    site_id=str(uuid4()),
                    slug=slug,
                    name=name,
                    wp_base_url=wp_base_url,
                    created_at=utc_now(),
                )
            row.name = name
            row.wp_base_url = wp_base_url.rstrip("/")
            row.active = active
            if category_map is not None:
                row.category_map_json = json.dumps(category_map_to_payload(category_map))
            session.add(row)
            session.commit()
            session.refresh(row)
            return _site(row)

    def list_sites(self, *, active_only: bool = False) -> list[Site]:
        with Session(self.engine) as session:
            statement = select(PublishingSite)
            if active_only:
                statement = statement.where(col(PublishingSite.active).is_(True))
            rows = session.exec(
                statement.order_by(col(PublishingSite.created_at), col(PublishingSite.slug)),
            ).all()
            return [_site(row) for row in rows]

    def list_active_sites(self) -> list[Site]:
        return self.list_sites(active_only=True)

    # Editor configuration

    def get_editor_config(self) -> EditorConfig:
        with Session(self.engine) as session:
            row = session.exec(
                select(PipelineConfigRow).order_by(col(PipelineConfigRow.id)).limit(1),
            ).first()
            if row is None:
                return EditorConfig()
            prompts_payload = _load_json(row.editor_prompts_json) or {}
            return EditorConfig(
                prompts=EditorPrompts(
                    **{
                        key: value
                        for key, value in prompts_payload.items()
                        if key in EditorPrompts.__dataclass_fields__ and value
                    },
                ),
                category_map=category_map_from_payload(_load_json(row.category_map_json)),
                pivot_catalogs=_load_json(row.pivot_catalogs_json),
                headlines_to_fetch=row.headlines_to_fetch,
                headlines_date=row.headlines_date,
            )

    def save_editor_config(
        self,
        *,
        prompts: EditorPrompts | None = None,
        category_map: dict[str, CategoryInfo] | None = None,
        pivot_catalogs: dict[str, Any] | None = None,
        headlines_to_fetch: int | None = _UNSET,
        headlines_date: str | None = _UNSET,
    ) -> None:
        """Persist the provided fields; omitted fields keep their stored values."""

        with Session(self.engine) as session:
            row = session.exec(
                select(PipelineConfigRow).order_by(col(PipelineConfigRow.id)).limit(1),
            ).first()
            if row is None:
                row = PipelineConfigRow(updated_at=utc_now())
            if prompts is not None:
                row.editor_prompts_json = json.dumps(asdict(prompts))
            if category_map is not None:
                row.category_map_json = json.dumps(category_map_to_payload(category_map))
            if pivot_catalogs is not None:
                row.pivot_catalogs_json = json.dumps(pivot_catalogs)
            if headlines_to_fetch is not _UNSET:
                row.headlines_to_fetch = headlines_to_fetch
            if headlines_date is not _UNSET:
                row.headlines_date = headlines_date
            row.updated_at = utc_now()
            session.add(row)
            session.commit()

    # Published articles

    def insert_ai_article(  # noqa: PLR0913
        self,
        *,
        rss_feed_id: int,
        title: str,
        content: str,
        site: Site,
        publish: PublishResult,
        image: ProcessedImage,
    ) -> str:
        article_id = str(uuid4())
        with Session(self.engine) as session:
            session.add(
                AiArticle(
                    id=article_id,
                    rss_feed_id=rss_feed_id,
                    title=title,
                    content=content,
                    site_id=site.id,
                    wp_post_id=publish.post_id,
                    wp_media_id=publish.media_id,
                    wp_image_url=publish.image_url,
                    image_source=image.image_source.value,
                    source_image_url=image.source_image_url,
                    created_at=utc_now(),
                ),
            )
            session.commit()
        return article_id

    def list_ai_articles(self, *, limit: int = 20) -> list[AiArticleView]:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        with Session(self.engine) as session:
            rows = session.exec(
                select(AiArticle).order_by(col(AiArticle.created_at).desc()).limit(limit),
            ).all()
            return [
                AiArticleView(
                    id=row.id,
                    rss_feed_id=row.rss_feed_id,
                    title=row.title,
                    site_id=row.site_id,
                    wp_post_id=row.wp_post_id,
                    wp_media_id=row.wp_media_id,
                    wp_image_url=row.wp_image_url,
                    image_source=row.image_source,
                    source_image_url=row.source_image_url,
                    created_at=to_utc_aware(row.created_at),
                )
                for row in rows
            ]


def _run_view(row: WorkflowRun) -> RunView:
    return RunView(
        run_id=row.run_id,
        status=RunStatus(row.status),
        trigger=RunTrigger(row.trigger),
        started_at=to_utc_aware(row.started_at),
        finished_at=optional_utc_aware(row.finished_at),
        article_count=row.article_count,
        error=row.error,
        cancel_requested_at=optional_utc_aware(row.cancel_requested_at),
        heartbeat_at=optional_utc_aware(row.heartbeat_at),
    )


def _step_view(row: WorkflowStep) -> StepView:
    return StepView(
        step_id=row.step_id,
        run_id=row.run_id,
        article_index=row.article_index,
        step_name=row.step_name,
        step_kind=StepKind(row.step_kind),
        status=StepStatus(row.status),
        input_summary=row.input_summary,
        output_summary=row.output_summary,
        error=row.error,
        started_at=to_utc_aware(row.started_at),
        finished_at=optional_utc_aware(row.finished_at),
    )


def _rss_item(row: RssFeed) -> RssFeedItem:
    if row.id is None:
        raise RuntimeError("RSS feed row has no id after insert.")
    return RssFeedItem(
        id=row.id,
        title=row.title,
        link=row.link,
        pub_date=row.pub_date,
        content=row.content,
        img_url=row.img_url,
        should_draft_article=row.should_draft_article,
        created_at=to_utc_aware(row.created_at),
    )


def _site(row: PublishingSite) -> Site:
    return Site(
        id=row.site_id,
        name=row.name,
        slug=row.slug,
        wp_base_url=row.wp_base_url,
        active=row.active,
        category_map=category_map_from_payload(_load_json(row.category_map_json)),
    )


def _load_json(raw: str | None) -> Any:
    if not raw:
        return None
    return json.loads(raw)
