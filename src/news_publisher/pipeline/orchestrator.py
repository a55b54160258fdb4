"""Run and per-article state machine of the publishing pipeline."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextlib import closing
from dataclasses import dataclass, field
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from news_publisher.config import Settings, validate_headlines_date
from news_publisher.errors import PipelineCancelledError, PipelineError, RunStateError
from news_publisher.integrations.base import (
    HeadlineSource,
    PublishingTargetFactory,
    SeoRewriter,
)
from news_publisher.models import (
    RUN_LEVEL_ARTICLE_INDEX,
    ArticleOutcome,
    ArticleResult,
    CategoryInfo,
    EditorPrompts,
    HeadlineItem,
    PipelineOptions,
    PipelineRunResult,
    ProcessedImage,
    RssFeedItem,
    RunStatus,
    RunUpdate,
    SiteArticle,
    StepKind,
)
from news_publisher.pipeline.cancellation import CancellationCheckpoint
from news_publisher.pipeline.prompts import (
    resolve_category_map,
    resolve_pivot_catalogs,
    resolve_prompts,
)
from news_publisher.pipeline.recorder import StepRecorder
from news_publisher.pipeline.steps.fetch_headlines import fetch_headlines
from news_publisher.pipeline.steps.generate_article import ArticleDrafter
from news_publisher.pipeline.steps.process_image import ImageProcessor
from news_publisher.pipeline.steps.publish_wordpress import publish_to_wordpress
from news_publisher.pipeline.steps.save_ai_article import save_ai_article
from news_publisher.pipeline.steps.seo_per_site import generate_seo_per_site
from news_publisher.pipeline.steps.upsert_rss_feed import upsert_rss_feed_item
from news_publisher.repository import PipelineRepository
from news_publisher.retry import RetryPolicy, with_retry
from news_publisher.storage.common import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

CANCELLED_MESSAGE = "Cancelled by user"
ERROR_SEPARATOR = "; "


@dataclass(slots=True)
class PipelineCollaborators:
    """External collaborators a run depends on, built once per process."""

    headline_source: HeadlineSource
    drafter: ArticleDrafter
    image_processor: ImageProcessor
    seo_rewriter: SeoRewriter
    publishing_targets: PublishingTargetFactory


@dataclass(slots=True)
class _EditorContext:
    prompts: EditorPrompts
    categories: dict[str, CategoryInfo]
    pivot_catalogs: dict[str, Any]


@dataclass(slots=True)
class _RunProgress:
    articles_processed: int = 0
    articles_failed: int = 0
    errors: list[str] = field(default_factory=list)


class PipelineOrchestrator:
    """Sequences headline fetch and the per-article steps for one run at a time."""

    def __init__(
        self,
        *,
        settings: Settings,
        repository: PipelineRepository,
        collaborators: PipelineCollaborators,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.collaborators = collaborators
        self._sleep = sleep
        self._policy = RetryPolicy.from_settings(settings.retry)

    def run_pipeline(self, options: PipelineOptions) -> PipelineRunResult:
        """Create the run record and execute it in the calling thread."""

        run_id = self.repository.create_run(options.trigger)
        return self.execute(run_id, options)

    def execute(self, run_id: str, options: PipelineOptions) -> PipelineRunResult:
        """Execute an already created run and finalize its record."""

        progress = _RunProgress()
        recorder = StepRecorder(self.repository, run_id)
        checkpoint = CancellationCheckpoint(self.repository, run_id)
        logger.info(
            "Pipeline run started (run_id=%s trigger=%s articles=%d date=%s).",
            run_id,
            options.trigger.value,
            options.article_count,
            options.headlines_date,
        )

        try:
            date_selector = validate_headlines_date(options.headlines_date)
            checkpoint(StepKind.FETCH_HEADLINES.value)
            with recorder.step(
                RUN_LEVEL_ARTICLE_INDEX,
                StepKind.FETCH_HEADLINES,
                input_summary=f"count={options.article_count} date={date_selector}",
            ) as step:
                headlines = self._retry(
                    StepKind.FETCH_HEADLINES.value,
                    lambda: fetch_headlines(
                        self.collaborators.headline_source,
                        options.article_count,
                        date_selector,
                    ),
                )
                step.complete(f"Fetched {len(headlines)} headlines")
            logger.info("Headlines fetched (run_id=%s count=%d).", run_id, len(headlines))

            editor = self._load_editor_context()
            for index, headline in enumerate(headlines):
                checkpoint(f"article {index}")
                self._run_article(recorder, checkpoint, progress, index, headline, editor)

            status = (
                RunStatus.FAILED
                if progress.articles_failed == len(headlines)
                else RunStatus.COMPLETED
            )
            error = ERROR_SEPARATOR.join(progress.errors) or None
        except PipelineCancelledError:
            status = RunStatus.CANCELLED
            error = ERROR_SEPARATOR.join([*progress.errors, CANCELLED_MESSAGE])
            logger.info(
                "Pipeline run cancelled (run_id=%s articles_processed=%d).",
                run_id,
                progress.articles_processed,
            )
        except Exception as exc:
            logger.exception("Pipeline run failed (run_id=%s).", run_id)
            progress.errors.append(str(exc) or repr(exc))
            status = RunStatus.FAILED
            error = ERROR_SEPARATOR.join(progress.errors)

        self._finalize(run_id, status, progress.articles_processed, error)
        logger.info(
            "Pipeline run finished (run_id=%s status=%s articles_processed=%d errors=%d).",
            run_id,
            status.value,
            progress.articles_processed,
            len(progress.errors),
        )
        return PipelineRunResult(
            run_id=run_id,
            status=status,
            articles_processed=progress.articles_processed,
            errors=list(progress.errors),
        )

    def _run_article(  # noqa: PLR0913
        self,
        recorder: StepRecorder,
        checkpoint: CancellationCheckpoint,
        progress: _RunProgress,
        index: int,
        headline: HeadlineItem,
        editor: _EditorContext,
    ) -> None:
        try:
            outcome = self._process_article(recorder, checkpoint, progress, index, headline, editor)
        except PipelineCancelledError:
            raise
        except Exception as exc:
            progress.articles_failed += 1
            progress.errors.append(f"Article {index} ({headline.title}): {exc}")
            logger.error(  # noqa: TRY400
                "Article failed (run_id=%s article_index=%d): %s",
                recorder.run_id,
                index,
                exc,
            )
            return

        if outcome is ArticleOutcome.PUBLISHED:
            progress.articles_processed += 1
            logger.info("Article processed (run_id=%s article_index=%d).", recorder.run_id, index)
        else:
            logger.info(
                "Article skipped as duplicate (run_id=%s article_index=%d).",
                recorder.run_id,
                index,
            )

    def _process_article(  # noqa: PLR0913
        self,
        recorder: StepRecorder,
        checkpoint: CancellationCheckpoint,
        progress: _RunProgress,
        index: int,
        headline: HeadlineItem,
        editor: _EditorContext,
    ) -> ArticleOutcome:
        checkpoint(f"article {index} {StepKind.UPSERT_RSS_FEED.value}")
        with recorder.step(index, StepKind.UPSERT_RSS_FEED, input_summary=headline.title) as step:
            upsert = self._retry(
                StepKind.UPSERT_RSS_FEED.value,
                lambda: upsert_rss_feed_item(self.repository, headline),
            )
            if upsert.already_existed:
                step.skip("Already exists, marked should_draft_article")
                return ArticleOutcome.DUPLICATE
            step.complete(f"Created RSS feed item: {upsert.item.id}")
        item = upsert.item

        checkpoint(f"article {index} {StepKind.GENERATE_ARTICLE.value}")
        with recorder.step(index, StepKind.GENERATE_ARTICLE, input_summary=item.title) as step:
            article = self._retry(
                StepKind.GENERATE_ARTICLE.value,
                lambda: self.collaborators.drafter.draft(
                    item,
                    prompts=editor.prompts,
                    categories=editor.categories,
                ),
            )
            step.complete(f"Category: {article.category}, headline: {article.headline}")

        checkpoint(f"article {index} {StepKind.PROCESS_IMAGE.value}")
        with recorder.step(index, StepKind.PROCESS_IMAGE, input_summary=item.link) as step:
            image = self._retry(
                StepKind.PROCESS_IMAGE.value,
                lambda: self.collaborators.image_processor.process(
                    item,
                    article,
                    prompts=editor.prompts,
                    pivot_catalogs=editor.pivot_catalogs,
                ),
                self._policy.with_attempts(self.settings.retry.image_max_attempts),
            )
            step.complete(
                f"Image: {image.file_name} (source={image.image_source.value} "
                f"url={image.source_image_url})",
            )

        checkpoint(f"article {index} {StepKind.SEO_PER_SITE.value}")
        with recorder.step(index, StepKind.SEO_PER_SITE) as step:
            sites = self.repository.list_active_sites()
            site_articles = self._retry(
                StepKind.SEO_PER_SITE.value,
                lambda: generate_seo_per_site(self.collaborators.seo_rewriter, article, sites),
            )
            step.complete(f"Generated SEO for {len(site_articles)} sites")

        if not site_articles:
            logger.warning(
                "No active sites; article drafted but not published (run_id=%s article_index=%d).",
                recorder.run_id,
                index,
            )
            return ArticleOutcome.PUBLISHED

        site_errors: list[str] = []
        for site_article in site_articles:
            checkpoint(f"article {index} publish {site_article.site.slug}")
            try:
                self._publish_site(recorder, index, item, article, image, site_article)
            except PipelineCancelledError:
                raise
            except Exception as exc:
                site_errors.append(f"{site_article.site.slug}: {exc}")
                logger.error(  # noqa: TRY400
                    "Publish failed (run_id=%s article_index=%d site=%s): %s",
                    recorder.run_id,
                    index,
                    site_article.site.slug,
                    exc,
                )

        if len(site_errors) == len(site_articles):
            raise PipelineError(
                "Publishing failed on every site: " + ERROR_SEPARATOR.join(site_errors),
            )
        progress.errors.extend(
            f"Article {index} ({headline.title}) publish {message}" for message in site_errors
        )
        return ArticleOutcome.PUBLISHED

    def _publish_site(  # noqa: PLR0913
        self,
        recorder: StepRecorder,
        index: int,
        item: RssFeedItem,
        article: ArticleResult,
        image: ProcessedImage,
        site_article: SiteArticle,
    ) -> None:
        site = site_article.site
        with recorder.step(
            index,
            StepKind.PUBLISH,
            site_slug=site.slug,
            input_summary=site_article.metatitle,
        ) as step:
            with closing(self.collaborators.publishing_targets(site)) as target:
                result = publish_to_wordpress(
                    target,
                    site_article,
                    article,
                    image,
                    post_status=self.settings.wordpress.post_status,
                    push_seo_meta=self.settings.wordpress.push_seo_meta,
                    retry_policy=self._policy.with_attempts(
                        self.settings.retry.publish_max_attempts,
                    ),
                    sleep=self._sleep,
                )
            save_ai_article(self.repository, item, site_article, article, result, image)
            step.complete(f"Published post {result.post_id} to {site.slug}")

    def _load_editor_context(self) -> _EditorContext:
        config = self.repository.get_editor_config()
        return _EditorContext(
            prompts=resolve_prompts(config),
            categories=resolve_category_map(config),
            pivot_catalogs=resolve_pivot_catalogs(config),
        )

    def _retry(
        self,
        label: str,
        operation: Callable[[], T],
        policy: RetryPolicy | None = None,
    ) -> T:
        return with_retry(label, operation, policy or self._policy, sleep=self._sleep)

    def _finalize(
        self,
        run_id: str,
        status: RunStatus,
        articles_processed: int,
        error: str | None,
    ) -> None:
        try:
            self.repository.update_run(
                run_id,
                RunUpdate(
                    status=status,
                    finished_at=utc_now(),
                    article_count=articles_processed,
                    error=error,
                ),
            )
        except (SQLAlchemyError, RunStateError):
            logger.exception("Failed to finalize run (run_id=%s status=%s).", run_id, status.value)
