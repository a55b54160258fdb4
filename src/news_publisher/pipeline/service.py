"""Operations exposed to the CLI: start, cancel and inspect pipeline runs."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from news_publisher.config import Settings, clamp_headline_count, validate_headlines_date
from news_publisher.http.fetcher import HttpFetcher
from news_publisher.integrations.anthropic_writer import AnthropicArticleWriter
from news_publisher.integrations.google_cse import GoogleImageSearch
from news_publisher.integrations.image_processing import WebpTransformer
from news_publisher.integrations.jina import JinaReferenceSearch
from news_publisher.integrations.openai_client import (
    OpenAiImageEditor,
    OpenAiImageSelector,
    OpenAiSeoRewriter,
    build_openai_client,
)
from news_publisher.integrations.stocknews import StockNewsHeadlineSource
from news_publisher.integrations.wordpress import WordPressClientFactory
from news_publisher.models import (
    AiArticleView,
    PipelineOptions,
    PipelineRunResult,
    RunDetails,
    RunTrigger,
    RunView,
    StepView,
)
from news_publisher.pipeline.orchestrator import PipelineCollaborators, PipelineOrchestrator
from news_publisher.pipeline.steps.generate_article import ArticleDrafter
from news_publisher.pipeline.steps.process_image import ImageProcessor
from news_publisher.repository import PipelineRepository

logger = logging.getLogger(__name__)


class CancelOutcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"


@dataclass(slots=True)
class CancelResult:
    """Result of a cancellation request."""

    outcome: CancelOutcome
    run_id: str | None = None


def build_collaborators(settings: Settings) -> PipelineCollaborators:
    """Construct the production collaborators once per process."""

    settings.validate_for_pipeline()
    openai_client = build_openai_client(settings.llm)
    return PipelineCollaborators(
        headline_source=StockNewsHeadlineSource(settings.headlines),
        drafter=ArticleDrafter(
            search=JinaReferenceSearch(settings.search),
            writer=AnthropicArticleWriter(settings.llm),
            max_reference_chars=settings.llm.max_reference_chars,
        ),
        image_processor=ImageProcessor(
            fetcher=HttpFetcher(timeout_seconds=settings.image.download_timeout_seconds),
            image_search=GoogleImageSearch(settings.search),
            selector=OpenAiImageSelector(openai_client, model=settings.llm.vision_model),
            editor=OpenAiImageEditor(
                openai_client,
                llm_settings=settings.llm,
                image_settings=settings.image,
            ),
            transformer=WebpTransformer(settings.image),
            settings=settings.image,
            max_candidates=settings.search.image_candidates,
        ),
        seo_rewriter=OpenAiSeoRewriter(openai_client, model=settings.llm.vision_model),
        publishing_targets=WordPressClientFactory(settings.wordpress),
    )


class PipelineService:
    """Facade over the repository and orchestrator.

    Collaborators are built lazily so read-only operations work without API keys.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        repository: PipelineRepository,
        collaborators_factory: Callable[[Settings], PipelineCollaborators] = build_collaborators,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self._collaborators_factory = collaborators_factory
        self._sleep = sleep
        self._orchestrator: PipelineOrchestrator | None = None
        self._threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    def recover_stale_runs(self) -> list[str]:
        return self.repository.recover_stale_runs(
            stale_after=timedelta(seconds=self.settings.run.stale_after_seconds),
        )

    def resolve_options(
        self,
        *,
        trigger: RunTrigger = RunTrigger.MANUAL,
        article_count: int | None = None,
        date_selector: str | None = None,
    ) -> PipelineOptions:
        """Fill omitted inputs from stored editor defaults, then from settings."""

        if article_count is None or not (date_selector or "").strip():
            config = self.repository.get_editor_config()
            if article_count is None:
                article_count = config.headlines_to_fetch or self.settings.headlines.default_count
            if not (date_selector or "").strip():
                date_selector = config.headlines_date or self.settings.headlines.default_date
        return PipelineOptions(
            trigger=trigger,
            article_count=clamp_headline_count(article_count),
            headlines_date=validate_headlines_date(date_selector or ""),
        )

    def run(
        self,
        *,
        trigger: RunTrigger = RunTrigger.MANUAL,
        article_count: int | None = None,
        date_selector: str | None = None,
    ) -> PipelineRunResult:
        """Run the pipeline in the calling thread."""

        options = self.resolve_options(
            trigger=trigger,
            article_count=article_count,
            date_selector=date_selector,
        )
        return self._get_orchestrator().run_pipeline(options)

    def start_run(
        self,
        *,
        trigger: RunTrigger = RunTrigger.MANUAL,
        article_count: int | None = None,
        date_selector: str | None = None,
    ) -> str:
        """Create the run record and return its id; the run executes in a worker thread."""

        options = self.resolve_options(
            trigger=trigger,
            article_count=article_count,
            date_selector=date_selector,
        )
        orchestrator = self._get_orchestrator()
        run_id = self.repository.create_run(options.trigger)
        thread = threading.Thread(
            target=self._execute_in_background,
            args=(orchestrator, run_id, options),
            name=f"pipeline-run-{run_id[:8]}",
        )
        with self._lock:
            self._threads[run_id] = thread
        thread.start()
        logger.info("Pipeline run accepted (run_id=%s).", run_id)
        return run_id

    def wait(self, run_id: str, timeout: float | None = None) -> bool:
        """Block until a run started by this service finishes; ``False`` on timeout."""

        with self._lock:
            thread = self._threads.get(run_id)
        if thread is None:
            return True
        thread.join(timeout=timeout)
        return not thread.is_alive()

    def request_cancel(self, run_id: str | None = None) -> CancelResult:
        cancelled = self.repository.request_cancel(run_id)
        if cancelled is None:
            return CancelResult(outcome=CancelOutcome.NOT_FOUND, run_id=run_id)
        logger.info("Cancellation requested (run_id=%s).", cancelled)
        return CancelResult(outcome=CancelOutcome.OK, run_id=cancelled)

    def get_run(self, run_id: str) -> RunDetails | None:
        run = self.repository.get_run(run_id)
        if run is None:
            return None
        return RunDetails(run=run, steps=self.repository.list_steps(run_id))

    def list_runs(self, limit: int = 20) -> list[RunView]:
        return self.repository.list_runs(limit=limit)

    def list_steps(self, run_id: str) -> list[StepView]:
        return self.repository.list_steps(run_id)

    def list_articles(self, limit: int = 20) -> list[AiArticleView]:
        return self.repository.list_ai_articles(limit=limit)

    def _get_orchestrator(self) -> PipelineOrchestrator:
        with self._lock:
            if self._orchestrator is None:
                self._orchestrator = PipelineOrchestrator(
                    settings=self.settings,
                    repository=self.repository,
                    collaborators=self._collaborators_factory(self.settings),
                    sleep=self._sleep,
                )
            return self._orchestrator

    def _execute_in_background(
        self,
        orchestrator: PipelineOrchestrator,
        run_id: str,
        options: PipelineOptions,
    ) -> None:
        try:
            orchestrator.execute(run_id, options)
        except Exception:
            logger.exception("Background pipeline run crashed (run_id=%s).", run_id)
        finally:
            with self._lock:
                self._threads.pop(run_id, None)
