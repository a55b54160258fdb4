"""Controllers for publishing CLI commands."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, fields
from datetime import datetime
from pathlib import Path
from typing import Any

from news_publisher.config import Settings, clamp_headline_count, validate_headlines_date
from news_publisher.models import (
    RUN_LEVEL_ARTICLE_INDEX,
    EditorPrompts,
    PipelineRunResult,
    RunDetails,
    RunStatus,
    RunTrigger,
    RunView,
    StepView,
    category_map_from_payload,
)
from news_publisher.pipeline.orchestrator import PipelineCollaborators
from news_publisher.pipeline.prompts import resolve_category_map
from news_publisher.pipeline.service import CancelOutcome, PipelineService, build_collaborators
from news_publisher.repository import PipelineRepository

PROMPT_NAMES = tuple(item.name for item in fields(EditorPrompts))


@dataclass(slots=True)
class PipelineRunCommand:
    """CLI inputs for foreground and background pipeline runs."""

    db_path: Path | None
    article_count: int | None
    date_selector: str | None
    trigger: RunTrigger = RunTrigger.MANUAL


@dataclass(slots=True)
class PipelineStopCommand:
    """CLI inputs for cancellation command."""

    db_path: Path | None
    run_id: str | None


@dataclass(slots=True)
class PipelineStatusCommand:
    """CLI inputs for run inspection command."""

    db_path: Path | None
    run_id: str | None
    limit: int


@dataclass(slots=True)
class ArticlesListCommand:
    """CLI inputs for published-article listing."""

    db_path: Path | None
    limit: int


@dataclass(slots=True)
class SiteAddCommand:
    """CLI inputs for registering or updating a site."""

    db_path: Path | None
    slug: str
    name: str
    wp_base_url: str
    active: bool
    category_map_file: Path | None


@dataclass(slots=True)
class SiteListCommand:
    """CLI inputs for site listing."""

    db_path: Path | None
    active_only: bool


@dataclass(slots=True)
class ConfigShowCommand:
    """CLI inputs for editor config inspection."""

    db_path: Path | None


@dataclass(slots=True)
class ConfigSetCommand:
    """CLI inputs for editor config update."""

    db_path: Path | None
    article_count: int | None
    date_selector: str | None
    category_map_file: Path | None
    pivot_catalogs_file: Path | None
    prompt_files: tuple[tuple[str, Path], ...] = ()


@dataclass(slots=True)
class CommandResult:
    """Command report to render in CLI."""

    lines: list[str]
    success: bool


class PipelineCliController:
    """Coordinates pipeline, site registry and editor config commands."""

    def __init__(
        self,
        collaborators_factory: Callable[[Settings], PipelineCollaborators] = build_collaborators,
    ) -> None:
        self._collaborators_factory = collaborators_factory

    def run(self, command: PipelineRunCommand) -> CommandResult:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings, self._collaborators_factory, recover_stale=True) as service:
            result = service.run(
                trigger=command.trigger,
                article_count=command.article_count,
                date_selector=command.date_selector,
            )
        return CommandResult(
            lines=_run_result_lines(result),
            success=result.status is RunStatus.COMPLETED,
        )

    def start(
        self,
        command: PipelineRunCommand,
        on_accepted: Callable[[str], None],
    ) -> CommandResult:
        """Start a background run, report its id at once, then wait for it to finish."""

        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings, self._collaborators_factory, recover_stale=True) as service:
            run_id = service.start_run(
                trigger=command.trigger,
                article_count=command.article_count,
                date_selector=command.date_selector,
            )
            on_accepted(run_id)
            service.wait(run_id)
            details = service.get_run(run_id)

        if details is None:
            return CommandResult(lines=[f"Run not found after start: {run_id}"], success=False)
        return CommandResult(
            lines=[_run_line(details.run)],
            success=details.run.status is RunStatus.COMPLETED,
        )

    def stop(self, command: PipelineStopCommand) -> CommandResult:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings, self._collaborators_factory) as service:
            result = service.request_cancel(command.run_id)

        if result.outcome is CancelOutcome.NOT_FOUND:
            target = f"run_id={command.run_id}" if command.run_id else "any run"
            return CommandResult(
                lines=[f"No running pipeline run matches {target}."],
                success=False,
            )
        return CommandResult(
            lines=[f"Cancellation requested: run_id={result.run_id}"],
            success=True,
        )

    def status(self, command: PipelineStatusCommand) -> CommandResult:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings, self._collaborators_factory) as service:
            if command.run_id:
                details = service.get_run(command.run_id)
                if details is None:
                    return CommandResult(
                        lines=[f"Run not found: {command.run_id}"],
                        success=False,
                    )
                return CommandResult(lines=_run_details_lines(details), success=True)
            runs = service.list_runs(limit=command.limit)

        if not runs:
            return CommandResult(lines=["No pipeline runs recorded."], success=True)
        lines = [f"Latest runs ({len(runs)}):"]
        lines.extend(f"  {_run_line(run)}" for run in runs)
        return CommandResult(lines=lines, success=True)

    def list_articles(self, command: ArticlesListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _service(settings, self._collaborators_factory) as service:
            articles = service.list_articles(limit=command.limit)
            sites = {site.id: site.slug for site in service.repository.list_sites()}

        if not articles:
            return ["No published articles recorded."]
        lines = [f"Published articles ({len(articles)}):"]
        for article in articles:
            lines.append(
                f"  {_format_ts(article.created_at)} site={sites.get(article.site_id, article.site_id)} "
                f"post_id={article.wp_post_id or '-'} media_id={article.wp_media_id or '-'} "
                f"image_source={article.image_source or '-'} title={article.title}",
            )
        return lines

    def add_site(self, command: SiteAddCommand) -> list[str]:
        slug = command.slug.strip()
        if not slug:
            raise ValueError("Site slug must not be empty.")
        category_map = None
        if command.category_map_file is not None:
            category_map = category_map_from_payload(_read_json(command.category_map_file))

        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            site = repository.upsert_site(
                slug=slug,
                name=command.name,
                wp_base_url=command.wp_base_url,
                active=command.active,
                category_map=category_map,
            )
        has_credential = settings.wordpress.credential_for(site.slug) is not None
        return [
            f"Site saved: slug={site.slug} name={site.name} url={site.wp_base_url} "
            f"active={'yes' if site.active else 'no'} categories={len(site.category_map)} "
            f"credential={'yes' if has_credential else 'missing'}",
        ]

    def list_sites(self, command: SiteListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            sites = repository.list_sites(active_only=command.active_only)

        if not sites:
            return ["No sites registered."]
        lines = [f"Sites ({len(sites)}):"]
        for site in sites:
            has_credential = settings.wordpress.credential_for(site.slug) is not None
            lines.append(
                f"  {site.slug} name={site.name} url={site.wp_base_url} "
                f"active={'yes' if site.active else 'no'} categories={len(site.category_map)} "
                f"credential={'yes' if has_credential else 'missing'}",
            )
        return lines

    def show_config(self, command: ConfigShowCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            config = repository.get_editor_config()

        customized = [name for name in PROMPT_NAMES if getattr(config.prompts, name)]
        lines = [
            "Editor config:",
            f"  headlines_to_fetch={config.headlines_to_fetch or '-'} "
            f"(default {settings.headlines.default_count})",
            f"  headlines_date={config.headlines_date or '-'} "
            f"(default {settings.headlines.default_date})",
            f"  custom_prompts={', '.join(customized) if customized else 'none'}",
            f"  pivot_catalogs={'custom' if config.pivot_catalogs else 'built-in'}",
            f"  categories ({'custom' if config.category_map else 'built-in'}):",
        ]
        for name, info in resolve_category_map(config).items():
            lines.append(f"    {name} id={info.id} color={info.color}")
        return lines

    def set_config(self, command: ConfigSetCommand) -> list[str]:
        updates: dict[str, Any] = {}
        if command.article_count is not None:
            updates["headlines_to_fetch"] = clamp_headline_count(command.article_count)
        if command.date_selector is not None:
            updates["headlines_date"] = validate_headlines_date(command.date_selector)
        if command.category_map_file is not None:
            updates["category_map"] = category_map_from_payload(
                _read_json(command.category_map_file),
            )
        if command.pivot_catalogs_file is not None:
            catalogs = _read_json(command.pivot_catalogs_file)
            if not isinstance(catalogs, dict):
                raise ValueError("Pivot catalogs must be a JSON object.")
            updates["pivot_catalogs"] = catalogs

        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            if command.prompt_files:
                prompts = repository.get_editor_config().prompts
                for name, path in command.prompt_files:
                    if name not in PROMPT_NAMES:
                        raise ValueError(
                            f"Unknown prompt {name!r}; expected one of: {', '.join(PROMPT_NAMES)}",
                        )
                    setattr(prompts, name, path.read_text(encoding="utf-8").strip() or None)
                updates["prompts"] = prompts
            if not updates:
                return ["Nothing to update."]
            repository.save_editor_config(**updates)

        return [f"Editor config updated: {', '.join(sorted(updates))}"]


@contextmanager
def _repository(settings: Settings) -> Iterator[PipelineRepository]:
    repository = PipelineRepository(settings.db_path)
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()


@contextmanager
def _service(
    settings: Settings,
    collaborators_factory: Callable[[Settings], PipelineCollaborators],
    *,
    recover_stale: bool = False,
) -> Iterator[PipelineService]:
    with _repository(settings) as repository:
        service = PipelineService(
            settings=settings,
            repository=repository,
            collaborators_factory=collaborators_factory,
        )
        if recover_stale:
            service.recover_stale_runs()
        yield service


def _run_result_lines(result: PipelineRunResult) -> list[str]:
    lines = [
        "Pipeline run finished: "
        f"run_id={result.run_id} status={result.status.value} "
        f"articles_processed={result.articles_processed} errors={len(result.errors)}",
    ]
    lines.extend(f"  error: {error}" for error in result.errors)
    return lines


def _run_line(run: RunView) -> str:
    return (
        f"run_id={run.run_id} status={run.status.value} trigger={run.trigger.value} "
        f"started_at={_format_ts(run.started_at)} finished_at={_format_ts(run.finished_at)} "
        f"articles={run.article_count}"
        + (" cancel_requested=yes" if run.cancel_requested_at else "")
        + (f" error={run.error}" if run.error else "")
    )


def _run_details_lines(details: RunDetails) -> list[str]:
    lines = [f"Run: {_run_line(details.run)}", f"Steps ({len(details.steps)}):"]
    lines.extend(f"  {_step_line(step)}" for step in details.steps)
    return lines


def _step_line(step: StepView) -> str:
    scope = "run" if step.article_index == RUN_LEVEL_ARTICLE_INDEX else f"#{step.article_index}"
    line = (
        f"[{scope}] {step.step_name} stage={step.display_stage} status={step.status.value}"
    )
    if step.output_summary:
        line += f" output={step.output_summary}"
    if step.error:
        line += f" error={step.error}"
    return line


def _format_ts(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise ValueError(f"{path} is not valid JSON: {error}") from error
