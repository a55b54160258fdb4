from __future__ import annotations

import allure
import pytest

from news_publisher.config import Settings
from news_publisher.models import RunStatus, RunTrigger, StepKind
from news_publisher.pipeline.service import CancelOutcome, PipelineService
from news_publisher.repository import PipelineRepository

from fakes import FakeHeadlineSource, collaborators, headline, no_sleep

pytestmark = [
    allure.epic("Publishing Pipeline"),
    allure.feature("Run Control Operations"),
]


def _service(settings: Settings, repository: PipelineRepository, **overrides) -> PipelineService:
    fakes = collaborators(**overrides)
    return PipelineService(
        settings=settings,
        repository=repository,
        collaborators_factory=lambda _settings: fakes,
        sleep=no_sleep,
    )


def test_start_run_returns_id_and_finishes_in_background(settings, repository) -> None:
    repository.upsert_site(slug="alpha", name="Alpha", wp_base_url="https://alpha.example")
    service = _service(settings, repository, headlines=[headline(0)])

    run_id = service.start_run(trigger=RunTrigger.CRON, article_count=1, date_selector="today")

    assert service.wait(run_id, timeout=30)
    details = service.get_run(run_id)
    assert details is not None
    assert details.run.status is RunStatus.COMPLETED
    assert details.run.trigger is RunTrigger.CRON
    assert details.run.article_count == 1
    assert details.steps[0].step_kind is StepKind.FETCH_HEADLINES
    assert service.list_steps(run_id) == details.steps
    assert [run.run_id for run in service.list_runs(limit=5)] == [run_id]
    assert len(service.list_articles()) == 1


def test_wait_for_unknown_run_returns_immediately(settings, repository) -> None:
    assert _service(settings, repository).wait("unknown") is True


def test_missing_credentials_prevent_run_creation(settings, repository) -> None:
    def failing_factory(_settings: Settings):
        raise ValueError("Missing required environment variables: OPENAI_API_KEY")

    service = PipelineService(
        settings=settings,
        repository=repository,
        collaborators_factory=failing_factory,
    )

    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        service.start_run(article_count=1, date_selector="today")

    assert repository.list_runs() == []


def test_request_cancel_reports_not_found(settings, repository) -> None:
    service = _service(settings, repository)

    result = service.request_cancel()

    assert result.outcome is CancelOutcome.NOT_FOUND
    assert result.run_id is None
    assert service.request_cancel("missing").outcome is CancelOutcome.NOT_FOUND


def test_request_cancel_flags_latest_running_run(settings, repository) -> None:
    service = _service(settings, repository)
    run_id = repository.create_run(RunTrigger.MANUAL)

    result = service.request_cancel()

    assert result.outcome is CancelOutcome.OK
    assert result.run_id == run_id
    details = service.get_run(run_id)
    assert details is not None
    assert details.run.cancel_requested_at is not None


def test_get_run_unknown_returns_none(settings, repository) -> None:
    assert _service(settings, repository).get_run("missing") is None


def test_resolve_options_prefers_arguments_then_editor_config_then_settings(
    settings,
    repository,
) -> None:
    service = _service(settings, repository)

    defaults = service.resolve_options()
    assert (defaults.article_count, defaults.headlines_date) == (6, "today")

    repository.save_editor_config(headlines_to_fetch=25, headlines_date="yesterday")
    configured = service.resolve_options(trigger=RunTrigger.CRON)
    assert configured.trigger is RunTrigger.CRON
    assert (configured.article_count, configured.headlines_date) == (20, "yesterday")

    explicit = service.resolve_options(article_count=2, date_selector="10012026-10022026")
    assert (explicit.article_count, explicit.headlines_date) == (2, "10012026-10022026")


def test_resolve_options_rejects_bad_date(settings, repository) -> None:
    with pytest.raises(ValueError, match="Invalid headlines date selector"):
        _service(settings, repository).resolve_options(date_selector="soon")


def test_foreground_run_reports_result(settings, repository) -> None:
    source = FakeHeadlineSource([headline(0)], failures=5)
    service = _service(settings, repository, headline_source=source)

    result = service.run(article_count=1, date_selector="today")

    assert result.status is RunStatus.FAILED
    assert service.list_runs()[0].run_id == result.run_id
