from __future__ import annotations

from datetime import timedelta

import allure
import pytest
from sqlmodel import Session

from news_publisher.errors import RunStateError
from news_publisher.models import (
    RUN_LEVEL_ARTICLE_INDEX,
    CategoryInfo,
    EditorPrompts,
    ImageSource,
    ProcessedImage,
    PublishResult,
    RunStatus,
    RunTrigger,
    RunUpdate,
    StepKind,
    StepStatus,
    StepUpdate,
)
from news_publisher.repository import STALE_RUN_ERROR, PipelineRepository
from news_publisher.storage.common import utc_now
from news_publisher.storage.sqlmodel_models import RssFeed, WorkflowRun

from fakes import headline

pytestmark = [
    allure.epic("Publishing Pipeline"),
    allure.feature("Run & Step Records"),
]


def test_create_run_starts_running(repository: PipelineRepository) -> None:
    run_id = repository.create_run(RunTrigger.CRON)

    run = repository.get_run(run_id)
    assert run is not None
    assert run.status is RunStatus.RUNNING
    assert run.trigger is RunTrigger.CRON
    assert run.finished_at is None
    assert run.article_count == 0
    assert run.started_at.tzinfo is not None


def test_update_run_moves_status_forward_only(repository: PipelineRepository) -> None:
    run_id = repository.create_run(RunTrigger.MANUAL)
    finished = utc_now()

    repository.update_run(
        run_id,
        RunUpdate(status=RunStatus.COMPLETED, finished_at=finished, article_count=3),
    )

    run = repository.get_run(run_id)
    assert run is not None
    assert run.status is RunStatus.COMPLETED
    assert run.article_count == 3
    assert run.finished_at is not None

    with pytest.raises(RunStateError, match="already completed"):
        repository.update_run(run_id, RunUpdate(status=RunStatus.RUNNING))
    with pytest.raises(RunStateError):
        repository.update_run(run_id, RunUpdate(status=RunStatus.FAILED))

    repository.update_run(run_id, RunUpdate(error="late note"))
    run = repository.get_run(run_id)
    assert run is not None
    assert run.status is RunStatus.COMPLETED
    assert run.error == "late note"


def test_update_missing_run_is_rejected(repository: PipelineRepository) -> None:
    with pytest.raises(RunStateError, match="Run not found"):
        repository.update_run("missing", RunUpdate(status=RunStatus.FAILED))


def test_list_runs_newest_first(repository: PipelineRepository) -> None:
    first = repository.create_run(RunTrigger.CRON)
    second = repository.create_run(RunTrigger.MANUAL)
    with Session(repository.engine) as session:
        row = session.get(WorkflowRun, first)
        assert row is not None
        row.started_at = utc_now() - timedelta(minutes=5)
        session.add(row)
        session.commit()

    runs = repository.list_runs(limit=10)

    assert [run.run_id for run in runs] == [second, first]
    assert len(repository.list_runs(limit=1)) == 1
    with pytest.raises(ValueError, match="limit"):
        repository.list_runs(limit=0)


def test_request_cancel_targets_latest_running_run(repository: PipelineRepository) -> None:
    done = repository.create_run(RunTrigger.CRON)
    repository.update_run(done, RunUpdate(status=RunStatus.COMPLETED, finished_at=utc_now()))
    running = repository.create_run(RunTrigger.MANUAL)

    assert repository.request_cancel() == running
    assert repository.is_cancel_requested(running) is True
    assert repository.is_cancel_requested(done) is False


def test_request_cancel_ignores_finished_and_unknown_runs(repository: PipelineRepository) -> None:
    assert repository.request_cancel() is None
    assert repository.request_cancel("missing") is None

    done = repository.create_run(RunTrigger.CRON)
    repository.update_run(done, RunUpdate(status=RunStatus.FAILED, finished_at=utc_now()))

    assert repository.request_cancel(done) is None


def test_repeated_cancel_keeps_first_timestamp(repository: PipelineRepository) -> None:
    run_id = repository.create_run(RunTrigger.MANUAL)

    repository.request_cancel(run_id)
    first = repository.get_run(run_id)
    repository.request_cancel(run_id)
    second = repository.get_run(run_id)

    assert first is not None and second is not None
    assert first.cancel_requested_at == second.cancel_requested_at


def _age_run(repository: PipelineRepository, run_id: str, *, started: timedelta, heartbeat: timedelta) -> None:
    with Session(repository.engine) as session:
        row = session.get(WorkflowRun, run_id)
        assert row is not None
        row.started_at = utc_now() - started
        row.heartbeat_at = utc_now() - heartbeat
        session.add(row)
        session.commit()


def test_recover_stale_runs_fails_only_runs_with_old_heartbeat(repository: PipelineRepository) -> None:
    stale = repository.create_run(RunTrigger.CRON)
    fresh = repository.create_run(RunTrigger.MANUAL)
    long_running = repository.create_run(RunTrigger.MANUAL)
    _age_run(repository, stale, started=timedelta(hours=2), heartbeat=timedelta(hours=2))
    _age_run(repository, long_running, started=timedelta(hours=3), heartbeat=timedelta(minutes=5))

    recovered = repository.recover_stale_runs(stale_after=timedelta(hours=1))

    assert recovered == [stale]
    stale_run = repository.get_run(stale)
    fresh_run = repository.get_run(fresh)
    assert stale_run is not None and fresh_run is not None
    assert stale_run.status is RunStatus.FAILED
    assert stale_run.error == STALE_RUN_ERROR
    assert stale_run.finished_at is not None
    assert fresh_run.status is RunStatus.RUNNING
    long_run = repository.get_run(long_running)
    assert long_run is not None
    assert long_run.status is RunStatus.RUNNING


def test_touch_run_refreshes_heartbeat_of_running_runs_only(repository: PipelineRepository) -> None:
    run_id = repository.create_run(RunTrigger.MANUAL)
    _age_run(repository, run_id, started=timedelta(hours=2), heartbeat=timedelta(hours=2))

    repository.touch_run(run_id)

    touched = repository.get_run(run_id)
    assert touched is not None and touched.heartbeat_at is not None
    assert touched.heartbeat_at > utc_now() - timedelta(minutes=1)
    assert repository.recover_stale_runs(stale_after=timedelta(hours=1)) == []

    finished_at = utc_now()
    repository.update_run(run_id, RunUpdate(status=RunStatus.COMPLETED, finished_at=finished_at))
    repository.touch_run(run_id)
    finished = repository.get_run(run_id)
    assert finished is not None
    assert finished.heartbeat_at == finished_at
    repository.touch_run("missing")


def test_steps_are_logged_then_finished(repository: PipelineRepository) -> None:
    run_id = repository.create_run(RunTrigger.MANUAL)
    fetch_id = repository.log_step(
        run_id,
        RUN_LEVEL_ARTICLE_INDEX,
        StepKind.FETCH_HEADLINES,
        input_summary="count=2 date=today",
    )
    publish_id = repository.log_step(run_id, 0, StepKind.PUBLISH, site_slug="alpha")

    repository.update_step(
        fetch_id,
        StepUpdate(status=StepStatus.COMPLETED, output_summary="Fetched 2 headlines"),
    )
    repository.update_step(publish_id, StepUpdate(status=StepStatus.FAILED, error="HTTP 500"))

    steps = repository.list_steps(run_id)
    assert [step.step_name for step in steps] == ["fetch_headlines", "publish_alpha"]
    assert [step.display_stage for step in steps] == ["fetch", "publish"]
    assert steps[0].status is StepStatus.COMPLETED
    assert steps[0].output_summary == "Fetched 2 headlines"
    assert steps[0].input_summary == "count=2 date=today"
    assert steps[1].status is StepStatus.FAILED
    assert steps[1].error == "HTTP 500"
    assert steps[1].step_kind is StepKind.PUBLISH
    assert all(step.finished_at is not None for step in steps)


def test_finished_step_is_not_updated_again(repository: PipelineRepository) -> None:
    run_id = repository.create_run(RunTrigger.MANUAL)
    step_id = repository.log_step(run_id, 0, StepKind.UPSERT_RSS_FEED)
    repository.update_step(step_id, StepUpdate(status=StepStatus.SKIPPED, output_summary="dup"))

    repository.update_step(step_id, StepUpdate(status=StepStatus.FAILED, error="late"))

    (step,) = repository.list_steps(run_id)
    assert step.status is StepStatus.SKIPPED
    assert step.error is None


def test_update_step_requires_terminal_status(repository: PipelineRepository) -> None:
    run_id = repository.create_run(RunTrigger.MANUAL)
    step_id = repository.log_step(run_id, 0, StepKind.GENERATE_ARTICLE)

    with pytest.raises(ValueError, match="terminal"):
        repository.update_step(step_id, StepUpdate(status=StepStatus.RUNNING))
    with pytest.raises(RunStateError, match="Step not found"):
        repository.update_step("missing", StepUpdate(status=StepStatus.COMPLETED))


def test_publish_step_requires_site_slug(repository: PipelineRepository) -> None:
    run_id = repository.create_run(RunTrigger.MANUAL)

    with pytest.raises(ValueError, match="site slug"):
        repository.log_step(run_id, 0, StepKind.PUBLISH)


def test_find_rss_item_returns_lowest_id_for_duplicate_links(
    repository: PipelineRepository,
) -> None:
    first = repository.insert_rss_item(headline(1, url="https://news.example.com/same"))
    second = repository.insert_rss_item(headline(2, url="https://news.example.com/same"))
    assert first.id < second.id

    found = repository.find_rss_item_by_link("https://news.example.com/same")

    assert found is not None
    assert found.id == first.id
    assert found.title == "Headline 1"
    assert repository.find_rss_item_by_link("https://news.example.com/other") is None


def test_mark_should_draft(repository: PipelineRepository) -> None:
    item = repository.insert_rss_item(headline(1, image_url="https://cdn.example.com/1.jpg"))
    assert item.should_draft_article is False
    assert item.img_url == "https://cdn.example.com/1.jpg"

    repository.mark_should_draft(item.id)

    with Session(repository.engine) as session:
        row = session.get(RssFeed, item.id)
        assert row is not None
        assert row.should_draft_article is True
    with pytest.raises(LookupError):
        repository.mark_should_draft(9999)


def test_upsert_site_updates_existing_slug(repository: PipelineRepository) -> None:
    created = repository.upsert_site(
        slug="alpha",
        name="Alpha News",
        wp_base_url="https://alpha.example/",
        category_map={"Finance": CategoryInfo(id=3, color="#111111")},
    )
    updated = repository.upsert_site(
        slug="alpha",
        name="Alpha Daily",
        wp_base_url="https://alpha.example",
        active=False,
    )
    repository.upsert_site(slug="beta", name="Beta", wp_base_url="https://beta.example")

    assert updated.id == created.id
    assert updated.name == "Alpha Daily"
    assert updated.wp_base_url == "https://alpha.example"
    assert updated.category_map == {"Finance": CategoryInfo(id=3, color="#111111")}
    assert [site.slug for site in repository.list_sites()] == ["alpha", "beta"]
    assert [site.slug for site in repository.list_active_sites()] == ["beta"]


def test_site_category_lookup_falls_back_to_neutral(repository: PipelineRepository) -> None:
    site = repository.upsert_site(
        slug="alpha",
        name="Alpha",
        wp_base_url="https://alpha.example",
        category_map={"Finance": CategoryInfo(id=3, color="#111111")},
    )

    assert site.category_for("Finance").id == 3
    assert site.category_for("Sports") == CategoryInfo(id=0, color="#CCCCCC")


def test_editor_config_defaults_to_empty(repository: PipelineRepository) -> None:
    config = repository.get_editor_config()

    assert config.prompts == EditorPrompts()
    assert config.category_map == {}
    assert config.pivot_catalogs is None
    assert config.headlines_to_fetch is None


def test_editor_config_partial_updates_keep_other_fields(repository: PipelineRepository) -> None:
    repository.save_editor_config(
        prompts=EditorPrompts(article_writing_system="Write tersely."),
        category_map={"Energy": CategoryInfo(id=5, color="#dc6a3f")},
        headlines_to_fetch=4,
        headlines_date="yesterday",
    )
    repository.save_editor_config(pivot_catalogs={"camera_catalog": []}, headlines_to_fetch=8)

    config = repository.get_editor_config()

    assert config.prompts.article_writing_system == "Write tersely."
    assert config.prompts.image_edit_template is None
    assert config.category_map == {"Energy": CategoryInfo(id=5, color="#dc6a3f")}
    assert config.pivot_catalogs == {"camera_catalog": []}
    assert config.headlines_to_fetch == 8
    assert config.headlines_date == "yesterday"


def test_ai_articles_are_listed_newest_first(repository: PipelineRepository) -> None:
    site = repository.upsert_site(slug="alpha", name="Alpha", wp_base_url="https://alpha.example")
    item = repository.insert_rss_item(headline(1))
    image = ProcessedImage(
        data=b"x",
        mime_type="image/webp",
        file_name="headline-1.webp",
        image_source=ImageSource.IMG_URL,
        source_image_url="https://cdn.example.com/1.jpg",
    )

    article_id = repository.insert_ai_article(
        rss_feed_id=item.id,
        title="SEO title",
        content="<p>Body</p>",
        site=site,
        publish=PublishResult(
            site_slug="alpha",
            post_id=42,
            media_id=7,
            post_url="https://alpha.example/?p=42",
            image_url="https://alpha.example/image.webp",
        ),
        image=image,
    )

    (article,) = repository.list_ai_articles(limit=5)
    assert article.id == article_id
    assert article.rss_feed_id == item.id
    assert article.site_id == site.id
    assert article.wp_post_id == 42
    assert article.wp_media_id == 7
    assert article.image_source == "img_url"
    assert article.source_image_url == "https://cdn.example.com/1.jpg"
