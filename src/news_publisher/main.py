"""CLI entrypoint for news-publisher."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from news_publisher import __version__
from news_publisher.controllers import (
    PROMPT_NAMES,
    ArticlesListCommand,
    CommandResult,
    ConfigSetCommand,
    ConfigShowCommand,
    PipelineCliController,
    PipelineRunCommand,
    PipelineStatusCommand,
    PipelineStopCommand,
    SiteAddCommand,
    SiteListCommand,
)
from news_publisher.models import RunTrigger

click.rich_click.USE_MARKDOWN = True
PIPELINE_CONTROLLER = PipelineCliController()

T = TypeVar("T")

DB_PATH_HELP = "SQLite DB path."


@click.group()
@click.version_option(version=__version__, prog_name="news-publisher")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def news_publisher(verbose: bool) -> None:
    """News auto-publishing CLI."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@news_publisher.group()
def pipeline() -> None:
    """Pipeline run commands."""


@pipeline.command("run")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option(
    "--articles",
    "article_count",
    type=click.IntRange(min=1, max=20, clamp=True),
    default=None,
    help="Headlines to process. Defaults to the stored editor config.",
)
@click.option(
    "--date",
    "date_selector",
    default=None,
    help="`today`, `yesterday` or `MMDDYYYY-MMDDYYYY`.",
)
@click.option(
    "--trigger",
    type=click.Choice([trigger.value for trigger in RunTrigger]),
    default=RunTrigger.MANUAL.value,
    show_default=True,
    help="What started this run.",
)
def pipeline_run(
    db_path: Path | None,
    article_count: int | None,
    date_selector: str | None,
    trigger: str,
) -> None:
    """Run the publishing pipeline in the foreground."""

    result = _guarded(
        lambda: PIPELINE_CONTROLLER.run(
            PipelineRunCommand(
                db_path=db_path,
                article_count=article_count,
                date_selector=date_selector,
                trigger=RunTrigger(trigger),
            ),
        ),
    )
    _emit_result(result, "Pipeline run did not complete.")


@pipeline.command("start")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option(
    "--articles",
    "article_count",
    type=click.IntRange(min=1, max=20, clamp=True),
    default=None,
    help="Headlines to process. Defaults to the stored editor config.",
)
@click.option(
    "--date",
    "date_selector",
    default=None,
    help="`today`, `yesterday` or `MMDDYYYY-MMDDYYYY`.",
)
@click.option(
    "--trigger",
    type=click.Choice([trigger.value for trigger in RunTrigger]),
    default=RunTrigger.MANUAL.value,
    show_default=True,
    help="What started this run.",
)
def pipeline_start(
    db_path: Path | None,
    article_count: int | None,
    date_selector: str | None,
    trigger: str,
) -> None:
    """Start a run in a worker thread and print its id right away.

    The command keeps running until the run finishes; use `pipeline stop` from
    another shell to cancel it.
    """

    result = _guarded(
        lambda: PIPELINE_CONTROLLER.start(
            PipelineRunCommand(
                db_path=db_path,
                article_count=article_count,
                date_selector=date_selector,
                trigger=RunTrigger(trigger),
            ),
            on_accepted=lambda run_id: click.echo(f"Pipeline run started: run_id={run_id}"),
        ),
    )
    _emit_result(result, "Pipeline run did not complete.")


@pipeline.command("stop")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option("--run-id", default=None, help="Run to cancel. Defaults to the latest running run.")
def pipeline_stop(db_path: Path | None, run_id: str | None) -> None:
    """Request cancellation of a running pipeline run."""

    result = PIPELINE_CONTROLLER.stop(PipelineStopCommand(db_path=db_path, run_id=run_id))
    _emit_result(result, "Nothing to cancel.")


@pipeline.command("status")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option("--run-id", default=None, help="Show one run with its steps.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=100),
    default=10,
    show_default=True,
    help="How many latest runs to display.",
)
def pipeline_status(db_path: Path | None, run_id: str | None, limit: int) -> None:
    """Show recent runs, or one run with its step log."""

    result = PIPELINE_CONTROLLER.status(
        PipelineStatusCommand(db_path=db_path, run_id=run_id, limit=limit),
    )
    _emit_result(result, "Run not found.")


@pipeline.command("articles")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=200),
    default=20,
    show_default=True,
    help="How many latest articles to display.",
)
def pipeline_articles(db_path: Path | None, limit: int) -> None:
    """List published articles with their WordPress ids."""

    _emit_lines(PIPELINE_CONTROLLER.list_articles(ArticlesListCommand(db_path=db_path, limit=limit)))


@news_publisher.group()
def sites() -> None:
    """Publishing site registry."""


@sites.command("add")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option("--slug", required=True, help="Site slug; matches a `WORDPRESS_SITES` credential.")
@click.option("--name", required=True, help="Display name passed to the SEO rewrite.")
@click.option("--url", "wp_base_url", required=True, help="WordPress base URL.")
@click.option("--inactive", is_flag=True, default=False, help="Register the site as inactive.")
@click.option(
    "--category-map",
    "category_map_file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help='JSON file like `{"Finance": {"id": 7, "color": "#00AB76"}}`.',
)
def sites_add(  # noqa: PLR0913
    db_path: Path | None,
    slug: str,
    name: str,
    wp_base_url: str,
    inactive: bool,
    category_map_file: Path | None,
) -> None:
    """Register a site or update an existing one with the same slug."""

    _emit_lines(
        _guarded(
            lambda: PIPELINE_CONTROLLER.add_site(
                SiteAddCommand(
                    db_path=db_path,
                    slug=slug,
                    name=name,
                    wp_base_url=wp_base_url,
                    active=not inactive,
                    category_map_file=category_map_file,
                ),
            ),
        ),
    )


@sites.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option("--active-only", is_flag=True, default=False, help="Hide inactive sites.")
def sites_list(db_path: Path | None, active_only: bool) -> None:
    """List registered sites and whether a credential is configured."""

    _emit_lines(
        PIPELINE_CONTROLLER.list_sites(SiteListCommand(db_path=db_path, active_only=active_only)),
    )


@news_publisher.group()
def config() -> None:
    """Database-held editor configuration."""


@config.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
def config_show(db_path: Path | None) -> None:
    """Show run defaults, prompt overrides and the category table."""

    _emit_lines(PIPELINE_CONTROLLER.show_config(ConfigShowCommand(db_path=db_path)))


@config.command("set")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option(
    "--articles",
    "article_count",
    type=click.IntRange(min=1),
    default=None,
    help="Default headline count; capped to 20.",
)
@click.option("--date", "date_selector", default=None, help="Default headline date selector.")
@click.option(
    "--category-map",
    "category_map_file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="JSON file with the category table.",
)
@click.option(
    "--pivot-catalogs",
    "pivot_catalogs_file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="JSON file with composition, framing and camera catalogs.",
)
@click.option(
    "--prompt",
    "prompt_files",
    type=(click.Choice(PROMPT_NAMES), click.Path(path_type=Path, exists=True, dir_okay=False)),
    multiple=True,
    help="Prompt name and a text file holding its template. Can be repeated.",
)
def config_set(  # noqa: PLR0913
    db_path: Path | None,
    article_count: int | None,
    date_selector: str | None,
    category_map_file: Path | None,
    pivot_catalogs_file: Path | None,
    prompt_files: tuple[tuple[str, Path], ...],
) -> None:
    """Update editor defaults; omitted options keep their stored values."""

    _emit_lines(
        _guarded(
            lambda: PIPELINE_CONTROLLER.set_config(
                ConfigSetCommand(
                    db_path=db_path,
                    article_count=article_count,
                    date_selector=date_selector,
                    category_map_file=category_map_file,
                    pivot_catalogs_file=pivot_catalogs_file,
                    prompt_files=prompt_files,
                ),
            ),
        ),
    )


def _guarded(action: Callable[[], T]) -> T:
    try:
        return action()
    except ValueError as error:
        raise click.ClickException(str(error)) from error


def _emit_result(result: CommandResult, failure_message: str) -> None:
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(failure_message)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    news_publisher()
