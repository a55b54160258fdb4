"""Run and step bookkeeping for one pipeline run."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from news_publisher.errors import RunStateError
from news_publisher.models import StepKind, StepStatus, StepUpdate
from news_publisher.repository import PipelineRepository
from news_publisher.storage.common import utc_now

logger = logging.getLogger(__name__)

_RECORDER_ERRORS = (SQLAlchemyError, RunStateError)


@dataclass(slots=True)
class StepHandle:
    """Outcome a step body reports before its record is closed."""

    step_name: str
    status: StepStatus = StepStatus.COMPLETED
    output_summary: str | None = None

    def complete(self, output_summary: str | None = None) -> None:
        self.status = StepStatus.COMPLETED
        self.output_summary = output_summary

    def skip(self, output_summary: str) -> None:
        self.status = StepStatus.SKIPPED
        self.output_summary = output_summary


class StepRecorder:
    """Writes one step record per logical step; storage failures never stop the run."""

    def __init__(self, repository: PipelineRepository, run_id: str) -> None:
        self._repository = repository
        self.run_id = run_id

    @contextmanager
    def step(
        self,
        article_index: int,
        kind: StepKind,
        *,
        site_slug: str | None = None,
        input_summary: str | None = None,
    ) -> Iterator[StepHandle]:
        """Record ``running`` on entry and a terminal status on exit.

        An exception from the body marks the step failed and propagates unchanged.
        """

        handle = StepHandle(step_name=kind.step_name(site_slug))
        step_id = self._log(article_index, kind, site_slug=site_slug, input_summary=input_summary)
        try:
            yield handle
        except Exception as exc:
            self._finish(step_id, StepUpdate(status=StepStatus.FAILED, error=str(exc) or repr(exc)))
            raise
        self._finish(
            step_id,
            StepUpdate(status=handle.status, output_summary=handle.output_summary),
        )

    def _log(
        self,
        article_index: int,
        kind: StepKind,
        *,
        site_slug: str | None,
        input_summary: str | None,
    ) -> str | None:
        self._touch()
        try:
            return self._repository.log_step(
                self.run_id,
                article_index,
                kind,
                site_slug=site_slug,
                input_summary=input_summary,
            )
        except _RECORDER_ERRORS:
            logger.exception(
                "Failed to log step (run_id=%s article_index=%d step=%s).",
                self.run_id,
                article_index,
                kind.step_name(site_slug),
            )
            return None

    def _touch(self) -> None:
        try:
            self._repository.touch_run(self.run_id)
        except _RECORDER_ERRORS:
            logger.exception("Failed to refresh run heartbeat (run_id=%s).", self.run_id)

    def _finish(self, step_id: str | None, update: StepUpdate) -> None:
        if step_id is None:
            return
        update.finished_at = utc_now()
        self._touch()
        try:
            self._repository.update_step(step_id, update)
        except _RECORDER_ERRORS:
            logger.exception(
                "Failed to update step (run_id=%s step_id=%s status=%s).",
                self.run_id,
                step_id,
                update.status.value,
            )
