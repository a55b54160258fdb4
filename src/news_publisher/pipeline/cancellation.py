"""Cooperative cancellation checkpoints."""

from __future__ import annotations

import logging

from news_publisher.errors import PipelineCancelledError
from news_publisher.repository import PipelineRepository

logger = logging.getLogger(__name__)


class CancellationCheckpoint:
    """Raise ``PipelineCancelledError`` once the run record carries a cancel request."""

    def __init__(self, repository: PipelineRepository, run_id: str) -> None:
        self._repository = repository
        self.run_id = run_id

    def __call__(self, where: str = "") -> None:
        if self._repository.is_cancel_requested(self.run_id):
            logger.info("Cancellation observed (run_id=%s at=%s).", self.run_id, where or "-")
            raise PipelineCancelledError(self.run_id)
