"""Exception taxonomy shared by pipeline steps and collaborators."""

from __future__ import annotations

from dataclasses import dataclass


class PipelineError(Exception):
    """Base class for publishing pipeline errors."""


class PipelineCancelledError(PipelineError):
    """Raised at a checkpoint once cancellation was requested for the run."""

    def __init__(self, run_id: str = "") -> None:
        super().__init__("Pipeline run was cancelled")
        self.run_id = run_id


@dataclass(slots=True)
class IntegrationError(PipelineError):
    """External collaborator call failed."""

    service: str
    message: str
    status_code: int | None = None

    def __str__(self) -> str:
        if self.status_code is None:
            return f"{self.service}: {self.message}"
        return f"{self.service}: HTTP {self.status_code} {self.message}".rstrip()


@dataclass(slots=True)
class ImageEditTimeoutError(IntegrationError):
    """Image-edit call exceeded its timeout."""

    timeout_seconds: float = 0.0


class ImageUnavailableError(PipelineError):
    """No source image could be obtained from any tier."""


@dataclass(slots=True)
class PublishError(PipelineError):
    """One WordPress publish sub-call failed for a site."""

    site_slug: str
    stage: str
    message: str

    def __str__(self) -> str:
        return f"{self.stage} failed ({self.site_slug}): {self.message}"


class RunStateError(PipelineError):
    """Run record missing or asked to move to an illegal status."""
