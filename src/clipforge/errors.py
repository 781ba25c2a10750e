"""Error taxonomy and run reporting for the content pipeline.

Stage code raises these; the runner decides what each class means for a
job's status:

- ``TransientExternalFailure``: status unchanged, retried on the next run.
- ``PermanentAssetFailure``: job set FAILED, never auto-retried.
- ``ValidationFailure``: job set FAILED with a specific reason.
- ``ConflictFailure`` / ``NotFoundFailure``: surfaced to review callers.
- ``StoreUnavailableError``: aborts the whole run.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class ClipforgeError(Exception):
    """Base error for everything raised by clipforge."""


class TransientExternalFailure(ClipforgeError):
    """Network, timeout or rate-limit failure on a capability call."""


class PermanentAssetFailure(ClipforgeError):
    """Corrupt or unusable source or rendered asset."""


class ValidationFailure(ClipforgeError):
    """Input that will never succeed on retry (e.g. empty transcript)."""


class ConflictFailure(ClipforgeError):
    """A one-way decision was attempted twice."""


class NotFoundFailure(ClipforgeError):
    """Unknown job, pending item or content id."""


class StoreUnavailableError(ClipforgeError):
    """The backing store could not be read or written."""


class InvalidTransitionError(ClipforgeError):
    """A status change that the job state machine does not allow."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move job from {current} to {target}")


class PipelineError(BaseModel):
    """A single per-item failure recorded during a run."""

    stage: str
    job_id: str = ""
    message: str
    error_type: str = ""
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class StageCounts(BaseModel):
    """Outcome counters for one stage in one run."""

    read: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    write_errors: int = 0


class PipelineReport(BaseModel):
    """Aggregated result of a pipeline run, shown to the operator."""

    stages: dict[str, StageCounts] = Field(default_factory=dict)
    errors: list[PipelineError] = Field(default_factory=list)

    def counts(self, stage: str) -> StageCounts:
        if stage not in self.stages:
            self.stages[stage] = StageCounts()
        return self.stages[stage]

    def add_error(
        self,
        stage: str,
        job_id: str = "",
        message: str = "",
        error: Exception | None = None,
    ) -> None:
        self.errors.append(
            PipelineError(
                stage=stage,
                job_id=job_id,
                message=message or str(error or ""),
                error_type=type(error).__name__ if error is not None else "",
            )
        )

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def summary(self) -> str:
        parts = []
        for name, c in self.stages.items():
            parts.append(
                f"{name}: {c.succeeded} ok, {c.skipped} skipped, "
                f"{c.failed} failed, {c.write_errors} write errors"
            )
        return "; ".join(parts) if parts else "nothing to do"
