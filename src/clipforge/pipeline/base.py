"""Stage contract and per-item outcome type.

A stage turns one job into a ``StageOutcome``:

- ``SUCCESS``: the job advanced and must be persisted.
- ``FAILED``: the job was moved to FAILED and must be persisted.
- ``SKIP``: nothing is persisted; the job keeps its status and is picked
  up again on the next run.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, TypeVar

from clipforge.errors import (
    ClipforgeError,
    PermanentAssetFailure,
    PipelineReport,
    StoreUnavailableError,
    TransientExternalFailure,
    ValidationFailure,
)
from clipforge.jobs import ContentJob, JobStatus

if TYPE_CHECKING:
    from clipforge.pipeline.runner import ExecutionContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OutcomeKind(StrEnum):
    SUCCESS = "success"
    SKIP = "skip"
    FAILED = "failed"


@dataclass(frozen=True)
class StageOutcome:
    kind: OutcomeKind
    job: ContentJob | None = None
    reason: str = ""
    error: Exception | None = None

    @classmethod
    def success(cls, job: ContentJob) -> StageOutcome:
        return cls(OutcomeKind.SUCCESS, job=job)

    @classmethod
    def skip(cls, reason: str, error: Exception | None = None) -> StageOutcome:
        return cls(OutcomeKind.SKIP, reason=reason, error=error)

    @classmethod
    def failed(cls, job: ContentJob, reason: str, error: Exception | None = None) -> StageOutcome:
        return cls(OutcomeKind.FAILED, job=job.fail(reason), reason=reason, error=error)

    @property
    def needs_write(self) -> bool:
        return self.kind != OutcomeKind.SKIP


def call_with_timeout(fn: Callable[[], T], timeout: float, label: str) -> T:
    """Run ``fn`` on a helper thread and give up after ``timeout`` seconds.

    The abandoned call keeps running in the background; its result is
    discarded.  Raises TransientExternalFailure on timeout.
    """
    result: list[T] = []
    error: list[BaseException] = []

    def _target() -> None:
        try:
            result.append(fn())
        except BaseException as exc:
            error.append(exc)

    worker = threading.Thread(target=_target, name=f"clipforge-{label}", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        raise TransientExternalFailure(f"{label} timed out after {timeout:.0f}s")
    if error:
        raise error[0]
    return result[0]


class Stage(ABC):
    """One pipeline step over jobs in ``input_status``."""

    name: str = ""
    input_status: JobStatus

    def __init__(self, context: ExecutionContext) -> None:
        self.context = context

    @property
    def timeout(self) -> float:
        return float(self.context.config.pipeline.call_timeout)

    def call(self, fn: Callable[[], T], label: str) -> T:
        """Invoke an external capability under the per-call timeout."""
        return call_with_timeout(fn, self.timeout, f"{self.name}:{label}")

    def prepare(self, report: PipelineReport) -> None:
        """Hook run once before the batch is selected."""

    def select(self, limit: int) -> list[ContentJob]:
        return self.context.job_store.list(self.input_status, limit=limit)

    @abstractmethod
    def process(self, job: ContentJob) -> StageOutcome:
        """Process one job. May raise any taxonomy error."""

    def handle(self, job: ContentJob) -> StageOutcome:
        """Run ``process`` and map taxonomy errors onto outcomes."""
        try:
            return self.process(job)
        except StoreUnavailableError:
            raise
        except (PermanentAssetFailure, ValidationFailure) as exc:
            logger.warning("[%s] job %s failed: %s", self.name, job.id, exc)
            return StageOutcome.failed(job, str(exc), exc)
        except TransientExternalFailure as exc:
            logger.info("[%s] job %s will be retried: %s", self.name, job.id, exc)
            return StageOutcome.skip(str(exc), exc)
        except ClipforgeError as exc:
            logger.warning("[%s] job %s skipped: %s", self.name, job.id, exc)
            return StageOutcome.skip(str(exc), exc)
        except Exception as exc:
            logger.exception("[%s] unexpected error on job %s", self.name, job.id)
            return StageOutcome.skip(f"unexpected error: {exc}", exc)

    def commit(self, original: ContentJob, outcome: StageOutcome) -> None:
        """Persist an outcome, guarded on the status the job was read in."""
        if outcome.job is None:
            return
        self.context.job_store.save(outcome.job, expected_status=original.status)
