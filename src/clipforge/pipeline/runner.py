"""Job-run coordinator.

``PipelineRunner`` executes stages in order against an explicit
``ExecutionContext``.  Within a stage, each job is one task on a worker
pool, so no two workers ever touch the same job; results are written back
one job at a time, each write isolated from the others.
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

from clipforge.capabilities import Capabilities, create_capabilities
from clipforge.config import ClipforgeConfig
from clipforge.errors import (
    ConflictFailure,
    InvalidTransitionError,
    NotFoundFailure,
    PipelineReport,
    StoreUnavailableError,
)
from clipforge.jobs import JobStore
from clipforge.pipeline.base import OutcomeKind, Stage
from clipforge.review.store import PendingReviewStore

logger = logging.getLogger(__name__)

STAGE_ORDER = ("crawl", "transcribe", "analyze", "edit", "review")

# A lock older than this is assumed to belong to a crashed run
STALE_LOCK_SECONDS = 6 * 3600


@dataclass
class ExecutionContext:
    """Everything a stage needs, passed explicitly."""

    config: ClipforgeConfig
    job_store: JobStore
    review_store: PendingReviewStore
    capabilities: Capabilities

    @classmethod
    def from_config(cls, config: ClipforgeConfig) -> ExecutionContext:
        data_dir = config.data_path
        data_dir.mkdir(parents=True, exist_ok=True)
        return cls(
            config=config,
            job_store=JobStore(data_dir),
            review_store=PendingReviewStore(data_dir),
            capabilities=create_capabilities(config),
        )


class StageLock:
    """Exclusive per-stage lock file so that two runs never overlap."""

    def __init__(self, data_dir: Path, stage_name: str) -> None:
        self.path = data_dir / f".clipforge-{stage_name}.lock"

    def __enter__(self) -> StageLock:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            age = time.time() - self.path.stat().st_mtime
            if age < STALE_LOCK_SECONDS:
                raise ConflictFailure(f"Another run holds {self.path.name}") from None
            logger.warning("Breaking stale lock %s (%.0fs old)", self.path, age)
            self.path.unlink(missing_ok=True)
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.path.unlink(missing_ok=True)


def default_stages(context: ExecutionContext) -> list[Stage]:
    from clipforge.pipeline.analyze import AnalyzeStage
    from clipforge.pipeline.crawl import CrawlStage
    from clipforge.pipeline.edit import EditStage
    from clipforge.pipeline.review import ReviewStage
    from clipforge.pipeline.transcribe import TranscribeStage

    return [
        CrawlStage(context),
        TranscribeStage(context),
        AnalyzeStage(context),
        EditStage(context),
        ReviewStage(context),
    ]


class PipelineRunner:
    def __init__(self, context: ExecutionContext, stages: list[Stage] | None = None) -> None:
        self.context = context
        self.stages = stages if stages is not None else default_stages(context)

    def run_stage(self, stage: Stage, report: PipelineReport) -> None:
        """Run one bounded batch of ``stage``.

        Raises StoreUnavailableError if the batch cannot be read.
        """
        counts = report.counts(stage.name)
        pipeline = self.context.config.pipeline

        with StageLock(self.context.config.data_path, stage.name):
            stage.prepare(report)
            jobs = stage.select(pipeline.batch_size)
            counts.read += len(jobs)
            if not jobs:
                logger.debug("[%s] nothing to do", stage.name)
                return

            workers = max(1, min(pipeline.max_workers, len(jobs)))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=stage.name) as pool:
                futures = {pool.submit(stage.handle, job): job for job in jobs}
                for future in as_completed(futures):
                    job = futures[future]
                    outcome = future.result()

                    if outcome.kind == OutcomeKind.SKIP:
                        counts.skipped += 1
                        if outcome.error is not None:
                            report.add_error(stage.name, job.id, outcome.reason, outcome.error)
                        continue

                    try:
                        stage.commit(job, outcome)
                    except (
                        StoreUnavailableError,
                        ConflictFailure,
                        NotFoundFailure,
                        InvalidTransitionError,
                    ) as exc:
                        logger.error("[%s] could not save job %s: %s", stage.name, job.id, exc)
                        counts.write_errors += 1
                        report.add_error(stage.name, job.id, f"write failed: {exc}", exc)
                        continue

                    if outcome.kind == OutcomeKind.FAILED:
                        counts.failed += 1
                        report.add_error(stage.name, job.id, outcome.reason, outcome.error)
                    else:
                        counts.succeeded += 1

        logger.info(
            "[%s] %d read, %d ok, %d skipped, %d failed, %d write errors",
            stage.name,
            counts.read,
            counts.succeeded,
            counts.skipped,
            counts.failed,
            counts.write_errors,
        )

    def run(
        self,
        *,
        only: list[str] | None = None,
        report: PipelineReport | None = None,
    ) -> PipelineReport:
        """Run every stage (or just ``only``) once, in pipeline order."""
        report = report or PipelineReport()
        for stage in self.stages:
            if only and stage.name not in only:
                continue
            self.run_stage(stage, report)
        return report
