"""Review stage: the automated quality gate.

Jobs scoring at or above the approval threshold go to PENDING_APPROVAL and
get a PendingReviewItem; the rest are REJECTED with the score as reason.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from clipforge.errors import ClipforgeError
from clipforge.jobs import Category, ContentJob, JobStatus
from clipforge.pipeline.base import Stage, StageOutcome
from clipforge.pipeline.scoring import QualityScorer
from clipforge.review.models import (
    EditableMetadata,
    PendingReviewItem,
    ReviewPriority,
    priority_for,
)

if TYPE_CHECKING:
    from clipforge.pipeline.runner import ExecutionContext

logger = logging.getLogger(__name__)


def item_from_job(job: ContentJob, priority: ReviewPriority) -> PendingReviewItem:
    """Project a gated job into its review item."""
    if job.edited_asset_ref is None or job.quality_score is None:
        raise ValueError(f"Job {job.id} has no rendered asset or score")
    return PendingReviewItem(
        job_id=job.id,
        metadata=EditableMetadata(
            title=job.generated_title or job.source_title or "Untitled",
            description=job.generated_description or "",
            tags=list(job.generated_tags),
            category=job.category or Category.OTHER,
            difficulty=job.difficulty,
        ),
        video_key=job.edited_asset_ref,
        thumbnail_key=job.thumbnail_ref,
        duration_ms=job.rendered_duration_ms,
        width=job.rendered_width,
        height=job.rendered_height,
        source_video_id=job.source_video_id,
        source_title=job.source_title,
        channel_title=job.channel_title,
        language=job.language,
        quality_score=job.quality_score,
        review_priority=priority,
    )


class ReviewStage(Stage):
    name = "review"
    input_status = JobStatus.EDITED

    def __init__(self, context: ExecutionContext, scorer: QualityScorer | None = None) -> None:
        super().__init__(context)
        review = context.config.review
        pipeline = context.config.pipeline
        self.scorer = scorer or QualityScorer(
            review.weights,
            min_clip_ms=pipeline.min_clip_ms,
            max_clip_ms=pipeline.max_clip_ms,
            min_width=review.min_width,
            min_height=review.min_height,
        )

    @property
    def threshold(self) -> int:
        return self.context.config.review.approval_threshold

    def process(self, job: ContentJob) -> StageOutcome:
        score = self.scorer.score(job).total
        if score >= self.threshold:
            logger.info("Job %s passed the quality gate (%d >= %d)", job.id, score, self.threshold)
            return StageOutcome.success(
                job.advance(JobStatus.PENDING_APPROVAL, quality_score=score)
            )
        reason = f"Quality score {score} below threshold {self.threshold}"
        logger.info("Job %s rejected: %s", job.id, reason)
        return StageOutcome.success(
            job.advance(JobStatus.REJECTED, quality_score=score, rejection_reason=reason)
        )

    def commit(self, original: ContentJob, outcome: StageOutcome) -> None:
        """Insert the review item before the job write; undo it if the write fails."""
        job = outcome.job
        if job is None or job.status != JobStatus.PENDING_APPROVAL:
            super().commit(original, outcome)
            return

        review_store = self.context.review_store
        inserted = None
        if review_store.find_by_job(job.id) is None:
            priority = priority_for(
                job.quality_score or 0,
                threshold=self.threshold,
                high_threshold=self.context.config.review.high_priority_threshold,
            )
            inserted = review_store.insert(item_from_job(job, priority))
        try:
            super().commit(original, outcome)
        except Exception:
            if inserted is not None:
                try:
                    review_store.soft_delete(inserted.id)
                except ClipforgeError as cleanup_exc:
                    logger.error(
                        "Could not withdraw review item %s for job %s: %s",
                        inserted.id,
                        job.id,
                        cleanup_exc,
                    )
            raise
