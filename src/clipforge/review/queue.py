"""Human review operations over gated jobs.

Approve and reject are one-way: the first decision wins and any later
approve/reject on the same item raises ConflictFailure without changing
anything.  Decisions are serialized by a lock, and the store write is
additionally guarded on the item still being PENDING_REVIEW.  The one
exception is an approval whose job write failed: approving again finishes
moving the job to PUBLISHED without publishing a second time.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from clipforge.errors import ConflictFailure, ValidationFailure
from clipforge.jobs import Category, ContentJob, Difficulty, JobStatus, JobStore
from clipforge.review.models import (
    CategoryCount,
    DashboardStats,
    PendingReviewItem,
    PendingReviewStatus,
    ReviewPriority,
)
from clipforge.review.store import PendingReviewStore

if TYPE_CHECKING:
    from clipforge.publish.coordinator import PublishCoordinator

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


class MetadataUpdate(BaseModel):
    """Fields a reviewer may change; None leaves a field untouched."""

    title: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    category: Category | None = None
    difficulty: Difficulty | None = None


class ReviewPage(BaseModel):
    items: list[PendingReviewItem] = Field(default_factory=list)
    page: int = 0
    page_size: int = DEFAULT_PAGE_SIZE
    total: int = 0

    @property
    def has_next(self) -> bool:
        return (self.page + 1) * self.page_size < self.total


def _now() -> datetime:
    return datetime.now(tz=UTC)


class PendingReviewQueue:
    def __init__(
        self,
        review_store: PendingReviewStore,
        job_store: JobStore,
        coordinator: PublishCoordinator,
    ) -> None:
        self.review_store = review_store
        self.job_store = job_store
        self.coordinator = coordinator
        self._decision_lock = threading.Lock()

    # ── Read operations ──────────────────────────────────────────

    def list(
        self,
        status: PendingReviewStatus = PendingReviewStatus.PENDING_REVIEW,
        page: int = 0,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ReviewPage:
        """Page through items, highest priority first, newest first within a tier."""
        if page < 0 or page_size <= 0:
            raise ValidationFailure("page must be >= 0 and page_size > 0")
        items = self.review_store.list(status)
        items.sort(key=lambda i: i.audit.created_at, reverse=True)
        items.sort(key=lambda i: i.review_priority.rank)
        start = page * page_size
        return ReviewPage(
            items=items[start : start + page_size],
            page=page,
            page_size=page_size,
            total=len(items),
        )

    def get(self, item_id: str) -> PendingReviewItem:
        return self.review_store.require(item_id)

    def dashboard(self, now: datetime | None = None) -> DashboardStats:
        """Aggregate backlog statistics. Has no side effects."""
        now = now or _now()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        week_ago = now - timedelta(days=7)
        items = self.review_store.list()

        by_status = Counter(i.status for i in items)
        pending = [i for i in items if i.status == PendingReviewStatus.PENDING_REVIEW]
        scores = [i.quality_score for i in items]

        def decided_since(status: PendingReviewStatus) -> int:
            return sum(
                1
                for i in items
                if i.status == status and i.reviewed_at is not None and i.reviewed_at >= week_ago
            )

        categories = Counter(i.metadata.category for i in items)
        return DashboardStats(
            pending_review=by_status.get(PendingReviewStatus.PENDING_REVIEW, 0),
            approved=by_status.get(PendingReviewStatus.APPROVED, 0),
            rejected=by_status.get(PendingReviewStatus.REJECTED, 0),
            created_today=sum(1 for i in items if i.audit.created_at >= today),
            approved_this_week=decided_since(PendingReviewStatus.APPROVED),
            rejected_this_week=decided_since(PendingReviewStatus.REJECTED),
            high_priority_pending=sum(
                1 for i in pending if i.review_priority == ReviewPriority.HIGH
            ),
            average_quality_score=round(sum(scores) / len(scores), 1) if scores else None,
            by_category=[
                CategoryCount(category=c, count=n) for c, n in categories.most_common()
            ],
        )

    # ── Write operations ─────────────────────────────────────────

    def update_metadata(
        self, item_id: str, fields: MetadataUpdate, editor: str
    ) -> PendingReviewItem:
        """Edit the reviewer copy of the metadata while the item is undecided."""
        with self._decision_lock:
            item = self.review_store.require(item_id)
            if item.status != PendingReviewStatus.PENDING_REVIEW:
                raise ConflictFailure(f"Review item {item_id} is already {item.status}")
            changes = fields.model_dump(exclude_none=True)
            if "title" in changes and not changes["title"].strip():
                raise ValidationFailure("title must not be empty")
            updated = item.model_copy(
                update={
                    "metadata": item.metadata.model_copy(update=changes),
                    "audit": item.audit.touched(editor),
                }
            )
            return self.review_store.save(
                updated, expected_status=PendingReviewStatus.PENDING_REVIEW
            )

    def approve(self, item_id: str, reviewer: str) -> PendingReviewItem:
        """Publish the item, then record the approval on the item and its job.

        An item already APPROVED whose job never reached PUBLISHED (the job
        write failed) is completed rather than refused, so a retry always
        converges on PUBLISHED.
        """
        with self._decision_lock:
            item = self.review_store.require(item_id)
            if (
                item.status == PendingReviewStatus.APPROVED
                and item.published_content_id is not None
            ):
                job = self.job_store.require(item.job_id)
                if job.status in (JobStatus.PENDING_APPROVAL, JobStatus.APPROVED):
                    logger.warning("Resuming approval of item %s (job %s)", item_id, job.status)
                    self._record_publish(
                        job,
                        item.reviewed_by or reviewer,
                        item.reviewed_at or _now(),
                        item.published_content_id,
                    )
                    return item
            if item.status != PendingReviewStatus.PENDING_REVIEW:
                raise ConflictFailure(f"Review item {item_id} is already {item.status}")
            job = self.job_store.require(item.job_id)
            if job.status != JobStatus.PENDING_APPROVAL:
                raise ConflictFailure(f"Job {job.id} is {job.status}, not awaiting approval")

            content_id = self.coordinator.publish(item)
            decided_at = _now()
            approved = item.model_copy(
                update={
                    "status": PendingReviewStatus.APPROVED,
                    "reviewed_by": reviewer,
                    "reviewed_at": decided_at,
                    "published_content_id": content_id,
                    "audit": item.audit.touched(reviewer),
                }
            )
            self.review_store.save(approved, expected_status=PendingReviewStatus.PENDING_REVIEW)
            self._record_publish(job, reviewer, decided_at, content_id)
            logger.info("Item %s approved by %s (content %s)", item_id, reviewer, content_id)
            return approved

    def _record_publish(
        self, job: ContentJob, reviewer: str, decided_at: datetime, content_id: str
    ) -> None:
        """Walk the job from wherever it stopped to PUBLISHED."""
        if job.status == JobStatus.PENDING_APPROVAL:
            job = self.job_store.save(
                job.advance(
                    JobStatus.APPROVED,
                    actor=reviewer,
                    reviewed_by=reviewer,
                    reviewed_at=decided_at,
                    published_content_id=content_id,
                ),
                expected_status=JobStatus.PENDING_APPROVAL,
            )
        self.job_store.save(
            job.advance(JobStatus.PUBLISHED, actor=reviewer),
            expected_status=JobStatus.APPROVED,
        )

    def reject(self, item_id: str, reviewer: str, reason: str) -> PendingReviewItem:
        if not reason.strip():
            raise ValidationFailure("A rejection reason is required")
        with self._decision_lock:
            item = self.review_store.require(item_id)
            if item.status != PendingReviewStatus.PENDING_REVIEW:
                raise ConflictFailure(f"Review item {item_id} is already {item.status}")
            job = self.job_store.require(item.job_id)
            if job.status != JobStatus.PENDING_APPROVAL:
                raise ConflictFailure(f"Job {job.id} is {job.status}, not awaiting approval")

            decided_at = _now()
            rejected = item.model_copy(
                update={
                    "status": PendingReviewStatus.REJECTED,
                    "reviewed_by": reviewer,
                    "reviewed_at": decided_at,
                    "rejection_reason": reason,
                    "audit": item.audit.touched(reviewer),
                }
            )
            self.review_store.save(rejected, expected_status=PendingReviewStatus.PENDING_REVIEW)
            self.job_store.save(
                job.advance(
                    JobStatus.REJECTED,
                    actor=reviewer,
                    reviewed_by=reviewer,
                    reviewed_at=decided_at,
                    rejection_reason=reason,
                ),
                expected_status=JobStatus.PENDING_APPROVAL,
            )
            logger.info("Item %s rejected by %s: %s", item_id, reviewer, reason)
            return rejected
