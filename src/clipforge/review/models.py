"""Review-facing models: pending items, priorities and dashboard stats."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from clipforge.jobs.models import AuditFields, Category, Difficulty


class PendingReviewStatus(StrEnum):
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def is_decided(self) -> bool:
        return self != PendingReviewStatus.PENDING_REVIEW


class ReviewPriority(StrEnum):
    HIGH = "HIGH"
    NORMAL = "NORMAL"
    LOW = "LOW"

    @property
    def rank(self) -> int:
        return {ReviewPriority.HIGH: 0, ReviewPriority.NORMAL: 1, ReviewPriority.LOW: 2}[self]


def priority_for(score: int, *, threshold: int = 70, high_threshold: int = 90) -> ReviewPriority:
    if score >= high_threshold:
        return ReviewPriority.HIGH
    if score >= threshold:
        return ReviewPriority.NORMAL
    return ReviewPriority.LOW


class EditableMetadata(BaseModel):
    """The reviewer-editable copy of the generated metadata."""

    title: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    category: Category = Category.OTHER
    difficulty: Difficulty | None = None


class PendingReviewItem(BaseModel):
    """Human-reviewable projection of a job at PENDING_APPROVAL."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    job_id: str
    metadata: EditableMetadata
    video_key: str
    thumbnail_key: str | None = None
    duration_ms: int | None = None
    width: int | None = None
    height: int | None = None
    source_video_id: str = ""
    source_title: str = ""
    channel_title: str = ""
    language: str | None = None
    quality_score: int
    review_priority: ReviewPriority
    status: PendingReviewStatus = PendingReviewStatus.PENDING_REVIEW
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    published_content_id: str | None = None
    audit: AuditFields = Field(default_factory=AuditFields)


class CategoryCount(BaseModel):
    category: Category
    count: int


class DashboardStats(BaseModel):
    """Read-only aggregation over the review backlog."""

    pending_review: int = 0
    approved: int = 0
    rejected: int = 0
    created_today: int = 0
    approved_this_week: int = 0
    rejected_this_week: int = 0
    high_priority_pending: int = 0
    average_quality_score: float | None = None
    by_category: list[CategoryCount] = Field(default_factory=list)
