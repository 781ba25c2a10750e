"""Human review of gated jobs: pending items, the review queue and dashboard."""

from clipforge.review.models import (
    DashboardStats,
    EditableMetadata,
    PendingReviewItem,
    PendingReviewStatus,
    ReviewPriority,
    priority_for,
)
from clipforge.review.queue import MetadataUpdate, PendingReviewQueue, ReviewPage
from clipforge.review.store import PENDING_FILENAME, PendingReviewStore

__all__ = [
    "PENDING_FILENAME",
    "DashboardStats",
    "EditableMetadata",
    "MetadataUpdate",
    "PendingReviewItem",
    "PendingReviewQueue",
    "PendingReviewStatus",
    "PendingReviewStore",
    "ReviewPage",
    "ReviewPriority",
    "priority_for",
]
