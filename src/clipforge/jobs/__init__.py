"""Content jobs: models, state machine and the persistent job store."""

from clipforge.jobs.models import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    AuditFields,
    CandidateEvaluation,
    Category,
    ContentJob,
    ContentLanguage,
    Difficulty,
    JobStatus,
    Segment,
    TranscriptSegment,
    can_transition,
)
from clipforge.jobs.store import JOBS_FILENAME, JobStore

__all__ = [
    "JOBS_FILENAME",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "AuditFields",
    "CandidateEvaluation",
    "Category",
    "ContentJob",
    "ContentLanguage",
    "Difficulty",
    "JobStatus",
    "JobStore",
    "Segment",
    "TranscriptSegment",
    "can_transition",
]
