"""Job domain models: pure Pydantic v2 data types.

A ContentJob tracks one source video from crawl through publication.
Every status change goes through ``ContentJob.advance`` so that a job can
only move along the edges in ``TRANSITIONS``.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from clipforge.errors import InvalidTransitionError

SYSTEM_ACTOR = "SYSTEM"


def _now() -> datetime:
    return datetime.now(tz=UTC)


class JobStatus(StrEnum):
    """Lifecycle status of a content job."""

    PENDING = "PENDING"
    CRAWLED = "CRAWLED"
    TRANSCRIBED = "TRANSCRIBED"
    ANALYZED = "ANALYZED"
    EDITED = "EDITED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.PUBLISHED, JobStatus.REJECTED, JobStatus.FAILED})

TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.CRAWLED, JobStatus.FAILED}),
    JobStatus.CRAWLED: frozenset({JobStatus.TRANSCRIBED, JobStatus.FAILED}),
    JobStatus.TRANSCRIBED: frozenset({JobStatus.ANALYZED, JobStatus.FAILED}),
    JobStatus.ANALYZED: frozenset({JobStatus.EDITED, JobStatus.FAILED}),
    JobStatus.EDITED: frozenset(
        {JobStatus.PENDING_APPROVAL, JobStatus.REJECTED, JobStatus.FAILED}
    ),
    JobStatus.PENDING_APPROVAL: frozenset({JobStatus.APPROVED, JobStatus.REJECTED}),
    JobStatus.APPROVED: frozenset({JobStatus.PUBLISHED}),
    JobStatus.PUBLISHED: frozenset(),
    JobStatus.REJECTED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in TRANSITIONS[current]


class ContentLanguage(StrEnum):
    """Content language, doubling as the search relevance language."""

    KO = "ko"
    EN = "en"
    JA = "ja"

    @classmethod
    def from_code(cls, code: str | None) -> ContentLanguage | None:
        if not code:
            return None
        code = code.strip().lower()
        for lang in cls:
            if lang.value == code or code.startswith(lang.value + "-"):
                return lang
        return None


class Difficulty(StrEnum):
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"

    @classmethod
    def parse(cls, value: str | None) -> Difficulty | None:
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class Category(StrEnum):
    LANGUAGE = "LANGUAGE"
    SCIENCE = "SCIENCE"
    HISTORY = "HISTORY"
    MATHEMATICS = "MATHEMATICS"
    ART = "ART"
    STARTUP = "STARTUP"
    MARKETING = "MARKETING"
    PROGRAMMING = "PROGRAMMING"
    DESIGN = "DESIGN"
    PRODUCTIVITY = "PRODUCTIVITY"
    PSYCHOLOGY = "PSYCHOLOGY"
    FINANCE = "FINANCE"
    HEALTH = "HEALTH"
    PARENTING = "PARENTING"
    COOKING = "COOKING"
    TRAVEL = "TRAVEL"
    HOBBY = "HOBBY"
    TREND = "TREND"
    FUN = "FUN"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: str | None) -> Category:
        """Tolerant parse; anything unknown maps to OTHER."""
        if not value:
            return cls.OTHER
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.OTHER


class AuditFields(BaseModel):
    """Audit and soft-delete record shared by every persisted type."""

    created_at: datetime = Field(default_factory=_now)
    created_by: str = SYSTEM_ACTOR
    updated_at: datetime = Field(default_factory=_now)
    updated_by: str = SYSTEM_ACTOR
    deleted_at: datetime | None = None

    def touched(self, actor: str = SYSTEM_ACTOR) -> AuditFields:
        return self.model_copy(update={"updated_at": _now(), "updated_by": actor})

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class TranscriptSegment(BaseModel):
    """One timestamped line of a transcript."""

    start_ms: int
    end_ms: int
    text: str

    @model_validator(mode="after")
    def _check_bounds(self) -> TranscriptSegment:
        if self.start_ms < 0 or self.end_ms < self.start_ms:
            raise ValueError(f"invalid transcript window {self.start_ms}..{self.end_ms}")
        return self


class Segment(BaseModel):
    """A time-bounded excerpt selected for the short-form asset."""

    start_ms: int
    end_ms: int
    title: str
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    relevance: int = 0  # 0-100, model-assigned

    @model_validator(mode="after")
    def _check_bounds(self) -> Segment:
        if self.start_ms < 0 or self.end_ms <= self.start_ms:
            raise ValueError(f"invalid segment window {self.start_ms}..{self.end_ms}")
        return self

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


class CandidateEvaluation(BaseModel):
    """Model pre-evaluation captured at crawl time (0-100 each)."""

    relevance: int = 50
    educational_value: int = 50
    short_form_suitability: int = 50
    predicted_quality: int = 50


class ContentJob(BaseModel):
    """Unit-of-work record tracking one source video through the pipeline."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    source_video_id: str
    channel_id: str = ""
    channel_title: str = ""
    source_title: str = ""
    source_duration_ms: int | None = None
    source_view_count: int | None = None
    source_like_count: int | None = None
    evaluation: CandidateEvaluation | None = None
    status: JobStatus = JobStatus.PENDING
    quality_score: int | None = None

    raw_asset_ref: str | None = None
    edited_asset_ref: str | None = None
    thumbnail_ref: str | None = None
    rendered_duration_ms: int | None = None
    rendered_width: int | None = None
    rendered_height: int | None = None

    transcript: str | None = None
    transcript_segments: list[TranscriptSegment] = Field(default_factory=list)
    transcript_confidence: float | None = None

    segments: list[Segment] = Field(default_factory=list)
    generated_title: str | None = None
    generated_description: str | None = None
    generated_tags: list[str] = Field(default_factory=list)
    category: Category | None = None
    difficulty: Difficulty | None = None

    llm_provider: str | None = None
    llm_model: str | None = None
    transcriber_provider: str | None = None
    language: str | None = None

    error_message: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    published_content_id: str | None = None

    audit: AuditFields = Field(default_factory=AuditFields)

    @property
    def selected_segment(self) -> Segment | None:
        return self.segments[0] if self.segments else None

    def advance(
        self,
        target: JobStatus,
        *,
        actor: str = SYSTEM_ACTOR,
        **changes: Any,
    ) -> ContentJob:
        """Return a copy moved to ``target`` with ``changes`` applied.

        Raises InvalidTransitionError if the edge is not in the graph.
        """
        if not can_transition(self.status, target):
            raise InvalidTransitionError(self.status.value, target.value)
        update = dict(changes)
        update["status"] = target
        update["audit"] = self.audit.touched(actor)
        return self.model_copy(update=update, deep=True)

    def fail(self, reason: str, *, actor: str = SYSTEM_ACTOR) -> ContentJob:
        """Short-circuit the job to FAILED with ``reason``."""
        return self.advance(JobStatus.FAILED, actor=actor, error_message=reason)
