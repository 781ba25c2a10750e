"""Production-side records written on publish."""

from __future__ import annotations

import uuid
from enum import StrEnum

from pydantic import BaseModel, Field

from clipforge.jobs.models import AuditFields, Category, Difficulty

MAX_TAG_LENGTH = 50


class ContentType(StrEnum):
    VIDEO = "VIDEO"


class ContentStatus(StrEnum):
    PUBLISHED = "PUBLISHED"


class PublishedContent(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    creator_id: str
    content_type: ContentType = ContentType.VIDEO
    url: str
    thumbnail_url: str
    duration_seconds: int | None = None
    width: int
    height: int
    status: ContentStatus = ContentStatus.PUBLISHED
    pending_item_id: str
    job_id: str
    audit: AuditFields = Field(default_factory=AuditFields)


class PublishedContentMetadata(BaseModel):
    content_id: str
    title: str
    description: str = ""
    category: Category = Category.OTHER
    difficulty: Difficulty | None = None
    tags: list[str] = Field(default_factory=list)
    language: str | None = None
    audit: AuditFields = Field(default_factory=AuditFields)


class PublishedContentInteraction(BaseModel):
    """Interaction counters; always created at zero."""

    content_id: str
    like_count: int = 0
    comment_count: int = 0
    save_count: int = 0
    share_count: int = 0
    view_count: int = 0
    audit: AuditFields = Field(default_factory=AuditFields)


class ContentTag(BaseModel):
    content_id: str
    tag: str
    normalized: str
    audit: AuditFields = Field(default_factory=AuditFields)


def normalize_tag(tag: str) -> str:
    """Lowercase, strip leading ``#`` and collapse whitespace."""
    return " ".join(tag.strip().lstrip("#").split()).lower()[:MAX_TAG_LENGTH]


def build_tags(content_id: str, tags: list[str]) -> list[ContentTag]:
    """One ContentTag per distinct normalized tag, first spelling wins."""
    seen: set[str] = set()
    records: list[ContentTag] = []
    for tag in tags:
        normalized = normalize_tag(tag)
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        records.append(
            ContentTag(content_id=content_id, tag=tag.strip().lstrip("#"), normalized=normalized)
        )
    return records
