"""Publish an approved review item into the production content records."""

from __future__ import annotations

import logging

from clipforge.config import PublishConfig
from clipforge.publish.models import (
    PublishedContent,
    PublishedContentInteraction,
    PublishedContentMetadata,
    build_tags,
)
from clipforge.publish.repository import PublishRepository
from clipforge.review.models import PendingReviewItem

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 1080
DEFAULT_HEIGHT = 1920


def public_url(bucket: str, region: str, key: str) -> str:
    return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


class PublishCoordinator:
    def __init__(self, repository: PublishRepository, config: PublishConfig) -> None:
        self.repository = repository
        self.config = config

    def publish(self, item: PendingReviewItem) -> str:
        """Create content, metadata, interaction and tag records for ``item``.

        Idempotent: an item that was already published returns its
        existing content id without writing anything.  The records are
        written in one unit of work, so a failure leaves none of them.
        """
        if item.published_content_id:
            return item.published_content_id
        existing = self.repository.find_by_pending_item(item.id)
        if existing is not None:
            logger.info("Item %s already published as %s", item.id, existing.id)
            return existing.id

        video_url = public_url(self.config.bucket, self.config.region, item.video_key)
        thumbnail_url = (
            public_url(self.config.bucket, self.config.region, item.thumbnail_key)
            if item.thumbnail_key
            else video_url
        )
        content = PublishedContent(
            creator_id=self.config.system_user_id,
            url=video_url,
            thumbnail_url=thumbnail_url,
            duration_seconds=item.duration_ms // 1000 if item.duration_ms is not None else None,
            width=item.width or DEFAULT_WIDTH,
            height=item.height or DEFAULT_HEIGHT,
            pending_item_id=item.id,
            job_id=item.job_id,
        )
        meta = item.metadata
        tags = build_tags(content.id, meta.tags)

        with self.repository.transaction() as unit:
            unit.create(content)
            unit.create_metadata(
                PublishedContentMetadata(
                    content_id=content.id,
                    title=meta.title,
                    description=meta.description,
                    category=meta.category,
                    difficulty=meta.difficulty,
                    tags=[t.normalized for t in tags],
                    language=item.language,
                )
            )
            unit.create_interaction(PublishedContentInteraction(content_id=content.id))
            unit.create_tags(tags)

        logger.info("Published item %s as content %s", item.id, content.id)
        return content.id
