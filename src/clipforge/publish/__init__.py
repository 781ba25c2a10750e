"""Publishing approved clips into the production content records."""

from clipforge.publish.coordinator import PublishCoordinator, public_url
from clipforge.publish.models import (
    ContentTag,
    PublishedContent,
    PublishedContentInteraction,
    PublishedContentMetadata,
    build_tags,
    normalize_tag,
)
from clipforge.publish.repository import (
    PUBLISHED_FILENAME,
    JsonPublishRepository,
    PublishRepository,
    PublishUnitOfWork,
)

__all__ = [
    "PUBLISHED_FILENAME",
    "ContentTag",
    "JsonPublishRepository",
    "PublishCoordinator",
    "PublishRepository",
    "PublishUnitOfWork",
    "PublishedContent",
    "PublishedContentInteraction",
    "PublishedContentMetadata",
    "build_tags",
    "normalize_tag",
    "public_url",
]
