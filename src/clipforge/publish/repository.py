"""Publish target contract and its JSON-file implementation.

All records of one publish go through a unit of work: they become visible
together when the unit commits, or not at all.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from clipforge.core import _atomic_write
from clipforge.errors import StoreUnavailableError
from clipforge.publish.models import (
    ContentTag,
    PublishedContent,
    PublishedContentInteraction,
    PublishedContentMetadata,
)

logger = logging.getLogger(__name__)

PUBLISHED_FILENAME = ".clipforge-published.json"


class PublishUnitOfWork(ABC):
    @abstractmethod
    def create(self, content: PublishedContent) -> None: ...

    @abstractmethod
    def create_metadata(self, metadata: PublishedContentMetadata) -> None: ...

    @abstractmethod
    def create_interaction(self, interaction: PublishedContentInteraction) -> None: ...

    @abstractmethod
    def create_tags(self, tags: list[ContentTag]) -> None: ...


class PublishRepository(ABC):
    """Write contract for the production content tables."""

    @abstractmethod
    def find_by_pending_item(self, pending_item_id: str) -> PublishedContent | None:
        """Return content already published for a review item, if any."""

    @abstractmethod
    def get(self, content_id: str) -> PublishedContent | None: ...

    @abstractmethod
    def transaction(self) -> AbstractContextManager[PublishUnitOfWork]:
        """Context manager yielding a unit of work committed on clean exit."""


class _PublishedData(BaseModel):
    contents: list[PublishedContent] = Field(default_factory=list)
    metadata: list[PublishedContentMetadata] = Field(default_factory=list)
    interactions: list[PublishedContentInteraction] = Field(default_factory=list)
    tags: list[ContentTag] = Field(default_factory=list)


class _StagedUnit(PublishUnitOfWork):
    def __init__(self) -> None:
        self.staged = _PublishedData()

    def create(self, content: PublishedContent) -> None:
        self.staged.contents.append(content)

    def create_metadata(self, metadata: PublishedContentMetadata) -> None:
        self.staged.metadata.append(metadata)

    def create_interaction(self, interaction: PublishedContentInteraction) -> None:
        self.staged.interactions.append(interaction)

    def create_tags(self, tags: list[ContentTag]) -> None:
        self.staged.tags.extend(tags)


class JsonPublishRepository(PublishRepository):
    """Keeps all published records in one JSON file, rewritten atomically."""

    def __init__(self, data_dir: Path) -> None:
        self._path = data_dir / PUBLISHED_FILENAME
        self._lock = threading.RLock()
        self._data = self._load()

    def _load(self) -> _PublishedData:
        if not self._path.exists():
            return _PublishedData()
        try:
            return _PublishedData.model_validate(
                json.loads(self._path.read_text(encoding="utf-8"))
            )
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot read {self._path}: {exc}") from exc
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StoreUnavailableError(f"Corrupt publish store at {self._path}: {exc}") from exc

    def find_by_pending_item(self, pending_item_id: str) -> PublishedContent | None:
        with self._lock:
            for content in self._data.contents:
                if content.pending_item_id == pending_item_id:
                    return content
        return None

    def get(self, content_id: str) -> PublishedContent | None:
        with self._lock:
            for content in self._data.contents:
                if content.id == content_id:
                    return content
        return None

    def metadata_for(self, content_id: str) -> PublishedContentMetadata | None:
        with self._lock:
            for meta in self._data.metadata:
                if meta.content_id == content_id:
                    return meta
        return None

    def interaction_for(self, content_id: str) -> PublishedContentInteraction | None:
        with self._lock:
            for interaction in self._data.interactions:
                if interaction.content_id == content_id:
                    return interaction
        return None

    def tags_for(self, content_id: str) -> list[ContentTag]:
        with self._lock:
            return [t for t in self._data.tags if t.content_id == content_id]

    @contextmanager
    def transaction(self) -> Iterator[PublishUnitOfWork]:
        with self._lock:
            unit = _StagedUnit()
            yield unit
            staged = unit.staged
            merged = _PublishedData(
                contents=[*self._data.contents, *staged.contents],
                metadata=[*self._data.metadata, *staged.metadata],
                interactions=[*self._data.interactions, *staged.interactions],
                tags=[*self._data.tags, *staged.tags],
            )
            try:
                _atomic_write(self._path, merged.model_dump_json(indent=2))
            except OSError as exc:
                raise StoreUnavailableError(f"Cannot write {self._path}: {exc}") from exc
            self._data = merged
            logger.debug("Committed %d content record(s)", len(staged.contents))
