"""JSON-backed store for pending review items."""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from clipforge.core import _atomic_write
from clipforge.errors import ConflictFailure, NotFoundFailure, StoreUnavailableError
from clipforge.jobs.models import SYSTEM_ACTOR
from clipforge.review.models import PendingReviewItem, PendingReviewStatus

logger = logging.getLogger(__name__)

PENDING_FILENAME = ".clipforge-pending.json"

# Alias to avoid shadowing by PendingReviewStore.list method
_list = list


class _StoreData(BaseModel):
    items: list[PendingReviewItem] = Field(default_factory=list)


class PendingReviewStore:
    """Thread-safe CRUD store for pending review items."""

    def __init__(self, data_dir: Path) -> None:
        self._path = data_dir / PENDING_FILENAME
        self._lock = threading.RLock()
        self._items: dict[str, PendingReviewItem] = {i.id: i for i in self._load().items}

    def _load(self) -> _StoreData:
        if not self._path.exists():
            return _StoreData()
        try:
            return _StoreData.model_validate(json.loads(self._path.read_text(encoding="utf-8")))
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot read review store at {self._path}: {exc}") from exc
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StoreUnavailableError(f"Corrupt review store at {self._path}: {exc}") from exc

    def _commit(self, item: PendingReviewItem) -> None:
        previous = self._items.get(item.id)
        self._items[item.id] = item
        try:
            _atomic_write(
                self._path,
                _StoreData(items=_list(self._items.values())).model_dump_json(indent=2),
            )
        except OSError as exc:
            if previous is None:
                self._items.pop(item.id, None)
            else:
                self._items[item.id] = previous
            raise StoreUnavailableError(f"Cannot write review store at {self._path}: {exc}") from exc

    # ── Write operations ─────────────────────────────────────────

    def insert(self, item: PendingReviewItem) -> PendingReviewItem:
        with self._lock:
            existing = self.find_by_job(item.job_id)
            if existing is not None:
                raise ConflictFailure(f"Job {item.job_id} already has review item {existing.id}")
            self._commit(item)
            return item

    def save(
        self, item: PendingReviewItem, *, expected_status: PendingReviewStatus
    ) -> PendingReviewItem:
        """Persist ``item`` if the stored copy is still at ``expected_status``."""
        with self._lock:
            current = self._items.get(item.id)
            if current is None or current.audit.is_deleted:
                raise NotFoundFailure(f"Review item {item.id} not found")
            if current.status != expected_status:
                raise ConflictFailure(
                    f"Review item {item.id} is already {current.status}"
                )
            self._commit(item)
            return item

    def soft_delete(self, item_id: str, *, actor: str = SYSTEM_ACTOR) -> None:
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.audit.is_deleted:
                return
            audit = item.audit.touched(actor).model_copy(
                update={"deleted_at": datetime.now(tz=UTC)}
            )
            self._commit(item.model_copy(update={"audit": audit}))

    # ── Read operations ──────────────────────────────────────────

    def get(self, item_id: str) -> PendingReviewItem | None:
        with self._lock:
            item = self._items.get(item_id)
        if item is None or item.audit.is_deleted:
            return None
        return item

    def require(self, item_id: str) -> PendingReviewItem:
        item = self.get(item_id)
        if item is None:
            raise NotFoundFailure(f"Review item {item_id} not found")
        return item

    def find_by_job(self, job_id: str) -> PendingReviewItem | None:
        with self._lock:
            for item in self._items.values():
                if item.job_id == job_id and not item.audit.is_deleted:
                    return item
        return None

    def list(self, status: PendingReviewStatus | None = None) -> _list[PendingReviewItem]:
        with self._lock:
            items = [i for i in self._items.values() if not i.audit.is_deleted]
        if status is not None:
            items = [i for i in items if i.status == status]
        return items
