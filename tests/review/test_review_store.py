"""Tests for PendingReviewStore persistence and guards."""

import pytest
from clipforge.errors import ConflictFailure, NotFoundFailure, StoreUnavailableError
from clipforge.review import (
    PENDING_FILENAME,
    EditableMetadata,
    PendingReviewItem,
    PendingReviewStatus,
    PendingReviewStore,
    ReviewPriority,
    priority_for,
)


def _make_item(job_id: str = "job-1", **kwargs: object) -> PendingReviewItem:
    kwargs.setdefault("quality_score", 80)
    kwargs.setdefault("review_priority", ReviewPriority.NORMAL)
    return PendingReviewItem(
        job_id=job_id,
        metadata=EditableMetadata(title="A clip"),
        video_key="edited-videos/v/x.mp4",
        **kwargs,  # type: ignore[arg-type]
    )


class TestPriority:
    @pytest.mark.parametrize(
        ("score", "expected"),
        [(100, ReviewPriority.HIGH), (90, ReviewPriority.HIGH), (89, ReviewPriority.NORMAL),
         (70, ReviewPriority.NORMAL), (69, ReviewPriority.LOW)],
    )
    def test_bands(self, score, expected):
        assert priority_for(score) == expected

    def test_rank_orders_high_first(self):
        ranked = sorted(ReviewPriority, key=lambda p: p.rank)
        assert ranked == [ReviewPriority.HIGH, ReviewPriority.NORMAL, ReviewPriority.LOW]


class TestPendingReviewStore:
    def test_insert_and_reload(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        item = store.insert(_make_item())

        reloaded = PendingReviewStore(tmp_path)
        assert reloaded.require(item.id).metadata.title == "A clip"
        assert (tmp_path / PENDING_FILENAME).exists()

    def test_one_item_per_job(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        store.insert(_make_item("job-1"))
        with pytest.raises(ConflictFailure):
            store.insert(_make_item("job-1"))

    def test_save_guards_status(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        item = store.insert(_make_item())
        decided = item.model_copy(update={"status": PendingReviewStatus.APPROVED})
        store.save(decided, expected_status=PendingReviewStatus.PENDING_REVIEW)

        with pytest.raises(ConflictFailure):
            store.save(
                item.model_copy(update={"status": PendingReviewStatus.REJECTED}),
                expected_status=PendingReviewStatus.PENDING_REVIEW,
            )
        assert store.require(item.id).status == PendingReviewStatus.APPROVED

    def test_save_unknown(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        with pytest.raises(NotFoundFailure):
            store.save(_make_item(), expected_status=PendingReviewStatus.PENDING_REVIEW)

    def test_soft_delete_hides_item(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        item = store.insert(_make_item())
        store.soft_delete(item.id, actor="ops")

        assert store.get(item.id) is None
        assert store.find_by_job("job-1") is None
        assert store.list() == []
        # a deleted item no longer blocks a new one for the same job
        store.insert(_make_item("job-1"))

    def test_list_by_status(self, tmp_path):
        store = PendingReviewStore(tmp_path)
        pending = store.insert(_make_item("a"))
        store.insert(_make_item("b", status=PendingReviewStatus.REJECTED))
        assert [i.id for i in store.list(PendingReviewStatus.PENDING_REVIEW)] == [pending.id]

    def test_corrupt_file(self, tmp_path):
        (tmp_path / PENDING_FILENAME).write_text("[not json", encoding="utf-8")
        with pytest.raises(StoreUnavailableError):
            PendingReviewStore(tmp_path)
