"""Tests for PendingReviewQueue: listing, editing, approve/reject and dashboard."""

import threading
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from clipforge.errors import ConflictFailure, NotFoundFailure, StoreUnavailableError, ValidationFailure
from clipforge.jobs import Category, JobStatus
from clipforge.pipeline.review import item_from_job
from clipforge.publish import JsonPublishRepository, PublishCoordinator
from clipforge.review import MetadataUpdate, PendingReviewQueue, PendingReviewStatus, ReviewPriority


@pytest.fixture()
def repository(context):
    return JsonPublishRepository(context.config.data_path)


@pytest.fixture()
def queue(context, repository):
    coordinator = PublishCoordinator(repository, context.config.publish)
    return PendingReviewQueue(context.review_store, context.job_store, coordinator)


@pytest.fixture()
def gated(context, seed_job):
    """Create a job at PENDING_APPROVAL plus its review item."""

    def _gated(
        score: int = 80,
        priority: ReviewPriority = ReviewPriority.NORMAL,
        age_minutes: int = 0,
        **fields,
    ):
        fields.setdefault("generated_title", "Light to Sugar")
        fields.setdefault("generated_tags", ["Biology", "#biology", "Plants"])
        fields.setdefault("category", Category.SCIENCE)
        job = seed_job(
            JobStatus.PENDING_APPROVAL,
            edited_asset_ref="edited-videos/v/x.mp4",
            thumbnail_ref="thumbnails/v/x.jpg",
            rendered_duration_ms=61_500,
            quality_score=score,
            **fields,
        )
        item = item_from_job(job, priority)
        if age_minutes:
            created = item.audit.created_at - timedelta(minutes=age_minutes)
            item = item.model_copy(
                update={"audit": item.audit.model_copy(update={"created_at": created})}
            )
        item = context.review_store.insert(item)
        return job, item

    return _gated


class TestList:
    def test_priority_then_newest(self, queue, gated):
        _, normal_old = gated(80, ReviewPriority.NORMAL, age_minutes=20)
        _, high = gated(95, ReviewPriority.HIGH, age_minutes=30)
        _, normal_new = gated(75, ReviewPriority.NORMAL, age_minutes=10)

        page = queue.list()
        assert [i.id for i in page.items] == [high.id, normal_new.id, normal_old.id]
        assert page.total == 3

    def test_pagination(self, queue, gated):
        for _ in range(3):
            gated()
        first = queue.list(page=0, page_size=2)
        second = queue.list(page=1, page_size=2)
        assert len(first.items) == 2 and first.has_next
        assert len(second.items) == 1 and not second.has_next

    def test_invalid_page(self, queue):
        with pytest.raises(ValidationFailure):
            queue.list(page=-1)

    def test_get_unknown(self, queue):
        with pytest.raises(NotFoundFailure):
            queue.get("missing")


class TestUpdateMetadata:
    def test_edits_reviewer_copy(self, queue, gated):
        _, item = gated()
        updated = queue.update_metadata(
            item.id, MetadataUpdate(title="Better title", tags=["plants"]), "editor@x"
        )
        assert updated.metadata.title == "Better title"
        assert updated.metadata.tags == ["plants"]
        assert updated.metadata.category == Category.SCIENCE
        assert updated.audit.updated_by == "editor@x"

    def test_empty_title_rejected(self, queue, gated):
        _, item = gated()
        with pytest.raises(ValidationFailure):
            queue.update_metadata(item.id, MetadataUpdate(title="  "), "editor")

    def test_decided_item_is_read_only(self, queue, gated):
        _, item = gated()
        queue.reject(item.id, "rev", "off topic")
        with pytest.raises(ConflictFailure):
            queue.update_metadata(item.id, MetadataUpdate(title="x"), "editor")


class TestApprove:
    def test_publishes_and_records_decision(self, context, queue, repository, gated):
        job, item = gated()
        queue.update_metadata(item.id, MetadataUpdate(title="Edited title"), "editor")

        approved = queue.approve(item.id, "reviewer@x")

        assert approved.status == PendingReviewStatus.APPROVED
        assert approved.reviewed_by == "reviewer@x"
        content_id = approved.published_content_id
        assert content_id is not None

        stored_job = context.job_store.require(job.id)
        assert stored_job.status == JobStatus.PUBLISHED
        assert stored_job.published_content_id == content_id
        assert stored_job.reviewed_by == "reviewer@x"

        content = repository.get(content_id)
        assert content is not None
        assert content.duration_seconds == 61
        assert content.url.endswith("/edited-videos/v/x.mp4")
        assert repository.metadata_for(content_id).title == "Edited title"
        interaction = repository.interaction_for(content_id)
        assert (interaction.like_count, interaction.view_count) == (0, 0)
        assert [t.normalized for t in repository.tags_for(content_id)] == ["biology", "plants"]

    def test_second_approve_conflicts_without_new_records(self, queue, repository, gated):
        _, item = gated()
        queue.approve(item.id, "a")
        with pytest.raises(ConflictFailure):
            queue.approve(item.id, "b")
        assert len(repository._data.contents) == 1

    def test_concurrent_approvals_publish_once(self, queue, repository, gated):
        _, item = gated()
        barrier = threading.Barrier(2)
        results: list[str] = []

        def _approve(reviewer: str) -> None:
            barrier.wait()
            try:
                queue.approve(item.id, reviewer)
                results.append("ok")
            except ConflictFailure:
                results.append("conflict")

        threads = [threading.Thread(target=_approve, args=(r,)) for r in ("a", "b")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == ["conflict", "ok"]
        assert len(repository._data.contents) == 1

    def test_publish_failure_leaves_item_pending(self, context, gated):
        job, item = gated()
        coordinator = MagicMock()
        coordinator.publish.side_effect = StoreUnavailableError("db down")
        failing_queue = PendingReviewQueue(context.review_store, context.job_store, coordinator)

        with pytest.raises(StoreUnavailableError):
            failing_queue.approve(item.id, "a")
        assert context.review_store.require(item.id).status == PendingReviewStatus.PENDING_REVIEW
        assert context.job_store.require(job.id).status == JobStatus.PENDING_APPROVAL

    def test_retry_after_job_write_failure_publishes_job(
        self, context, queue, repository, gated, monkeypatch
    ):
        job, item = gated()
        store = context.job_store
        original_save = store.save

        def _failing_save(*args, **kwargs):
            raise StoreUnavailableError("disk full")

        monkeypatch.setattr(store, "save", _failing_save)
        with pytest.raises(StoreUnavailableError):
            queue.approve(item.id, "reviewer@x")
        assert context.review_store.require(item.id).status == PendingReviewStatus.APPROVED
        assert store.require(job.id).status == JobStatus.PENDING_APPROVAL

        monkeypatch.setattr(store, "save", original_save)
        resumed = queue.approve(item.id, "someone-else")

        stored = store.require(job.id)
        assert stored.status == JobStatus.PUBLISHED
        assert stored.reviewed_by == "reviewer@x"
        assert stored.published_content_id == resumed.published_content_id
        assert len(repository._data.contents) == 1
        with pytest.raises(ConflictFailure):
            queue.approve(item.id, "reviewer@x")

    def test_job_not_awaiting_approval(self, context, queue, gated):
        job, item = gated()
        context.job_store.save(
            job.advance(JobStatus.REJECTED), expected_status=JobStatus.PENDING_APPROVAL
        )
        with pytest.raises(ConflictFailure):
            queue.approve(item.id, "a")


class TestReject:
    def test_rejects_item_and_job(self, context, queue, gated):
        job, item = gated()
        rejected = queue.reject(item.id, "rev", "audio too quiet")

        assert rejected.status == PendingReviewStatus.REJECTED
        assert rejected.rejection_reason == "audio too quiet"
        stored = context.job_store.require(job.id)
        assert stored.status == JobStatus.REJECTED
        assert stored.rejection_reason == "audio too quiet"

    def test_reason_required(self, queue, gated):
        _, item = gated()
        with pytest.raises(ValidationFailure):
            queue.reject(item.id, "rev", " ")

    def test_approve_after_reject_conflicts(self, queue, repository, gated):
        _, item = gated()
        queue.reject(item.id, "rev", "no")
        with pytest.raises(ConflictFailure):
            queue.approve(item.id, "rev")
        assert repository._data.contents == []


class TestDashboard:
    def test_counts(self, queue, gated):
        _, high = gated(95, ReviewPriority.HIGH, category=Category.SCIENCE)
        _, approved = gated(80, category=Category.HISTORY)
        _, rejected = gated(70, category=Category.SCIENCE)
        queue.approve(approved.id, "a")
        queue.reject(rejected.id, "a", "no")

        stats = queue.dashboard()
        assert stats.pending_review == 1
        assert stats.approved == 1
        assert stats.rejected == 1
        assert stats.high_priority_pending == 1
        assert stats.created_today == 3
        assert stats.approved_this_week == 1
        assert stats.rejected_this_week == 1
        assert stats.average_quality_score == pytest.approx(81.7)
        assert stats.by_category[0].category == Category.SCIENCE
        assert stats.by_category[0].count == 2

    def test_old_decisions_not_counted_this_week(self, queue, gated):
        _, item = gated()
        queue.reject(item.id, "a", "no")
        later = datetime.now(tz=UTC) + timedelta(days=8)
        stats = queue.dashboard(now=later)
        assert stats.rejected_this_week == 0
        assert stats.rejected == 1

    def test_empty(self, queue):
        stats = queue.dashboard()
        assert stats.pending_review == 0
        assert stats.average_quality_score is None
