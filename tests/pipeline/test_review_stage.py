"""Tests for ReviewStage: the automated quality gate."""

from unittest.mock import MagicMock

import pytest
from clipforge.errors import StoreUnavailableError
from clipforge.jobs import CandidateEvaluation, JobStatus
from clipforge.pipeline import PipelineRunner
from clipforge.pipeline.review import ReviewStage, item_from_job
from clipforge.review import PendingReviewStatus, ReviewPriority


def _stub_scorer(total: int) -> MagicMock:
    scorer = MagicMock()
    scorer.score.return_value.total = total
    return scorer


def _seed_edited(seed_job, **fields):
    fields.setdefault("source_video_id", "abc123")
    fields.setdefault("edited_asset_ref", "edited-videos/abc123/x.mp4")
    fields.setdefault("thumbnail_ref", "thumbnails/abc123/x.jpg")
    fields.setdefault("generated_title", "Light to Sugar")
    fields.setdefault("generated_tags", ["biology", "Plants"])
    fields.setdefault("rendered_duration_ms", 60_000)
    fields.setdefault("rendered_width", 1080)
    fields.setdefault("rendered_height", 1920)
    return seed_job(JobStatus.EDITED, **fields)


def _run(context, scorer):
    return PipelineRunner(context, [ReviewStage(context, scorer)]).run()


class TestQualityGate:
    def test_score_at_threshold_passes(self, context, seed_job):
        job = _seed_edited(seed_job)
        _run(context, _stub_scorer(70))

        stored = context.job_store.require(job.id)
        assert stored.status == JobStatus.PENDING_APPROVAL
        assert stored.quality_score == 70

        item = context.review_store.find_by_job(job.id)
        assert item is not None
        assert item.status == PendingReviewStatus.PENDING_REVIEW
        assert item.review_priority == ReviewPriority.NORMAL
        assert item.metadata.title == "Light to Sugar"
        assert item.video_key == "edited-videos/abc123/x.mp4"

    def test_score_below_threshold_rejected(self, context, seed_job):
        job = _seed_edited(seed_job)
        report = _run(context, _stub_scorer(69))

        stored = context.job_store.require(job.id)
        assert stored.status == JobStatus.REJECTED
        assert stored.rejection_reason == "Quality score 69 below threshold 70"
        assert context.review_store.find_by_job(job.id) is None
        assert report.counts("review").succeeded == 1

    @pytest.mark.parametrize(("score", "priority"), [(95, ReviewPriority.HIGH), (90, ReviewPriority.HIGH), (89, ReviewPriority.NORMAL)])
    def test_priority(self, context, seed_job, score, priority):
        job = _seed_edited(seed_job)
        _run(context, _stub_scorer(score))
        assert context.review_store.find_by_job(job.id).review_priority == priority

    def test_configured_threshold(self, context, seed_job):
        context.config.review.approval_threshold = 80
        job = _seed_edited(seed_job)
        _run(context, _stub_scorer(79))
        assert context.job_store.require(job.id).status == JobStatus.REJECTED

    def test_failed_job_write_removes_review_item(self, context, seed_job):
        job = _seed_edited(seed_job)
        store = context.job_store

        class _RacingScorer:
            def score(self, scored_job):
                # another writer moves the job on while we are scoring
                store.save(scored_job.fail("cancelled"), expected_status=JobStatus.EDITED)
                result = MagicMock()
                result.total = 90
                return result

        report = _run(context, _RacingScorer())

        assert store.require(job.id).status == JobStatus.FAILED
        assert context.review_store.find_by_job(job.id) is None
        assert report.counts("review").write_errors == 1

    def test_withdraw_failure_keeps_original_write_error(self, context, seed_job, monkeypatch):
        job = _seed_edited(seed_job)
        store = context.job_store

        class _RacingScorer:
            def score(self, scored_job):
                store.save(scored_job.fail("cancelled"), expected_status=JobStatus.EDITED)
                result = MagicMock()
                result.total = 90
                return result

        def _broken_soft_delete(item_id, **kwargs):
            raise StoreUnavailableError("review store offline")

        monkeypatch.setattr(context.review_store, "soft_delete", _broken_soft_delete)
        report = _run(context, _RacingScorer())

        assert store.require(job.id).status == JobStatus.FAILED
        assert report.counts("review").write_errors == 1
        assert report.errors[0].error_type == "ConflictFailure"

    def test_real_scorer_end_to_end(self, context, seed_job):
        job = _seed_edited(
            seed_job,
            source_view_count=500_000,
            source_like_count=20_000,
            transcript_confidence=0.93,
            evaluation=CandidateEvaluation(
                relevance=85, educational_value=80, short_form_suitability=75, predicted_quality=82
            ),
        )
        PipelineRunner(context, [ReviewStage(context)]).run()
        stored = context.job_store.require(job.id)
        assert stored.status == JobStatus.PENDING_APPROVAL
        assert 70 <= stored.quality_score <= 100


class TestItemFromJob:
    def test_title_falls_back_to_source(self, seed_job):
        job = seed_job(JobStatus.PENDING, source_title="Original")
        job = job.model_copy(update={"edited_asset_ref": "e.mp4", "quality_score": 75})
        item = item_from_job(job, ReviewPriority.NORMAL)
        assert item.metadata.title == "Original"
        assert item.thumbnail_key is None

    def test_requires_rendered_asset(self, seed_job):
        job = seed_job(JobStatus.PENDING)
        with pytest.raises(ValueError):
            item_from_job(job, ReviewPriority.LOW)
