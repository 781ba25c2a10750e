"""Tests for PipelineRunner, stage locks and per-call timeouts."""

import os
import threading
import time

import pytest
from clipforge.capabilities.base import VideoCandidate
from clipforge.errors import ConflictFailure, StoreUnavailableError, TransientExternalFailure
from clipforge.jobs import ContentJob, JobStatus
from clipforge.pipeline import PipelineRunner, Stage, StageLock, StageOutcome, call_with_timeout
from clipforge.pipeline.runner import STAGE_ORDER, STALE_LOCK_SECONDS, default_stages


class _CrawlOnly(Stage):
    """Advances PENDING jobs to CRAWLED; behaviour per job set by the test."""

    name = "fake"
    input_status = JobStatus.PENDING

    def __init__(self, context, on_process=None) -> None:
        super().__init__(context)
        self.on_process = on_process or (lambda job: None)

    def process(self, job: ContentJob) -> StageOutcome:
        self.on_process(job)
        return StageOutcome.success(job.advance(JobStatus.CRAWLED, raw_asset_ref="r.mp4"))


class TestRunStage:
    def test_write_error_is_isolated(self, context, seed_job):
        racing = seed_job(source_video_id="racing")
        calm = seed_job(source_video_id="calm")
        store = context.job_store

        def _race(job):
            if job.id == racing.id:
                store.save(job.fail("cancelled elsewhere"), expected_status=JobStatus.PENDING)

        report = PipelineRunner(context, [_CrawlOnly(context, _race)]).run()

        counts = report.counts("fake")
        assert counts.read == 2
        assert counts.succeeded == 1
        assert counts.write_errors == 1
        assert store.require(calm.id).status == JobStatus.CRAWLED
        assert store.require(racing.id).status == JobStatus.FAILED
        assert report.errors[0].job_id == racing.id

    def test_unexpected_error_skips_job(self, context, seed_job):
        job = seed_job()

        def _boom(_job):
            raise RuntimeError("bug")

        report = PipelineRunner(context, [_CrawlOnly(context, _boom)]).run()
        assert context.job_store.require(job.id).status == JobStatus.PENDING
        assert report.counts("fake").skipped == 1
        assert report.errors[0].error_type == "RuntimeError"

    def test_store_unavailable_aborts_run(self, context, seed_job):
        seed_job()

        def _down(_job):
            raise StoreUnavailableError("disk gone")

        with pytest.raises(StoreUnavailableError):
            PipelineRunner(context, [_CrawlOnly(context, _down)]).run()

    def test_batch_size_bounds_selection(self, context, seed_job):
        for i in range(3):
            seed_job(source_video_id=f"v{i}")
        context.config.pipeline.batch_size = 2

        report = PipelineRunner(context, [_CrawlOnly(context)]).run()
        assert report.counts("fake").read == 2
        assert len(context.job_store.list(JobStatus.PENDING)) == 1

    def test_only_filter(self, context, seed_job):
        seed_job()
        report = PipelineRunner(context, [_CrawlOnly(context)]).run(only=["other"])
        assert report.stages == {}

    def test_lock_released_after_run(self, context, seed_job):
        seed_job()
        PipelineRunner(context, [_CrawlOnly(context)]).run()
        assert not (context.config.data_path / ".clipforge-fake.lock").exists()


class TestStageLock:
    def test_second_holder_conflicts(self, tmp_path):
        with StageLock(tmp_path, "edit"):
            with pytest.raises(ConflictFailure):
                with StageLock(tmp_path, "edit"):
                    pass
        with StageLock(tmp_path, "edit"):
            pass

    def test_stale_lock_is_broken(self, tmp_path):
        lock = tmp_path / ".clipforge-edit.lock"
        lock.write_text("12345")
        old = time.time() - STALE_LOCK_SECONDS - 60
        os.utime(lock, (old, old))

        with StageLock(tmp_path, "edit"):
            assert lock.read_text() == str(os.getpid())

    def test_held_lock_skips_stage_run(self, context, seed_job):
        job = seed_job()
        with StageLock(context.config.data_path, "fake"):
            with pytest.raises(ConflictFailure):
                PipelineRunner(context, [_CrawlOnly(context)]).run()
        assert context.job_store.require(job.id).status == JobStatus.PENDING


class TestCallWithTimeout:
    def test_returns_value(self):
        assert call_with_timeout(lambda: 42, 1, "answer") == 42

    def test_propagates_errors(self):
        def _fail():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            call_with_timeout(_fail, 1, "fail")

    def test_timeout_is_transient(self):
        release = threading.Event()
        with pytest.raises(TransientExternalFailure, match="timed out"):
            call_with_timeout(lambda: release.wait(5), 0.05, "slow")
        release.set()


class TestFullPipeline:
    def test_default_stage_order(self, context):
        assert [s.name for s in default_stages(context)] == list(STAGE_ORDER)

    def test_crawl_to_pending_approval(self, context):
        context.config.crawl.queries = ["photosynthesis"]
        context.capabilities.video_source.candidates = [
            VideoCandidate(
                video_id="abc123",
                title="Plants and Light",
                channel_title="Open Biology",
                duration_ms=300_000,
                view_count=500_000,
                like_count=20_000,
            )
        ]

        report = PipelineRunner(context).run()

        job = context.job_store.find_by_source_video_id("abc123")
        assert job is not None
        assert job.status == JobStatus.PENDING_APPROVAL, report.summary()
        assert job.quality_score is not None and job.quality_score >= 70
        assert context.review_store.find_by_job(job.id) is not None
        for stage in STAGE_ORDER:
            assert report.counts(stage).succeeded == 1
