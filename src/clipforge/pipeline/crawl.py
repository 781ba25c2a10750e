"""Crawl stage: discover licensed source videos and download them.

Discovery inserts one PENDING job per new source video (the store's
source-video uniqueness makes repeated crawls idempotent).  Processing a
PENDING job downloads the raw asset and moves it to CRAWLED, so a failed
download is simply retried on the next run.
"""

from __future__ import annotations

import logging

from clipforge.capabilities.base import EvaluatedVideo, Recommendation, VideoCandidate
from clipforge.capabilities.language_model import neutral_evaluation
from clipforge.errors import ClipforgeError, ConflictFailure, PipelineReport, StoreUnavailableError
from clipforge.jobs import CandidateEvaluation, ContentJob, JobStatus
from clipforge.pipeline.base import Stage, StageOutcome

logger = logging.getLogger(__name__)


class CrawlStage(Stage):
    name = "crawl"
    input_status = JobStatus.PENDING

    def prepare(self, report: PipelineReport) -> None:
        crawl = self.context.config.crawl
        for query in crawl.queries:
            self.discover(query, crawl.language, crawl.max_results, report)

    def _evaluate(self, candidates: list[VideoCandidate]) -> list[EvaluatedVideo]:
        model = self.context.capabilities.language_model
        try:
            return self.call(lambda: model.evaluate_videos(candidates), "evaluate")
        except ClipforgeError as exc:
            logger.warning("Candidate evaluation failed, using neutral scores: %s", exc)
            return [neutral_evaluation(c) for c in candidates]

    def discover(
        self,
        query: str,
        language: str,
        max_results: int,
        report: PipelineReport | None = None,
    ) -> list[ContentJob]:
        """Search for candidates and insert a PENDING job for each new one."""
        caps = self.context.capabilities
        store = self.context.job_store
        try:
            candidates = self.call(
                lambda: caps.video_source.search_licensed_videos(query, max_results, language),
                "search",
            )
        except ClipforgeError as exc:
            logger.warning("Search %r failed: %s", query, exc)
            if report is not None:
                report.add_error(self.name, message=f"search {query!r} failed: {exc}", error=exc)
            return []

        fresh = [c for c in candidates if store.find_by_source_video_id(c.video_id) is None]
        if len(fresh) < len(candidates):
            logger.info("Skipping %d already-known video(s)", len(candidates) - len(fresh))
        if not fresh:
            return []

        created: list[ContentJob] = []
        for evaluation in self._evaluate(fresh):
            candidate = evaluation.candidate
            if evaluation.recommendation == Recommendation.SKIP:
                logger.info("Model recommends skipping %s: %s", candidate.video_id, evaluation.reasoning)
                continue
            try:
                job = self._create_job(candidate, evaluation, language)
            except StoreUnavailableError:
                raise
            except ConflictFailure:
                logger.debug("Video %s was inserted concurrently", candidate.video_id)
                continue
            except ClipforgeError as exc:
                logger.warning("Skipping candidate %s: %s", candidate.video_id, exc)
                if report is not None:
                    report.add_error(self.name, message=f"{candidate.video_id}: {exc}", error=exc)
                continue
            if job is not None:
                created.append(job)

        logger.info("Query %r created %d new job(s)", query, len(created))
        return created

    def _create_job(
        self, candidate: VideoCandidate, evaluation: EvaluatedVideo, language: str
    ) -> ContentJob | None:
        source = self.context.capabilities.video_source
        if not self.call(lambda: source.is_licensed(candidate.video_id), "license"):
            logger.info("Video %s is not openly licensed, skipping", candidate.video_id)
            return None
        details = self.call(lambda: source.get_video_details(candidate.video_id), "details")
        details = details or candidate

        job = ContentJob(
            source_video_id=details.video_id,
            channel_id=details.channel_id,
            channel_title=details.channel_title,
            source_title=details.title,
            source_duration_ms=details.duration_ms,
            source_view_count=details.view_count,
            source_like_count=details.like_count,
            language=language,
            evaluation=CandidateEvaluation(
                relevance=evaluation.relevance_score,
                educational_value=evaluation.educational_value,
                short_form_suitability=evaluation.short_form_suitability,
                predicted_quality=evaluation.predicted_quality,
            ),
        )
        return self.context.job_store.insert(job)

    def process(self, job: ContentJob) -> StageOutcome:
        downloader = self.context.capabilities.downloader
        raw_ref = self.call(lambda: downloader.download(job.source_video_id), "download")
        logger.info("Downloaded %s -> %s", job.source_video_id, raw_ref)
        return StageOutcome.success(job.advance(JobStatus.CRAWLED, raw_asset_ref=raw_ref))
