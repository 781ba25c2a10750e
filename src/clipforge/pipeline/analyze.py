"""Analyze stage: pick highlight segments and generate publishing metadata.

The output depends only on the job and the model responses: segments are
ranked by relevance, then by start time, with no randomness.
"""

from __future__ import annotations

import logging

from clipforge.errors import ValidationFailure
from clipforge.jobs import ContentJob, ContentLanguage, JobStatus, Segment, TranscriptSegment
from clipforge.pipeline.attribution import build_attribution
from clipforge.pipeline.base import Stage, StageOutcome

logger = logging.getLogger(__name__)


def _hms(ms: int) -> str:
    seconds = ms // 1000
    return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"


def format_timestamped_transcript(transcript: str, segments: list[TranscriptSegment]) -> str:
    """Render ``[HH:MM:SS - HH:MM:SS] text`` lines, or the plain transcript."""
    if not segments:
        return transcript
    return "\n".join(f"[{_hms(s.start_ms)} - {_hms(s.end_ms)}] {s.text}" for s in segments)


def select_segments(
    candidates: list[Segment],
    *,
    min_ms: int,
    max_ms: int,
    source_duration_ms: int | None,
    keep: int = 1,
) -> list[Segment]:
    """Filter to platform length bounds and the source, then take the top ``keep``."""
    valid = []
    for seg in candidates:
        if not min_ms <= seg.duration_ms <= max_ms:
            continue
        if source_duration_ms and seg.end_ms > source_duration_ms:
            continue
        valid.append(seg)
    valid.sort(key=lambda s: (-s.relevance, s.start_ms, s.end_ms))
    return valid[:keep]


class AnalyzeStage(Stage):
    name = "analyze"
    input_status = JobStatus.TRANSCRIBED

    def process(self, job: ContentJob) -> StageOutcome:
        pipeline = self.context.config.pipeline
        model = self.context.capabilities.language_model

        transcript = (job.transcript or "").strip()
        if len(transcript) < pipeline.min_transcript_chars:
            raise ValidationFailure(
                f"Transcript too short ({len(transcript)} chars, "
                f"need {pipeline.min_transcript_chars})"
            )

        prompt_text = format_timestamped_transcript(transcript, job.transcript_segments)
        meta = {
            "title": job.source_title,
            "channel": job.channel_title,
            "language": job.language or "",
            "duration_ms": str(job.source_duration_ms or ""),
        }
        candidates = self.call(lambda: model.extract_segments(prompt_text, meta), "segments")
        selected = select_segments(
            candidates,
            min_ms=pipeline.min_clip_ms,
            max_ms=pipeline.max_clip_ms,
            source_duration_ms=job.source_duration_ms,
            keep=pipeline.segments_per_job,
        )
        if not selected:
            raise ValidationFailure(
                f"No usable segment: {len(candidates)} proposed, none between "
                f"{pipeline.min_clip_ms // 1000}s and {pipeline.max_clip_ms // 1000}s"
            )

        language = ContentLanguage.from_code(job.language) or ContentLanguage.KO
        metadata = self.call(
            lambda: model.generate_metadata(transcript, selected, language.value), "metadata"
        )

        description = metadata.description
        attribution = build_attribution(job, language)
        if attribution:
            description = f"{description}\n\n{attribution}" if description else attribution

        best = selected[0]
        logger.info(
            "Job %s: segment %d-%dms (relevance %d), title=%r",
            job.id,
            best.start_ms,
            best.end_ms,
            best.relevance,
            metadata.title,
        )
        return StageOutcome.success(
            job.advance(
                JobStatus.ANALYZED,
                segments=selected,
                generated_title=metadata.title,
                generated_description=description,
                generated_tags=metadata.tags,
                category=metadata.category,
                difficulty=metadata.difficulty,
                llm_provider=model.provider,
                llm_model=model.model,
                language=language.value,
            )
        )
