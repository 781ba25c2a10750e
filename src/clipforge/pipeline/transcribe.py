"""Transcribe stage: extract speech audio and obtain a timestamped transcript.

Any failure leaves the job CRAWLED so that it is retried on the next run.
Local and remote audio artifacts are removed on every exit path.
"""

from __future__ import annotations

import logging
import tempfile
import threading
from pathlib import Path

from clipforge.errors import ClipforgeError, StoreUnavailableError
from clipforge.jobs import ContentJob, ContentLanguage, JobStatus
from clipforge.pipeline.base import Stage, StageOutcome
from clipforge.subtitles import normalize_segments

logger = logging.getLogger(__name__)


class TranscribeStage(Stage):
    name = "transcribe"
    input_status = JobStatus.CRAWLED

    def process(self, job: ContentJob) -> StageOutcome:
        if not job.raw_asset_ref:
            logger.debug("Job %s has no raw asset yet", job.id)
            return StageOutcome.skip("raw asset not available")
        try:
            return self._transcribe(job, job.raw_asset_ref)
        except StoreUnavailableError:
            raise
        except ClipforgeError as exc:
            logger.warning("Transcription of job %s deferred: %s", job.id, exc)
            return StageOutcome.skip(str(exc), exc)

    def _transcribe(self, job: ContentJob, raw_ref: str) -> StageOutcome:
        caps = self.context.capabilities
        config = self.context.config
        storage = caps.storage
        ttl = config.storage.presign_ttl_seconds
        audio_key = f"{config.storage.temp_audio_prefix.strip('/')}/{job.source_video_id}.ogg"
        # set once we stop waiting; an upload landing later removes itself
        abandoned = threading.Event()

        def _upload_audio(audio_path: Path) -> str:
            ref = storage.upload(audio_path, audio_key, content_type="audio/ogg")
            if abandoned.is_set():
                self._delete_quietly(audio_key)
            return ref

        with tempfile.TemporaryDirectory(
            prefix="clipforge-audio-", dir=config.render.temp_dir or None
        ) as tmp:
            try:
                video_url = storage.presigned_url(raw_ref, ttl)
                audio_path = Path(tmp) / f"{job.source_video_id}.ogg"
                self.call(
                    lambda: caps.audio_extractor.extract_audio(video_url, audio_path),
                    "extract-audio",
                )
                self.call(lambda: _upload_audio(audio_path), "upload-audio")
                audio_url = storage.presigned_url(audio_key, ttl)
                result = self.call(
                    lambda: caps.transcriber.transcribe(audio_url, job.language),
                    "transcribe",
                )
            finally:
                abandoned.set()
                self._delete_quietly(audio_key)

        segments = normalize_segments(result.segments)
        text = result.text.strip() or " ".join(s.text for s in segments)
        detected = ContentLanguage.from_code(result.language)
        language = detected.value if detected else job.language

        logger.info(
            "Transcribed job %s: %d chars, %d segments (lang=%s)",
            job.id,
            len(text),
            len(segments),
            language,
        )
        return StageOutcome.success(
            job.advance(
                JobStatus.TRANSCRIBED,
                transcript=text,
                transcript_segments=segments,
                transcript_confidence=result.confidence,
                transcriber_provider=caps.transcriber.name,
                language=language,
            )
        )

    def _delete_quietly(self, key: str) -> None:
        try:
            self.context.capabilities.storage.delete(key)
        except ClipforgeError as exc:
            logger.warning("Could not delete temporary audio %s: %s", key, exc)
