"""Edit stage: render the short-form clip and its thumbnail.

Cut -> subtitles and title -> credit overlay -> target aspect -> thumbnail,
all in a per-job temporary directory.  The clip and thumbnail are uploaded
as a pair: if the thumbnail upload fails the clip is deleted again, so a
job never references half of its assets.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from clipforge.errors import ClipforgeError, ValidationFailure
from clipforge.jobs import ContentJob, JobStatus
from clipforge.pipeline.attribution import credit_line
from clipforge.pipeline.base import Stage, StageOutcome
from clipforge.subtitles import clip_segments, write_srt

logger = logging.getLogger(__name__)


def adjust_clip_range(
    start_ms: int, end_ms: int, source_ms: int, *, min_ms: int, max_ms: int
) -> tuple[int, int]:
    """Clamp ``[start_ms, end_ms)`` to the source and the length bounds.

    A source shorter than ``min_ms`` is used whole.
    """
    if source_ms <= min_ms:
        return 0, source_ms
    end_ms = min(end_ms, source_ms)
    start_ms = max(0, min(start_ms, end_ms))
    if end_ms - start_ms < min_ms:
        start_ms = max(0, end_ms - min_ms)
        end_ms = min(source_ms, start_ms + min_ms)
    if end_ms - start_ms > max_ms:
        end_ms = start_ms + max_ms
    return start_ms, end_ms


class EditStage(Stage):
    name = "edit"
    input_status = JobStatus.ANALYZED

    def process(self, job: ContentJob) -> StageOutcome:
        segment = job.selected_segment
        if segment is None:
            raise ValidationFailure("No selected segment to render")
        if not job.raw_asset_ref:
            raise ValidationFailure("Raw asset reference missing")

        config = self.context.config
        caps = self.context.capabilities
        renderer = caps.renderer
        storage = caps.storage
        raw_ref = job.raw_asset_ref

        with tempfile.TemporaryDirectory(
            prefix="clipforge-edit-", dir=config.render.temp_dir or None
        ) as tmp:
            work = Path(tmp)
            source_url = storage.presigned_url(raw_ref, config.storage.presign_ttl_seconds)
            source = self.call(lambda: renderer.probe(source_url), "probe")
            start, end = adjust_clip_range(
                segment.start_ms,
                segment.end_ms,
                source.duration_ms,
                min_ms=config.pipeline.min_clip_ms,
                max_ms=config.pipeline.max_clip_ms,
            )
            logger.info("Rendering job %s: %d-%dms of %dms", job.id, start, end, source.duration_ms)

            subtitles = clip_segments(job.transcript_segments, start, end)
            srt_path = write_srt(subtitles, work / "subtitles.srt")
            title = job.generated_title or job.source_title

            current = self.call(
                lambda: renderer.cut(source_url, work / "cut.mp4", start, end), "cut"
            )
            current = self.call(
                lambda: renderer.burn_subtitles(
                    current, work / "subtitled.mp4", srt_path if subtitles else None, title
                ),
                "subtitles",
            )
            if config.render.credit_overlay:
                credit = credit_line(job)
                current = self.call(
                    lambda: renderer.overlay_credit(current, work / "credited.mp4", credit),
                    "credit",
                )
            final = self.call(
                lambda: renderer.convert_aspect(
                    current,
                    work / "final.mp4",
                    config.render.target_width,
                    config.render.target_height,
                ),
                "aspect",
            )
            rendered = self.call(lambda: renderer.probe(str(final)), "probe-final")
            thumb_at = min(3000, rendered.duration_ms // 2)
            thumbnail = self.call(
                lambda: renderer.generate_thumbnail(final, work / "thumbnail.jpg", thumb_at),
                "thumbnail",
            )

            video_key, thumb_key = self._upload_pair(job, final, thumbnail)

        return StageOutcome.success(
            job.advance(
                JobStatus.EDITED,
                edited_asset_ref=video_key,
                thumbnail_ref=thumb_key,
                rendered_duration_ms=rendered.duration_ms,
                rendered_width=rendered.width,
                rendered_height=rendered.height,
            )
        )

    def _upload_pair(self, job: ContentJob, video: Path, thumbnail: Path) -> tuple[str, str]:
        storage_cfg = self.context.config.storage
        storage = self.context.capabilities.storage
        video_key = f"{storage_cfg.edited_prefix}/{job.source_video_id}/{job.id}.mp4"
        thumb_key = f"{storage_cfg.thumbnail_prefix}/{job.source_video_id}/{job.id}.jpg"

        self.call(lambda: storage.upload(video, video_key, content_type="video/mp4"), "upload")
        try:
            self.call(
                lambda: storage.upload(thumbnail, thumb_key, content_type="image/jpeg"),
                "upload-thumbnail",
            )
        except ClipforgeError:
            logger.warning("Thumbnail upload failed for job %s; removing %s", job.id, video_key)
            try:
                storage.delete(video_key)
            except ClipforgeError as exc:
                logger.error("Could not remove orphaned clip %s: %s", video_key, exc)
            raise
        return video_key, thumb_key
