"""ffmpeg/ffprobe-backed rendering and audio extraction.

Every command runs with a timeout.  A non-zero exit means the input or
output is unusable (PermanentAssetFailure), unless stderr shows the
remote input could not be reached.  Unreachable inputs, timeouts and a
missing binary are transient so the job is retried on the next run.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path

from clipforge.capabilities.base import AudioExtractor, VideoInfo, VideoRenderer
from clipforge.errors import PermanentAssetFailure, TransientExternalFailure
from clipforge.jobs.models import TranscriptSegment
from clipforge.subtitles import write_srt

logger = logging.getLogger(__name__)

# Ends far beyond any clip so the title stays on screen throughout
_TITLE_END_MS = 99 * 3_600_000

# stderr fragments meaning the (presigned) input URL could not be read
_NETWORK_ERRORS = (
    "connection refused",
    "connection reset",
    "timed out",
    "network is unreachable",
    "temporary failure in name resolution",
    "server returned 403",
    "server returned 429",
    "server returned 5",
)


def is_network_error(stderr: str) -> bool:
    text = stderr.lower()
    return any(marker in text for marker in _NETWORK_ERRORS)


def _run(cmd: list[str], operation: str, timeout: int) -> subprocess.CompletedProcess[str]:
    logger.debug("ffmpeg %s: %s", operation, " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError as exc:
        raise TransientExternalFailure(f"{cmd[0]} not found on PATH ({operation})") from exc
    except subprocess.TimeoutExpired as exc:
        raise TransientExternalFailure(f"{operation} timed out after {timeout}s") from exc
    if result.returncode != 0:
        message = f"{operation} failed (exit {result.returncode}): {result.stderr[-500:]}"
        if is_network_error(result.stderr):
            raise TransientExternalFailure(message)
        raise PermanentAssetFailure(message)
    return result


def _escape_filter_path(path: Path) -> str:
    return str(path).replace("\\", "/").replace(":", "\\\\:").replace("'", "\\'")


def _wrap_title(title: str, max_chars: int = 18) -> str:
    """Wrap on spaces, keeping at most two lines."""
    if len(title) <= max_chars:
        return title
    lines: list[str] = []
    current = ""
    for word in title.split(" "):
        candidate = f"{current} {word}".strip()
        if len(candidate) <= max_chars or not current:
            current = candidate
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return "\n".join(lines[:2])


class FFmpegRenderer(VideoRenderer):
    def __init__(
        self,
        *,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        font_name: str = "Noto Sans KR",
        timeout: int = 1800,
    ) -> None:
        self._ffmpeg = ffmpeg_path
        self._ffprobe = ffprobe_path
        self._font = font_name
        self._timeout = timeout

    def probe(self, input_ref: str) -> VideoInfo:
        cmd = [
            self._ffprobe,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            input_ref,
        ]
        result = _run(cmd, "probe", timeout=120)
        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise PermanentAssetFailure(f"ffprobe returned invalid JSON for {input_ref}") from exc

        video = next(
            (s for s in data.get("streams", []) if s.get("codec_type") == "video"), None
        )
        try:
            duration_ms = int(float(data.get("format", {}).get("duration", 0)) * 1000)
        except (TypeError, ValueError):
            duration_ms = 0
        if video is None or duration_ms <= 0:
            raise PermanentAssetFailure(f"No playable video stream in {input_ref}")
        return VideoInfo(
            duration_ms=duration_ms,
            width=int(video.get("width") or 0),
            height=int(video.get("height") or 0),
            codec=video.get("codec_name"),
        )

    def cut(self, input_ref: str, output_path: Path, start_ms: int, end_ms: int) -> Path:
        cmd = [
            self._ffmpeg,
            "-ss", f"{start_ms / 1000:.3f}",
            "-i", input_ref,
            "-t", f"{(end_ms - start_ms) / 1000:.3f}",
            "-c:v", "libx264",
            "-preset", "fast",
            "-crf", "23",
            "-c:a", "aac",
            "-b:a", "128k",
            "-y",
            str(output_path),
        ]
        _run(cmd, "cut", self._timeout)
        return output_path

    def burn_subtitles(
        self, input_path: Path, output_path: Path, srt_path: Path | None, title: str
    ) -> Path:
        title_srt = output_path.with_name(output_path.stem + "_title.srt")
        write_srt(
            [TranscriptSegment(start_ms=0, end_ms=_TITLE_END_MS, text=_wrap_title(title))],
            title_srt,
        )
        filters = [
            f"subtitles='{_escape_filter_path(title_srt)}':"
            f"force_style='FontName={self._font},FontSize=20,PrimaryColour=&HFFFFFF,"
            "OutlineColour=&H000000,Outline=2,BackColour=&H80000000,Bold=1,"
            "Alignment=8,MarginV=15'"
        ]
        if srt_path is not None and srt_path.exists() and srt_path.stat().st_size > 0:
            filters.append(
                f"subtitles='{_escape_filter_path(srt_path)}':"
                f"force_style='FontName={self._font},FontSize=14,PrimaryColour=&HFFFFFF,"
                "OutlineColour=&H000000,Outline=1,Bold=1,Alignment=2,MarginV=60'"
            )
        cmd = [
            self._ffmpeg,
            "-i", str(input_path),
            "-vf", ",".join(filters),
            "-c:v", "libx264",
            "-preset", "fast",
            "-crf", "23",
            "-c:a", "copy",
            "-y",
            str(output_path),
        ]
        try:
            _run(cmd, "burn subtitles", self._timeout)
        finally:
            title_srt.unlink(missing_ok=True)
        return output_path

    def overlay_credit(self, input_path: Path, output_path: Path, text: str) -> Path:
        credit_srt = output_path.with_name(output_path.stem + "_credit.srt")
        write_srt([TranscriptSegment(start_ms=0, end_ms=_TITLE_END_MS, text=text)], credit_srt)
        vf = (
            f"subtitles='{_escape_filter_path(credit_srt)}':"
            f"force_style='FontName={self._font},FontSize=9,PrimaryColour=&HCCFFFFFF,"
            "Outline=1,Alignment=3,MarginR=20,MarginV=20'"
        )
        cmd = [
            self._ffmpeg,
            "-i", str(input_path),
            "-vf", vf,
            "-c:v", "libx264",
            "-preset", "fast",
            "-crf", "23",
            "-c:a", "copy",
            "-y",
            str(output_path),
        ]
        try:
            _run(cmd, "credit overlay", self._timeout)
        finally:
            credit_srt.unlink(missing_ok=True)
        return output_path

    def convert_aspect(self, input_path: Path, output_path: Path, width: int, height: int) -> Path:
        vf = (
            f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
        )
        cmd = [
            self._ffmpeg,
            "-i", str(input_path),
            "-vf", vf,
            "-c:v", "libx264",
            "-preset", "fast",
            "-crf", "23",
            "-c:a", "copy",
            "-y",
            str(output_path),
        ]
        _run(cmd, "convert aspect", self._timeout)
        return output_path

    def generate_thumbnail(self, input_path: Path, output_path: Path, at_ms: int) -> Path:
        cmd = [
            self._ffmpeg,
            "-ss", f"{at_ms / 1000:.3f}",
            "-i", str(input_path),
            "-vframes", "1",
            "-q:v", "2",
            "-y",
            str(output_path),
        ]
        _run(cmd, "thumbnail", timeout=120)
        if not output_path.exists() or output_path.stat().st_size == 0:
            raise PermanentAssetFailure(f"Thumbnail not produced for {input_path}")
        return output_path


class FFmpegAudioExtractor(AudioExtractor):
    """Mono 16 kHz Opus at 32 kbps, sized for speech recognition."""

    def __init__(self, *, ffmpeg_path: str = "ffmpeg", timeout: int = 1800) -> None:
        self._ffmpeg = ffmpeg_path
        self._timeout = timeout

    def extract_audio(self, video_url: str, output_path: Path) -> Path:
        cmd = [
            self._ffmpeg,
            "-i", video_url,
            "-vn",
            "-acodec", "libopus",
            "-ar", "16000",
            "-ac", "1",
            "-b:a", "32k",
            "-y",
            str(output_path),
        ]
        _run(cmd, "extract audio", self._timeout)
        logger.info("Extracted audio to %s (%d bytes)", output_path, output_path.stat().st_size)
        return output_path
