"""Capability contracts consumed by the pipeline stages.

Each external dependency gets one abstract interface here; concrete
implementations live beside it and are chosen once, at startup, by the
factory functions in ``clipforge.capabilities``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field

from clipforge.jobs.models import Category, Difficulty, Segment, TranscriptSegment


class VideoCandidate(BaseModel):
    """A licensed source video found by the video-source capability."""

    video_id: str
    title: str = ""
    channel_id: str = ""
    channel_title: str = ""
    description: str = ""
    published_at: str = ""
    duration_ms: int | None = None
    thumbnail_url: str = ""
    view_count: int | None = None
    like_count: int | None = None
    license: str = ""


class Recommendation(StrEnum):
    HIGHLY_RECOMMENDED = "HIGHLY_RECOMMENDED"
    RECOMMENDED = "RECOMMENDED"
    MAYBE = "MAYBE"
    SKIP = "SKIP"


class EvaluatedVideo(BaseModel):
    """Model pre-evaluation of a candidate, based on its metadata only."""

    candidate: VideoCandidate
    relevance_score: int = 50
    educational_value: int = 50
    short_form_suitability: int = 50
    predicted_quality: int = 50
    recommendation: Recommendation = Recommendation.MAYBE
    reasoning: str = ""


class TranscriptResult(BaseModel):
    text: str
    segments: list[TranscriptSegment] = Field(default_factory=list)
    language: str | None = None
    confidence: float | None = None


class GeneratedMetadata(BaseModel):
    title: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    category: Category = Category.OTHER
    difficulty: Difficulty | None = None


class VideoInfo(BaseModel):
    duration_ms: int
    width: int
    height: int
    codec: str | None = None


class VideoSource(ABC):
    """Discovers openly-licensed source videos."""

    @abstractmethod
    def search_licensed_videos(
        self, query: str, max_results: int, language: str
    ) -> list[VideoCandidate]:
        """Search for Creative-Commons licensed candidates."""

    @abstractmethod
    def get_video_details(self, video_id: str) -> VideoCandidate | None:
        """Fetch full details (statistics, duration, license) for one video."""

    @abstractmethod
    def is_licensed(self, video_id: str) -> bool:
        """Re-check that the video is still openly licensed."""


class Downloader(ABC):
    """Fetches raw source bytes into blob storage."""

    @abstractmethod
    def download(self, video_id: str) -> str:
        """Download ``video_id`` and return its storage reference."""


class AudioExtractor(ABC):
    """Extracts a speech-optimized mono audio track."""

    @abstractmethod
    def extract_audio(self, video_url: str, output_path: Path) -> Path:
        """Write mono ~16 kHz low-bitrate speech audio to ``output_path``."""


class Transcriber(ABC):
    """Speech-to-text over an audio URL."""

    name: str = ""

    @abstractmethod
    def transcribe(self, audio_url: str, language: str | None = None) -> TranscriptResult:
        """Return text, timestamped segments, detected language and confidence."""


class LanguageModel(ABC):
    """Language-model capability used by crawl and analyze."""

    provider: str = ""
    model: str = ""

    @abstractmethod
    def extract_segments(self, transcript: str, meta: dict[str, str]) -> list[Segment]:
        """Extract candidate segments, each with a 0-100 relevance score."""

    @abstractmethod
    def generate_metadata(
        self, transcript: str, segments: list[Segment], language: str
    ) -> GeneratedMetadata:
        """Generate title, description, tags, category and difficulty."""

    @abstractmethod
    def evaluate_videos(self, candidates: list[VideoCandidate]) -> list[EvaluatedVideo]:
        """Pre-evaluate candidates from their metadata."""


class VideoRenderer(ABC):
    """Cuts, decorates and converts video files."""

    @abstractmethod
    def probe(self, input_ref: str) -> VideoInfo:
        """Return duration and resolution of a local file or URL."""

    @abstractmethod
    def cut(self, input_ref: str, output_path: Path, start_ms: int, end_ms: int) -> Path:
        """Cut ``[start_ms, end_ms)`` out of the input."""

    @abstractmethod
    def burn_subtitles(
        self, input_path: Path, output_path: Path, srt_path: Path | None, title: str
    ) -> Path:
        """Burn a title banner and, if given, a subtitle track."""

    @abstractmethod
    def overlay_credit(self, input_path: Path, output_path: Path, text: str) -> Path:
        """Overlay an attribution credit line."""

    @abstractmethod
    def convert_aspect(self, input_path: Path, output_path: Path, width: int, height: int) -> Path:
        """Scale and pad to the target frame."""

    @abstractmethod
    def generate_thumbnail(self, input_path: Path, output_path: Path, at_ms: int) -> Path:
        """Grab one frame as a JPEG thumbnail."""


class BlobStorage(ABC):
    """Object storage for raw, rendered and temporary assets."""

    @abstractmethod
    def upload(self, local_path: Path, key: str, content_type: str = "") -> str:
        """Upload atomically and return the reference (the key)."""

    @abstractmethod
    def presigned_url(self, ref: str, ttl_seconds: int = 3600) -> str:
        """Return a time-limited readable URL for ``ref``."""

    @abstractmethod
    def delete(self, ref: str) -> None:
        """Delete ``ref``; deleting a missing object is not an error."""

    @abstractmethod
    def exists(self, ref: str) -> bool:
        """Check whether ``ref`` is present."""
