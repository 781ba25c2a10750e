"""Shared fixtures: an isolated data directory and offline capabilities."""

from __future__ import annotations

from pathlib import Path

import pytest
from clipforge.capabilities import Capabilities
from clipforge.capabilities.base import (
    AudioExtractor,
    Downloader,
    Transcriber,
    TranscriptResult,
    VideoCandidate,
    VideoInfo,
    VideoRenderer,
    VideoSource,
)
from clipforge.capabilities.language_model import MockLanguageModel
from clipforge.capabilities.storage import LocalBlobStorage
from clipforge.config import ClipforgeConfig
from clipforge.jobs import ContentJob, JobStatus, JobStore, TranscriptSegment
from clipforge.pipeline import ExecutionContext
from clipforge.review import PendingReviewStore


class FakeVideoSource(VideoSource):
    def __init__(self, candidates: list[VideoCandidate] | None = None) -> None:
        self.candidates = candidates or []
        self.unlicensed: set[str] = set()
        self.searches: list[str] = []

    def search_licensed_videos(self, query, max_results, language):
        self.searches.append(query)
        return self.candidates[:max_results]

    def get_video_details(self, video_id):
        for c in self.candidates:
            if c.video_id == video_id:
                return c
        return None

    def is_licensed(self, video_id):
        return video_id not in self.unlicensed


class FakeDownloader(Downloader):
    def __init__(self, storage: LocalBlobStorage, workdir: Path) -> None:
        self.storage = storage
        self.workdir = workdir
        self.calls: list[str] = []
        self.error: Exception | None = None

    def download(self, video_id):
        self.calls.append(video_id)
        if self.error is not None:
            raise self.error
        local = self.workdir / f"{video_id}.mp4"
        local.write_bytes(b"raw video")
        return self.storage.upload(local, f"raw-videos/{video_id}.mp4", "video/mp4")


class FakeAudioExtractor(AudioExtractor):
    def extract_audio(self, video_url, output_path):
        output_path.write_bytes(b"OggS")
        return output_path


class FakeTranscriber(Transcriber):
    name = "fake"

    def __init__(self) -> None:
        self.result = TranscriptResult(
            text="Photosynthesis turns light into chemical energy. " * 4,
            segments=[
                TranscriptSegment(start_ms=0, end_ms=3000, text="Photosynthesis"),
                TranscriptSegment(start_ms=3000, end_ms=6500, text="turns light"),
                TranscriptSegment(start_ms=6500, end_ms=10000, text="into energy."),
            ],
            language="en",
            confidence=0.93,
        )
        self.error: Exception | None = None
        self.calls = 0

    def transcribe(self, audio_url, language=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class FakeRenderer(VideoRenderer):
    """Writes placeholder files; ``probe`` reports ``source_info`` for the
    raw asset and ``rendered_info`` for anything rendered."""

    def __init__(self) -> None:
        self.source_info = VideoInfo(duration_ms=300_000, width=1920, height=1080)
        self.rendered_info = VideoInfo(duration_ms=60_000, width=1080, height=1920)
        self.calls: list[str] = []
        self.srt_paths: list[Path | None] = []

    def _write(self, output_path: Path, op: str) -> Path:
        self.calls.append(op)
        output_path.write_bytes(op.encode())
        return output_path

    def probe(self, input_ref):
        self.calls.append("probe")
        if input_ref.endswith("final.mp4"):
            return self.rendered_info
        return self.source_info

    def cut(self, input_ref, output_path, start_ms, end_ms):
        self.cut_range = (start_ms, end_ms)
        return self._write(output_path, "cut")

    def burn_subtitles(self, input_path, output_path, srt_path, title):
        self.srt_paths.append(srt_path)
        return self._write(output_path, "subtitles")

    def overlay_credit(self, input_path, output_path, text):
        return self._write(output_path, "credit")

    def convert_aspect(self, input_path, output_path, width, height):
        return self._write(output_path, "aspect")

    def generate_thumbnail(self, input_path, output_path, at_ms):
        self.thumbnail_at = at_ms
        return self._write(output_path, "thumbnail")


@pytest.fixture()
def config(tmp_path: Path) -> ClipforgeConfig:
    cfg = ClipforgeConfig()
    cfg.pipeline.data_dir = str(tmp_path / "data")
    cfg.pipeline.call_timeout = 10
    cfg.pipeline.batch_size = 10
    cfg.pipeline.max_workers = 2
    cfg.storage.root = str(tmp_path / "blobs")
    cfg.render.temp_dir = ""
    return cfg


@pytest.fixture()
def storage(tmp_path: Path) -> LocalBlobStorage:
    return LocalBlobStorage(tmp_path / "blobs")


@pytest.fixture()
def capabilities(tmp_path: Path, storage: LocalBlobStorage) -> Capabilities:
    workdir = tmp_path / "downloads"
    workdir.mkdir()
    return Capabilities(
        video_source=FakeVideoSource(),
        downloader=FakeDownloader(storage, workdir),
        audio_extractor=FakeAudioExtractor(),
        transcriber=FakeTranscriber(),
        language_model=MockLanguageModel(),
        renderer=FakeRenderer(),
        storage=storage,
    )


@pytest.fixture()
def context(config: ClipforgeConfig, capabilities: Capabilities) -> ExecutionContext:
    data_dir = config.data_path
    data_dir.mkdir(parents=True, exist_ok=True)
    return ExecutionContext(
        config=config,
        job_store=JobStore(data_dir),
        review_store=PendingReviewStore(data_dir),
        capabilities=capabilities,
    )


_PATH_TO = [
    JobStatus.CRAWLED,
    JobStatus.TRANSCRIBED,
    JobStatus.ANALYZED,
    JobStatus.EDITED,
    JobStatus.PENDING_APPROVAL,
]


@pytest.fixture()
def seed_job(context: ExecutionContext):
    """Insert a job and walk it along the happy path up to ``status``."""

    def _seed(status: JobStatus = JobStatus.PENDING, **fields) -> ContentJob:
        store = context.job_store
        fields.setdefault("source_video_id", f"vid-{len(store.list(include_deleted=True))}")
        job = store.insert(ContentJob(**fields))
        for target in _PATH_TO:
            if job.status == status:
                break
            job = store.save(job.advance(target), expected_status=job.status)
        return job

    return _seed
