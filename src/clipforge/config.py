"""Unified configuration loaded from .clipforge.toml and env vars.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".clipforge.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
    Path.home() / ".config" / "clipforge",
]


class StorageBackend(StrEnum):
    LOCAL = "local"
    S3 = "s3"


class TranscriptionProvider(StrEnum):
    DEEPGRAM = "deepgram"
    WHISPER = "whisper"


class LLMProvider(StrEnum):
    CLAUDE = "claude"
    MOCK = "mock"


class StorageConfig(BaseModel):
    """[storage] section."""

    backend: StorageBackend = StorageBackend.LOCAL
    root: str = "./clipforge-data/blobs"
    bucket: str = "clipforge-media"
    region: str = "ap-northeast-2"
    endpoint_url: str = ""
    raw_prefix: str = "raw-videos"
    edited_prefix: str = "edited-videos"
    thumbnail_prefix: str = "thumbnails"
    temp_audio_prefix: str = "temp/audio"
    presign_ttl_seconds: int = 3600


class YouTubeConfig(BaseModel):
    """[youtube] section."""

    api_key: str = ""
    download_format: str = "bv*[height<=1080]+ba/b[height<=1080]"


class TranscriptionConfig(BaseModel):
    """[transcription] section."""

    provider: TranscriptionProvider = TranscriptionProvider.DEEPGRAM
    deepgram_api_key: str = ""
    deepgram_model: str = "nova-3"
    openai_api_key: str = ""
    whisper_model: str = "whisper-1"


class LLMConfig(BaseModel):
    """[llm] section."""

    provider: LLMProvider = LLMProvider.CLAUDE
    model: str | None = None
    timeout: int = 180


class RenderConfig(BaseModel):
    """[render] section."""

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    target_width: int = 1080
    target_height: int = 1920
    font_name: str = "Noto Sans KR"
    credit_overlay: bool = True
    temp_dir: str = ""
    process_timeout: int = 1800


class PipelineConfig(BaseModel):
    """[pipeline] section."""

    data_dir: str = "./clipforge-data"
    batch_size: int = 5
    max_workers: int = 4
    call_timeout: int = 900
    min_transcript_chars: int = 50
    min_clip_ms: int = 30_000
    max_clip_ms: int = 180_000
    segments_per_job: int = 1


class ScoringWeights(BaseModel):
    """Maximum points per quality signal. Must add up to 100."""

    popularity: int = 15
    educational_value: int = 20
    relevance: int = 15
    short_form_suitability: int = 15
    transcript_confidence: int = 15
    technical: int = 20

    @model_validator(mode="after")
    def _check_total(self) -> ScoringWeights:
        total = (
            self.popularity
            + self.educational_value
            + self.relevance
            + self.short_form_suitability
            + self.transcript_confidence
            + self.technical
        )
        if total != 100:
            raise ValueError(f"scoring weights must add up to 100, got {total}")
        return self


class ReviewConfig(BaseModel):
    """[review] section."""

    approval_threshold: int = 70
    high_priority_threshold: int = 90
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    min_width: int = 720
    min_height: int = 1280


class PublishConfig(BaseModel):
    """[publish] section."""

    system_user_id: str = "00000000-0000-0000-0000-000000000001"
    bucket: str = "clipforge-media"
    region: str = "ap-northeast-2"


class CrawlConfig(BaseModel):
    """[crawl] section."""

    queries: list[str] = Field(default_factory=list)
    language: str = "ko"
    max_results: int = 10


class ClipforgeConfig(BaseModel):
    """Top-level configuration model for the clipforge pipeline."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    youtube: YouTubeConfig = Field(default_factory=YouTubeConfig)
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    publish: PublishConfig = Field(default_factory=PublishConfig)
    crawl: CrawlConfig = Field(default_factory=CrawlConfig)

    @property
    def data_path(self) -> Path:
        return Path(self.pipeline.data_dir)


def load_config(path: str | Path | None = None) -> ClipforgeConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .clipforge.toml in CWD
    3. ~/.config/clipforge/config.toml

    Then overlay environment variables.
    """
    data: dict[str, Any] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        global_config = Path.home() / ".config" / "clipforge" / "config.toml"
        if not data and global_config.exists():
            data = _load_toml(global_config)
            logger.info("Loaded config from %s", global_config)

    config = ClipforgeConfig.model_validate(data) if data else ClipforgeConfig()
    return _apply_env_vars(config)


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


# env var -> (section, field)
_ENV_MAP: dict[str, tuple[str, str]] = {
    "YOUTUBE_API_KEY": ("youtube", "api_key"),
    "DEEPGRAM_API_KEY": ("transcription", "deepgram_api_key"),
    "OPENAI_API_KEY": ("transcription", "openai_api_key"),
    "CLIPFORGE_TRANSCRIPTION_PROVIDER": ("transcription", "provider"),
    "CLIPFORGE_LLM_PROVIDER": ("llm", "provider"),
    "CLIPFORGE_LLM_MODEL": ("llm", "model"),
    "CLIPFORGE_STORAGE_BACKEND": ("storage", "backend"),
    "CLIPFORGE_STORAGE_ROOT": ("storage", "root"),
    "CLIPFORGE_S3_BUCKET": ("storage", "bucket"),
    "CLIPFORGE_S3_REGION": ("storage", "region"),
    "CLIPFORGE_S3_ENDPOINT_URL": ("storage", "endpoint_url"),
    "CLIPFORGE_DATA_DIR": ("pipeline", "data_dir"),
    "CLIPFORGE_FFMPEG_PATH": ("render", "ffmpeg_path"),
    "CLIPFORGE_FFPROBE_PATH": ("render", "ffprobe_path"),
}


def _apply_env_vars(config: ClipforgeConfig) -> ClipforgeConfig:
    """Overlay non-empty environment variables onto the config."""
    data = config.model_dump()
    changed = False
    for env_name, (section, field) in _ENV_MAP.items():
        value = os.environ.get(env_name, "").strip()
        if value:
            data[section][field] = value
            changed = True

    threshold = os.environ.get("CLIPFORGE_APPROVAL_THRESHOLD", "").strip()
    if threshold:
        try:
            data["review"]["approval_threshold"] = int(threshold)
            changed = True
        except ValueError:
            logger.warning("Ignoring non-integer CLIPFORGE_APPROVAL_THRESHOLD=%r", threshold)

    return ClipforgeConfig.model_validate(data) if changed else config
