"""External capabilities and the factories that wire them from config.

Provider selection happens here, once, at startup.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from clipforge.capabilities.base import (
    AudioExtractor,
    BlobStorage,
    Downloader,
    LanguageModel,
    Transcriber,
    VideoRenderer,
    VideoSource,
)
from clipforge.config import (
    ClipforgeConfig,
    LLMProvider,
    StorageBackend,
    TranscriptionProvider,
)


@dataclass
class Capabilities:
    """One concrete client per external dependency."""

    video_source: VideoSource
    downloader: Downloader
    audio_extractor: AudioExtractor
    transcriber: Transcriber
    language_model: LanguageModel
    renderer: VideoRenderer
    storage: BlobStorage


def create_storage(config: ClipforgeConfig) -> BlobStorage:
    from clipforge.capabilities.storage import LocalBlobStorage, S3BlobStorage

    if config.storage.backend == StorageBackend.S3:
        return S3BlobStorage(
            config.storage.bucket,
            region=config.storage.region,
            endpoint_url=config.storage.endpoint_url,
        )
    return LocalBlobStorage(Path(config.storage.root))


def create_transcriber(config: ClipforgeConfig) -> Transcriber:
    from clipforge.capabilities.transcribers import DeepgramTranscriber, WhisperTranscriber

    tc = config.transcription
    if tc.provider == TranscriptionProvider.WHISPER:
        return WhisperTranscriber(tc.openai_api_key, model=tc.whisper_model)
    return DeepgramTranscriber(tc.deepgram_api_key, model=tc.deepgram_model)


def create_language_model(config: ClipforgeConfig) -> LanguageModel:
    from clipforge.capabilities.language_model import ClaudeLanguageModel, MockLanguageModel

    if config.llm.provider == LLMProvider.MOCK:
        return MockLanguageModel()
    return ClaudeLanguageModel(
        config.llm.model,
        timeout=config.llm.timeout,
        min_clip_ms=config.pipeline.min_clip_ms,
        max_clip_ms=config.pipeline.max_clip_ms,
    )


def create_capabilities(config: ClipforgeConfig) -> Capabilities:
    """Build the full capability set described by ``config``."""
    from clipforge.capabilities.downloader import YtDlpDownloader
    from clipforge.capabilities.ffmpeg import FFmpegAudioExtractor, FFmpegRenderer
    from clipforge.capabilities.youtube import YouTubeVideoSource

    storage = create_storage(config)
    render = config.render
    return Capabilities(
        video_source=YouTubeVideoSource(config.youtube.api_key),
        downloader=YtDlpDownloader(
            storage,
            raw_prefix=config.storage.raw_prefix,
            download_format=config.youtube.download_format,
            temp_dir=render.temp_dir,
        ),
        audio_extractor=FFmpegAudioExtractor(
            ffmpeg_path=render.ffmpeg_path, timeout=render.process_timeout
        ),
        transcriber=create_transcriber(config),
        language_model=create_language_model(config),
        renderer=FFmpegRenderer(
            ffmpeg_path=render.ffmpeg_path,
            ffprobe_path=render.ffprobe_path,
            font_name=render.font_name,
            timeout=render.process_timeout,
        ),
        storage=storage,
    )


__all__ = [
    "AudioExtractor",
    "BlobStorage",
    "Capabilities",
    "Downloader",
    "LanguageModel",
    "Transcriber",
    "VideoRenderer",
    "VideoSource",
    "create_capabilities",
    "create_language_model",
    "create_storage",
    "create_transcriber",
]
