"""Speech-to-text providers: Deepgram and OpenAI Whisper."""

from __future__ import annotations

import json
import logging
import math
import urllib.request
import uuid
from pathlib import Path
from typing import Any

from clipforge.capabilities.base import Transcriber, TranscriptResult
from clipforge.capabilities.http import HTTPRequestError, request_json
from clipforge.errors import PermanentAssetFailure, TransientExternalFailure
from clipforge.jobs.models import TranscriptSegment

logger = logging.getLogger(__name__)

DEEPGRAM_LISTEN_URL = "https://api.deepgram.com/v1/listen"
WHISPER_URL = "https://api.openai.com/v1/audio/transcriptions"


def _is_remote(ref: str) -> bool:
    return ref.startswith(("http://", "https://"))


def _read_audio(ref: str, timeout: int) -> bytes:
    if not _is_remote(ref):
        try:
            return Path(ref).read_bytes()
        except OSError as exc:
            raise PermanentAssetFailure(f"Cannot read audio {ref}: {exc}") from exc
    try:
        with urllib.request.urlopen(ref, timeout=timeout) as resp:
            return resp.read()
    except OSError as exc:
        raise TransientExternalFailure(f"Cannot fetch audio: {exc}") from exc


def parse_deepgram_response(data: dict[str, Any]) -> TranscriptResult:
    """Turn a Deepgram pre-recorded response into a TranscriptResult.

    Utterances become segments; without them the whole transcript is one
    segment spanning the reported duration.
    """
    results = data.get("results", {})
    channels = results.get("channels") or [{}]
    channel = channels[0]
    alternative = (channel.get("alternatives") or [{}])[0]
    text = (alternative.get("transcript") or "").strip()

    segments: list[TranscriptSegment] = []
    for utt in results.get("utterances") or []:
        utt_text = (utt.get("transcript") or "").strip()
        if not utt_text:
            continue
        start = int(round(float(utt.get("start", 0)) * 1000))
        end = int(round(float(utt.get("end", 0)) * 1000))
        if end > start:
            segments.append(TranscriptSegment(start_ms=start, end_ms=end, text=utt_text))

    if not segments and text:
        duration = float(data.get("metadata", {}).get("duration") or 0)
        if duration > 0:
            segments.append(
                TranscriptSegment(start_ms=0, end_ms=int(duration * 1000), text=text)
            )

    confidence = alternative.get("confidence")
    return TranscriptResult(
        text=text,
        segments=segments,
        language=channel.get("detected_language"),
        confidence=float(confidence) if confidence is not None else None,
    )


def parse_whisper_response(data: dict[str, Any]) -> TranscriptResult:
    """Turn a Whisper ``verbose_json`` response into a TranscriptResult.

    Confidence is the mean of ``exp(avg_logprob)`` over segments.
    """
    segments: list[TranscriptSegment] = []
    probabilities: list[float] = []
    for seg in data.get("segments") or []:
        seg_text = (seg.get("text") or "").strip()
        start = int(round(float(seg.get("start", 0)) * 1000))
        end = int(round(float(seg.get("end", 0)) * 1000))
        if seg_text and end > start:
            segments.append(TranscriptSegment(start_ms=start, end_ms=end, text=seg_text))
        if seg.get("avg_logprob") is not None:
            probabilities.append(math.exp(float(seg["avg_logprob"])))

    language = data.get("language")
    return TranscriptResult(
        text=(data.get("text") or "").strip(),
        segments=segments,
        language=language,
        confidence=sum(probabilities) / len(probabilities) if probabilities else None,
    )


class DeepgramTranscriber(Transcriber):
    name = "deepgram"

    def __init__(self, api_key: str, *, model: str = "nova-3", timeout: int = 600) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    def transcribe(self, audio_url: str, language: str | None = None) -> TranscriptResult:
        if not self._api_key:
            raise TransientExternalFailure("DEEPGRAM_API_KEY not set")
        params: dict[str, Any] = {
            "model": self._model,
            "smart_format": "true",
            "punctuate": "true",
            "utterances": "true",
        }
        if language:
            params["language"] = language
        else:
            params["detect_language"] = "true"

        headers = {"Authorization": f"Token {self._api_key}"}
        if _is_remote(audio_url):
            headers["Content-Type"] = "application/json"
            body = json.dumps({"url": audio_url}).encode("utf-8")
        else:
            headers["Content-Type"] = "audio/ogg"
            body = _read_audio(audio_url, self._timeout)

        try:
            data = request_json(
                "POST",
                DEEPGRAM_LISTEN_URL,
                params=params,
                headers=headers,
                data=body,
                timeout=self._timeout,
            )
        except HTTPRequestError as exc:
            if exc.status in (401, 403):
                raise TransientExternalFailure(f"Deepgram rejected credentials: {exc}") from exc
            raise PermanentAssetFailure(f"Deepgram could not transcribe audio: {exc}") from exc

        result = parse_deepgram_response(data)
        logger.info(
            "Deepgram transcript: %d chars, %d segments, confidence=%s",
            len(result.text),
            len(result.segments),
            result.confidence,
        )
        return result


class WhisperTranscriber(Transcriber):
    name = "whisper"

    def __init__(self, api_key: str, *, model: str = "whisper-1", timeout: int = 600) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    def _multipart(self, audio: bytes, language: str | None) -> tuple[bytes, str]:
        boundary = uuid.uuid4().hex
        fields = {"model": self._model, "response_format": "verbose_json"}
        if language:
            fields["language"] = language
        parts: list[bytes] = []
        for name, value in fields.items():
            parts.append(
                f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n'
                f"{value}\r\n".encode()
            )
        parts.append(
            f'--{boundary}\r\nContent-Disposition: form-data; name="file"; '
            f'filename="audio.ogg"\r\nContent-Type: audio/ogg\r\n\r\n'.encode()
        )
        parts.append(audio)
        parts.append(f"\r\n--{boundary}--\r\n".encode())
        return b"".join(parts), f"multipart/form-data; boundary={boundary}"

    def transcribe(self, audio_url: str, language: str | None = None) -> TranscriptResult:
        if not self._api_key:
            raise TransientExternalFailure("OPENAI_API_KEY not set")
        body, content_type = self._multipart(_read_audio(audio_url, self._timeout), language)
        try:
            data = request_json(
                "POST",
                WHISPER_URL,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": content_type,
                },
                data=body,
                timeout=self._timeout,
            )
        except HTTPRequestError as exc:
            if exc.status in (401, 403):
                raise TransientExternalFailure(f"Whisper rejected credentials: {exc}") from exc
            raise PermanentAssetFailure(f"Whisper could not transcribe audio: {exc}") from exc

        result = parse_whisper_response(data)
        logger.info("Whisper transcript: %d chars, %d segments", len(result.text), len(result.segments))
        return result
