"""Language-model capability: Claude-backed and deterministic mock."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from clipforge.capabilities.base import (
    EvaluatedVideo,
    GeneratedMetadata,
    LanguageModel,
    Recommendation,
    VideoCandidate,
)
from clipforge.capabilities.prompts import (
    SYSTEM_PROMPT,
    get_evaluation_prompt,
    get_metadata_prompt,
    get_segment_prompt,
)
from clipforge.errors import PermanentAssetFailure, TransientExternalFailure
from clipforge.jobs.models import Category, ContentLanguage, Difficulty, Segment
from clipforge.llm import LLMError, call_claude, resolve_model, strip_json_fences

logger = logging.getLogger(__name__)

EVALUATION_BATCH_SIZE = 10


def neutral_evaluation(candidate: VideoCandidate, reason: str = "") -> EvaluatedVideo:
    """Fallback evaluation used when the model gives no usable answer."""
    return EvaluatedVideo(
        candidate=candidate,
        recommendation=Recommendation.MAYBE,
        reasoning=reason or "No evaluation available; using neutral scores",
    )


def _clamp_score(value: Any, default: int = 50) -> int:
    try:
        score = int(value)
    except (TypeError, ValueError):
        return default
    return max(0, min(100, score))


def parse_segments(raw: str) -> list[Segment]:
    """Parse a segment array, dropping malformed entries."""
    try:
        data = json.loads(strip_json_fences(raw))
    except json.JSONDecodeError:
        logger.warning("Segment response is not JSON: %s", raw[:200])
        return []
    if not isinstance(data, list):
        return []

    segments: list[Segment] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            segments.append(
                Segment(
                    start_ms=int(item["startTimeMs"]),
                    end_ms=int(item["endTimeMs"]),
                    title=str(item.get("title") or ""),
                    description=str(item.get("description") or ""),
                    keywords=[str(k) for k in item.get("keywords") or []],
                    relevance=_clamp_score(item.get("relevance")),
                )
            )
        except (KeyError, TypeError, ValueError, ValidationError):
            logger.debug("Skipping malformed segment: %s", item)
    return segments


def parse_metadata(raw: str, fallback_title: str) -> GeneratedMetadata:
    try:
        data = json.loads(strip_json_fences(raw))
    except json.JSONDecodeError:
        data = None
    if not isinstance(data, dict):
        logger.warning("Metadata response unusable, falling back to %r", fallback_title)
        return GeneratedMetadata(title=fallback_title)

    tags = [str(t).strip() for t in data.get("tags") or [] if str(t).strip()]
    return GeneratedMetadata(
        title=str(data.get("title") or fallback_title).strip(),
        description=str(data.get("description") or "").strip(),
        tags=tags[:10],
        category=Category.parse(data.get("category")),
        difficulty=Difficulty.parse(data.get("difficulty")),
    )


def parse_evaluations(raw: str, candidates: list[VideoCandidate]) -> list[EvaluatedVideo]:
    """Match evaluations back to candidates by id; unmatched ones get neutral scores."""
    try:
        data = json.loads(strip_json_fences(raw))
    except json.JSONDecodeError:
        data = None
    if not isinstance(data, list):
        logger.warning("Evaluation response unusable; using neutral scores")
        return [neutral_evaluation(c) for c in candidates]

    by_id: dict[str, dict[str, Any]] = {}
    for item in data:
        if isinstance(item, dict) and item.get("videoId"):
            by_id[str(item["videoId"])] = item

    results: list[EvaluatedVideo] = []
    for candidate in candidates:
        item = by_id.get(candidate.video_id)
        if item is None:
            results.append(neutral_evaluation(candidate))
            continue
        try:
            recommendation = Recommendation(str(item.get("recommendation", "")).upper())
        except ValueError:
            recommendation = Recommendation.MAYBE
        results.append(
            EvaluatedVideo(
                candidate=candidate,
                relevance_score=_clamp_score(item.get("relevanceScore")),
                educational_value=_clamp_score(item.get("educationalValue")),
                short_form_suitability=_clamp_score(item.get("shortFormSuitability")),
                predicted_quality=_clamp_score(item.get("predictedQuality")),
                recommendation=recommendation,
                reasoning=str(item.get("reasoning") or ""),
            )
        )
    return results


class ClaudeLanguageModel(LanguageModel):
    """LanguageModel backed by ``call_claude``."""

    provider = "claude"

    def __init__(
        self,
        model: str | None = None,
        *,
        timeout: int = 180,
        min_clip_ms: int = 30_000,
        max_clip_ms: int = 180_000,
    ) -> None:
        self.model = resolve_model(model)
        self._timeout = timeout
        self._min_clip_ms = min_clip_ms
        self._max_clip_ms = max_clip_ms

    def _call(self, prompt: str, label: str) -> str:
        try:
            return call_claude(
                SYSTEM_PROMPT,
                prompt,
                model=self.model,
                timeout=self._timeout,
                label=label,
            )
        except LLMError as exc:
            if exc.transient:
                raise TransientExternalFailure(str(exc)) from exc
            raise PermanentAssetFailure(f"Model rejected {label} request: {exc}") from exc

    def extract_segments(self, transcript: str, meta: dict[str, str]) -> list[Segment]:
        prompt = get_segment_prompt(
            transcript,
            meta.get("title", ""),
            min_seconds=self._min_clip_ms // 1000,
            max_seconds=self._max_clip_ms // 1000,
        )
        segments = parse_segments(self._call(prompt, "extract-segments"))
        logger.info("Model proposed %d segment(s)", len(segments))
        return segments

    def generate_metadata(
        self, transcript: str, segments: list[Segment], language: str
    ) -> GeneratedMetadata:
        lang = ContentLanguage.from_code(language) or ContentLanguage.KO
        summaries = [f"{s.title}: {s.description}".rstrip(": ") for s in segments]
        prompt = get_metadata_prompt(transcript, summaries, lang)
        fallback = segments[0].title if segments else "Untitled"
        return parse_metadata(self._call(prompt, "generate-metadata"), fallback)

    def evaluate_videos(self, candidates: list[VideoCandidate]) -> list[EvaluatedVideo]:
        results: list[EvaluatedVideo] = []
        for start in range(0, len(candidates), EVALUATION_BATCH_SIZE):
            batch = candidates[start : start + EVALUATION_BATCH_SIZE]
            payload = json.dumps(
                [
                    {
                        "videoId": c.video_id,
                        "title": c.title,
                        "channel": c.channel_title,
                        "description": c.description[:500],
                        "durationMs": c.duration_ms,
                        "viewCount": c.view_count,
                    }
                    for c in batch
                ],
                ensure_ascii=False,
                indent=2,
            )
            try:
                raw = self._call(get_evaluation_prompt(payload), "evaluate-videos")
            except (TransientExternalFailure, PermanentAssetFailure) as exc:
                logger.warning("Evaluation batch failed, using neutral scores: %s", exc)
                results.extend(neutral_evaluation(c) for c in batch)
                continue
            results.extend(parse_evaluations(raw, batch))
        return results


_MOCK_TITLES: dict[ContentLanguage, str] = {
    ContentLanguage.KO: "핵심만 담은 짧은 강의",
    ContentLanguage.EN: "The Key Idea in One Minute",
    ContentLanguage.JA: "一分でわかる要点",
}


class MockLanguageModel(LanguageModel):
    """Deterministic offline stand-in, selected with ``[llm] provider = "mock"``."""

    provider = "mock"
    model = "mock"

    def extract_segments(self, transcript: str, meta: dict[str, str]) -> list[Segment]:
        duration = int(meta.get("duration_ms") or 0) or 120_000
        end = min(duration, 60_000)
        return [
            Segment(
                start_ms=0,
                end_ms=max(end, 1),
                title=meta.get("title") or "Highlight",
                description="Opening explanation",
                keywords=["highlight"],
                relevance=80,
            )
        ]

    def generate_metadata(
        self, transcript: str, segments: list[Segment], language: str
    ) -> GeneratedMetadata:
        lang = ContentLanguage.from_code(language) or ContentLanguage.KO
        return GeneratedMetadata(
            title=_MOCK_TITLES[lang],
            description=transcript[:140],
            tags=["education", "shorts"],
            category=Category.OTHER,
            difficulty=Difficulty.BEGINNER,
        )

    def evaluate_videos(self, candidates: list[VideoCandidate]) -> list[EvaluatedVideo]:
        return [
            EvaluatedVideo(
                candidate=c,
                relevance_score=85,
                educational_value=80,
                short_form_suitability=75,
                predicted_quality=82,
                recommendation=Recommendation.RECOMMENDED,
                reasoning="Mock evaluation",
            )
            for c in candidates
        ]
