"""Quality score: a 0-100 composite of weighted signals.

Each signal yields a fraction in [0, 1] that is multiplied by its weight
(maximum points).  Missing inputs count as a neutral 0.5.
"""

from __future__ import annotations

import math

from pydantic import BaseModel

from clipforge.config import ScoringWeights
from clipforge.jobs import ContentJob

NEUTRAL = 0.5

# 1M views saturates the view component
_VIEWS_SATURATION_LOG10 = 6.0
# A 4% like/view ratio saturates the engagement component
_LIKE_RATIO_SATURATION = 0.04


class QualityBreakdown(BaseModel):
    popularity: float
    educational_value: float
    relevance: float
    short_form_suitability: float
    transcript_confidence: float
    technical: float

    @property
    def total(self) -> int:
        raw = (
            self.popularity
            + self.educational_value
            + self.relevance
            + self.short_form_suitability
            + self.transcript_confidence
            + self.technical
        )
        return max(0, min(100, round(raw)))


def _fraction(value: int | float | None, scale: float = 100.0) -> float:
    if value is None:
        return NEUTRAL
    return max(0.0, min(1.0, value / scale))


def popularity_fraction(views: int | None, likes: int | None) -> float:
    if views is None:
        return NEUTRAL
    reach = min(1.0, math.log10(views + 1) / _VIEWS_SATURATION_LOG10)
    if likes is None or views <= 0:
        engagement = NEUTRAL
    else:
        engagement = min(1.0, (likes / views) / _LIKE_RATIO_SATURATION)
    return 0.7 * reach + 0.3 * engagement


class QualityScorer:
    def __init__(
        self,
        weights: ScoringWeights,
        *,
        min_clip_ms: int,
        max_clip_ms: int,
        min_width: int,
        min_height: int,
    ) -> None:
        self.weights = weights
        self.min_clip_ms = min_clip_ms
        self.max_clip_ms = max_clip_ms
        self.min_width = min_width
        self.min_height = min_height

    def technical_fraction(self, job: ContentJob) -> float:
        """Half for duration within bounds, half for resolution."""
        score = 0.0
        duration = job.rendered_duration_ms
        if duration is not None and self.min_clip_ms <= duration <= self.max_clip_ms:
            score += 0.5
        elif duration is not None and job.source_duration_ms is not None and (
            job.source_duration_ms <= self.min_clip_ms and duration > 0
        ):
            # whole-source clips shorter than the minimum
            score += 0.25
        width, height = job.rendered_width, job.rendered_height
        if width and height and width >= self.min_width and height >= self.min_height:
            score += 0.5
        return score

    def score(self, job: ContentJob) -> QualityBreakdown:
        w = self.weights
        evaluation = job.evaluation
        segment = job.selected_segment

        relevance_inputs = [
            v
            for v in (
                evaluation.relevance if evaluation else None,
                segment.relevance if segment else None,
            )
            if v is not None
        ]
        relevance = (
            sum(relevance_inputs) / len(relevance_inputs) / 100 if relevance_inputs else NEUTRAL
        )

        return QualityBreakdown(
            popularity=w.popularity
            * popularity_fraction(job.source_view_count, job.source_like_count),
            educational_value=w.educational_value
            * _fraction(evaluation.educational_value if evaluation else None),
            relevance=w.relevance * relevance,
            short_form_suitability=w.short_form_suitability
            * _fraction(evaluation.short_form_suitability if evaluation else None),
            transcript_confidence=w.transcript_confidence
            * _fraction(job.transcript_confidence, scale=1.0),
            technical=w.technical * self.technical_fraction(job),
        )
