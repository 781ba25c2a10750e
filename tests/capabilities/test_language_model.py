"""Tests for model-response parsing and the Claude/mock language models."""

import json
from unittest.mock import MagicMock, patch

import pytest
from clipforge.capabilities.base import Recommendation, VideoCandidate
from clipforge.capabilities.language_model import (
    ClaudeLanguageModel,
    MockLanguageModel,
    parse_evaluations,
    parse_metadata,
    parse_segments,
)
from clipforge.errors import PermanentAssetFailure, TransientExternalFailure
from clipforge.jobs import Category, Difficulty
from clipforge.llm import LLMError


def _candidates(*ids: str) -> list[VideoCandidate]:
    return [VideoCandidate(video_id=v, title=f"Video {v}") for v in ids]


class TestParseSegments:
    def test_valid_array_in_fences(self):
        raw = "```json\n" + json.dumps(
            [
                {
                    "startTimeMs": 1000,
                    "endTimeMs": 46000,
                    "title": "Intro",
                    "description": "Why cells divide",
                    "keywords": ["cells", "mitosis"],
                    "relevance": 91,
                }
            ]
        ) + "\n```"
        segments = parse_segments(raw)
        assert len(segments) == 1
        assert segments[0].start_ms == 1000
        assert segments[0].keywords == ["cells", "mitosis"]
        assert segments[0].relevance == 91

    def test_drops_malformed_entries(self):
        raw = json.dumps(
            [
                {"startTimeMs": 5000, "endTimeMs": 1000, "title": "backwards"},
                {"endTimeMs": 9000, "title": "no start"},
                "junk",
                {"startTimeMs": 0, "endTimeMs": 40000, "title": "ok", "relevance": 150},
            ]
        )
        segments = parse_segments(raw)
        assert [s.title for s in segments] == ["ok"]
        assert segments[0].relevance == 100

    def test_non_json_yields_nothing(self):
        assert parse_segments("I could not find any good segment.") == []


class TestParseMetadata:
    def test_full_object(self):
        raw = json.dumps(
            {
                "title": " 세포 분열 ",
                "description": "desc",
                "tags": ["biology", "", "cells"],
                "category": "science",
                "difficulty": "beginner",
            }
        )
        meta = parse_metadata(raw, "fallback")
        assert meta.title == "세포 분열"
        assert meta.tags == ["biology", "cells"]
        assert meta.category == Category.SCIENCE
        assert meta.difficulty == Difficulty.BEGINNER

    def test_unusable_falls_back(self):
        meta = parse_metadata("not json", "Segment title")
        assert meta.title == "Segment title"
        assert meta.category == Category.OTHER


class TestParseEvaluations:
    def test_matches_by_video_id(self):
        raw = json.dumps(
            [
                {
                    "videoId": "b",
                    "relevanceScore": 90,
                    "educationalValue": 88,
                    "shortFormSuitability": 70,
                    "predictedQuality": 80,
                    "recommendation": "highly_recommended",
                    "reasoning": "clear",
                }
            ]
        )
        results = parse_evaluations(raw, _candidates("a", "b"))
        assert [r.candidate.video_id for r in results] == ["a", "b"]
        assert results[0].recommendation == Recommendation.MAYBE
        assert results[0].relevance_score == 50
        assert results[1].recommendation == Recommendation.HIGHLY_RECOMMENDED
        assert results[1].educational_value == 88

    def test_garbage_gives_neutral(self):
        results = parse_evaluations("oops", _candidates("a"))
        assert results[0].relevance_score == 50
        assert results[0].recommendation == Recommendation.MAYBE


class TestClaudeLanguageModel:
    @patch("clipforge.capabilities.language_model.call_claude")
    def test_llm_error_is_transient(self, mock_call: MagicMock):
        mock_call.side_effect = LLMError("rate limited", transient=True)
        model = ClaudeLanguageModel("haiku")
        with pytest.raises(TransientExternalFailure):
            model.extract_segments("transcript", {"title": "t"})

    @patch("clipforge.capabilities.language_model.call_claude")
    def test_rejected_request_is_permanent(self, mock_call: MagicMock):
        mock_call.side_effect = LLMError("400 prompt is too long", transient=False)
        model = ClaudeLanguageModel("haiku")
        with pytest.raises(PermanentAssetFailure, match="prompt is too long"):
            model.extract_segments("transcript", {"title": "t"})

    @patch("clipforge.capabilities.language_model.call_claude")
    def test_rejected_evaluation_falls_back_to_neutral(self, mock_call: MagicMock):
        mock_call.side_effect = LLMError("400 bad request")
        results = ClaudeLanguageModel().evaluate_videos(_candidates("v1"))
        assert [r.relevance_score for r in results] == [50]

    @patch("clipforge.capabilities.language_model.call_claude")
    def test_evaluation_batches_fall_back_independently(self, mock_call: MagicMock):
        ok = json.dumps(
            [{"videoId": f"v{i}", "relevanceScore": 77, "recommendation": "RECOMMENDED"} for i in range(10)]
        )
        mock_call.side_effect = [ok, LLMError("down", transient=True)]
        model = ClaudeLanguageModel()

        results = model.evaluate_videos(_candidates(*[f"v{i}" for i in range(12)]))
        assert len(results) == 12
        assert all(r.relevance_score == 77 for r in results[:10])
        assert all(r.relevance_score == 50 for r in results[10:])
        assert mock_call.call_count == 2

    @patch("clipforge.capabilities.language_model.call_claude")
    def test_metadata_prompt_uses_language(self, mock_call: MagicMock):
        mock_call.return_value = '{"title": "Hello"}'
        ClaudeLanguageModel().generate_metadata("text", [], "en")
        prompt = mock_call.call_args.args[1]
        assert "English" in prompt


class TestMockLanguageModel:
    def test_deterministic(self):
        model = MockLanguageModel()
        first = model.extract_segments("t", {"title": "x", "duration_ms": "45000"})
        second = model.extract_segments("t", {"title": "x", "duration_ms": "45000"})
        assert first == second
        assert first[0].end_ms == 45000
        assert model.generate_metadata("t", first, "ja").title == "一分でわかる要点"
