"""LLM prompts for segment extraction, metadata and candidate evaluation."""

from __future__ import annotations

from clipforge.jobs.models import Category, ContentLanguage, Difficulty

SYSTEM_PROMPT = "You are an expert editor of short-form educational video."

_LANGUAGE_INSTRUCTIONS: dict[ContentLanguage, str] = {
    ContentLanguage.KO: "Write the title, description and tags in Korean.",
    ContentLanguage.EN: "Write the title, description and tags in English.",
    ContentLanguage.JA: "Write the title, description and tags in Japanese.",
}


def get_segment_prompt(
    transcript: str,
    source_title: str,
    min_seconds: int,
    max_seconds: int,
    max_segments: int = 5,
) -> str:
    return f"""Pick the parts of this video transcript that work best as standalone short-form clips.

## Source Title
{source_title or "(unknown)"}

## Transcript
Lines are prefixed with [HH:MM:SS - HH:MM:SS] timestamps where available.
{transcript}

## Requirements
1. Each segment lasts between {min_seconds} and {max_seconds} seconds
2. Each segment covers one complete idea and makes sense without context
3. Prefer dense, high-energy explanation over slow or repetitive passages
4. Skip intros, outros and subscription requests
5. Return at most {max_segments} segments, best first

## Output Format
Return a JSON array. Each object:
{{
  "startTimeMs": 0,
  "endTimeMs": 45000,
  "title": "Segment title",
  "description": "What the viewer learns",
  "keywords": ["keyword1", "keyword2"],
  "relevance": 0-100
}}

Return ONLY the JSON array, no other text."""


def get_metadata_prompt(
    transcript: str,
    segment_summaries: list[str],
    language: ContentLanguage,
) -> str:
    categories = "|".join(c.value for c in Category)
    difficulties = "|".join(d.value for d in Difficulty)
    segment_list = "\n".join(f"- {s}" for s in segment_summaries) or "(none)"

    return f"""Write publishing metadata for a short educational clip.

{_LANGUAGE_INSTRUCTIONS[language]}

## Selected Segments
{segment_list}

## Transcript
{transcript[:6000]}

## Output Format
Return a JSON object:
{{
  "title": "Catchy title under 60 characters",
  "description": "2-3 sentence description",
  "tags": ["up to 10 tags"],
  "category": "{categories}",
  "difficulty": "{difficulties}"
}}

Return ONLY the JSON object, no other text."""


def get_evaluation_prompt(candidates_json: str) -> str:
    return f"""Evaluate these video candidates as source material for short educational clips.
Judge only from the metadata given.

## Candidates
{candidates_json}

## Output Format
Return a JSON array with one object per candidate, in the same order:
{{
  "videoId": "id from the input",
  "relevanceScore": 0-100,
  "educationalValue": 0-100,
  "shortFormSuitability": 0-100,
  "predictedQuality": 0-100,
  "recommendation": "HIGHLY_RECOMMENDED" | "RECOMMENDED" | "MAYBE" | "SKIP",
  "reasoning": "One sentence"
}}

Return ONLY the JSON array, no other text."""
