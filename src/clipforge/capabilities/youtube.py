"""YouTube Data API v3 video source (Creative-Commons videos only)."""

from __future__ import annotations

import logging
import re
from typing import Any

from clipforge.capabilities.base import VideoCandidate, VideoSource
from clipforge.capabilities.http import HTTPRequestError, request_json
from clipforge.errors import TransientExternalFailure

logger = logging.getLogger(__name__)

API_BASE = "https://www.googleapis.com/youtube/v3"
CC_LICENSE = "creativeCommon"

_ISO_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def parse_iso8601_duration(value: str | None) -> int | None:
    """Convert an ISO-8601 duration such as ``PT1H2M3S`` to milliseconds."""
    if not value:
        return None
    match = _ISO_DURATION_RE.match(value)
    if not match:
        return None
    parts = {k: int(v) if v else 0 for k, v in match.groupdict().items()}
    seconds = parts["days"] * 86400 + parts["hours"] * 3600 + parts["minutes"] * 60 + parts["seconds"]
    return seconds * 1000


def _to_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _candidate_from_item(item: dict[str, Any]) -> VideoCandidate:
    snippet = item.get("snippet", {})
    details = item.get("contentDetails", {})
    stats = item.get("statistics", {})
    thumbs = snippet.get("thumbnails", {})
    thumb = thumbs.get("high") or thumbs.get("medium") or thumbs.get("default") or {}
    return VideoCandidate(
        video_id=item["id"],
        title=snippet.get("title", ""),
        channel_id=snippet.get("channelId", ""),
        channel_title=snippet.get("channelTitle", ""),
        description=snippet.get("description", ""),
        published_at=snippet.get("publishedAt", ""),
        duration_ms=parse_iso8601_duration(details.get("duration")),
        thumbnail_url=thumb.get("url", ""),
        view_count=_to_int(stats.get("viewCount")),
        like_count=_to_int(stats.get("likeCount")),
        license=item.get("status", {}).get("license", ""),
    )


class YouTubeVideoSource(VideoSource):
    """Searches YouTube for CC-licensed, medium-length videos."""

    def __init__(self, api_key: str, *, timeout: int = 30) -> None:
        self._api_key = api_key
        self._timeout = timeout

    def _get(self, resource: str, params: dict[str, Any]) -> dict[str, Any]:
        if not self._api_key:
            raise TransientExternalFailure("YOUTUBE_API_KEY not set")
        params = {**params, "key": self._api_key}
        try:
            return request_json("GET", f"{API_BASE}/{resource}", params=params, timeout=self._timeout)
        except HTTPRequestError as exc:
            # 403 covers quota exhaustion, which resets daily
            raise TransientExternalFailure(f"YouTube API {resource} failed: {exc}") from exc

    def _videos(self, video_ids: list[str]) -> list[VideoCandidate]:
        if not video_ids:
            return []
        data = self._get(
            "videos",
            {"part": "snippet,contentDetails,statistics,status", "id": ",".join(video_ids)},
        )
        return [_candidate_from_item(item) for item in data.get("items", [])]

    def search_licensed_videos(
        self, query: str, max_results: int, language: str
    ) -> list[VideoCandidate]:
        logger.info("Searching YouTube: query=%r max=%d lang=%s", query, max_results, language)
        data = self._get(
            "search",
            {
                "part": "id",
                "q": query,
                "type": "video",
                "videoLicense": CC_LICENSE,
                "videoDuration": "medium",
                "relevanceLanguage": language,
                "maxResults": max(1, min(max_results, 50)),
            },
        )
        ids = [
            item["id"]["videoId"]
            for item in data.get("items", [])
            if item.get("id", {}).get("videoId")
        ]
        candidates = self._videos(ids)
        logger.info("Search %r returned %d candidate(s)", query, len(candidates))
        return candidates

    def get_video_details(self, video_id: str) -> VideoCandidate | None:
        videos = self._videos([video_id])
        return videos[0] if videos else None

    def is_licensed(self, video_id: str) -> bool:
        data = self._get("videos", {"part": "status", "id": video_id})
        items = data.get("items", [])
        if not items:
            return False
        return items[0].get("status", {}).get("license") == CC_LICENSE
