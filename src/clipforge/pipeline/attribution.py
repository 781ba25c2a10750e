"""Localized Creative-Commons source attribution appended to descriptions."""

from __future__ import annotations

from typing import NamedTuple

from clipforge.jobs import ContentJob, ContentLanguage

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


class _Labels(NamedTuple):
    source: str
    notice: str
    title: str
    link: str
    channel: str


_LABELS: dict[ContentLanguage, _Labels] = {
    ContentLanguage.KO: _Labels(
        "📌 출처",
        "이 콘텐츠는 Creative Commons 라이선스로 공개된 YouTube 영상을 기반으로 AI에 의해 제작되었습니다.",
        "원본 제목",
        "원본 링크",
        "채널",
    ),
    ContentLanguage.EN: _Labels(
        "📌 Source",
        "This content was created by AI based on a YouTube video published under a "
        "Creative Commons license.",
        "Original Title",
        "Original Link",
        "Channel",
    ),
    ContentLanguage.JA: _Labels(
        "📌 出典",
        "このコンテンツはCreative Commonsライセンスで公開されたYouTube動画を基にAIによって制作されました。",
        "元のタイトル",
        "元のリンク",
        "チャンネル",
    ),
}


def build_attribution(job: ContentJob, language: ContentLanguage) -> str | None:
    """Return the attribution block, or None without a source video id."""
    if not job.source_video_id.strip():
        return None
    labels = _LABELS[language]
    lines = ["---", f"{labels.source}: {labels.notice}"]
    if job.source_title:
        lines.append(f'{labels.title}: "{job.source_title}"')
    lines.append(f"{labels.link}: {WATCH_URL.format(video_id=job.source_video_id)}")
    channel = job.channel_title or job.channel_id
    if channel:
        lines.append(f"{labels.channel}: {channel}")
    return "\n".join(lines)


def credit_line(job: ContentJob) -> str:
    """Short on-screen credit for the rendered clip."""
    channel = job.channel_title or job.channel_id or "YouTube"
    return f"Source: {channel} (CC BY)"
