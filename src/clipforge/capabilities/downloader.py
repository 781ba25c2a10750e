"""yt-dlp downloader that lands the raw source in blob storage."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

import yt_dlp
from yt_dlp.utils import DownloadError

from clipforge.capabilities.base import BlobStorage, Downloader
from clipforge.errors import PermanentAssetFailure, TransientExternalFailure

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

# yt-dlp messages for videos that will never become downloadable
_PERMANENT_MARKERS = ("private video", "video unavailable", "has been removed", "copyright")


class YtDlpDownloader(Downloader):
    def __init__(
        self,
        storage: BlobStorage,
        *,
        raw_prefix: str = "raw-videos",
        download_format: str = "bv*[height<=1080]+ba/b[height<=1080]",
        temp_dir: str = "",
    ) -> None:
        self._storage = storage
        self._raw_prefix = raw_prefix.strip("/")
        self._format = download_format
        self._temp_dir = temp_dir or None

    def download(self, video_id: str) -> str:
        key = f"{self._raw_prefix}/{video_id}.mp4"
        with tempfile.TemporaryDirectory(prefix="clipforge-dl-", dir=self._temp_dir) as tmp:
            ydl_opts = {
                "outtmpl": str(Path(tmp) / "%(id)s.%(ext)s"),
                "format": self._format,
                "merge_output_format": "mp4",
                "quiet": True,
                "noprogress": True,
                "noplaylist": True,
            }
            url = WATCH_URL.format(video_id=video_id)
            try:
                with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                    info = ydl.extract_info(url, download=True)
                    if not info:
                        raise PermanentAssetFailure(f"yt-dlp returned no info for {video_id}")
                    outpath = Path(ydl.prepare_filename(info)).with_suffix(".mp4")
            except DownloadError as exc:
                message = str(exc).lower()
                if any(marker in message for marker in _PERMANENT_MARKERS):
                    raise PermanentAssetFailure(f"Cannot download {video_id}: {exc}") from exc
                raise TransientExternalFailure(f"Download of {video_id} failed: {exc}") from exc

            if not outpath.exists():
                matches = sorted(Path(tmp).glob(f"{video_id}.*"))
                if not matches:
                    raise PermanentAssetFailure(f"Download of {video_id} produced no file")
                outpath = matches[0]

            logger.info("Downloaded %s (%d bytes)", video_id, outpath.stat().st_size)
            return self._storage.upload(outpath, key, content_type="video/mp4")
