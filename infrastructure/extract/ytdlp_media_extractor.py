# infrastructure/extract/ytdlp_media_extractor.py
# Implementation of IMediaExtractor using the yt-dlp library.
# Produces an mp3 artifact on disk; serving it by URL is the host's job.

import logging
import os
import uuid

import yt_dlp
from yt_dlp.utils import DownloadError

from application.dto.trim_dto import ExtractedMediaDTO, VideoInfoDTO
from application.ports.media_extractor_port import ExtractionError, IMediaExtractor
from trimmer.utils import validate_youtube_url

logger = logging.getLogger(__name__)


def video_info_from(info: dict) -> VideoInfoDTO:
    """Map a yt-dlp info dict to display metadata, with safe defaults."""
    return VideoInfoDTO(
        title=info.get("title") or "Unknown Title",
        author=info.get("uploader") or "Unknown Author",
        duration=float(info.get("duration") or 0),
        thumbnail=info.get("thumbnail") or "",
        description=info.get("description") or "",
        upload_date=info.get("upload_date") or "",
        view_count=int(info.get("view_count") or 0),
    )


class YtDlpMediaExtractor(IMediaExtractor):
    """Download the best audio stream and convert it to mp3 with ffmpeg."""

    def __init__(self, output_dir: str, audio_format: str = "mp3") -> None:
        self.output_dir: str = output_dir
        self.audio_format: str = audio_format

    def _options(self, media_id: str) -> dict:
        return {
            "format": "bestaudio/best",
            "postprocessors": [{
                "key": "FFmpegExtractAudio",
                "preferredcodec": self.audio_format,
            }],
            "outtmpl": os.path.join(self.output_dir, f"{media_id}.%(ext)s"),
            "noplaylist": True,
            "quiet": True,
            "no_warnings": True,
        }

    def extract(self, url: str) -> ExtractedMediaDTO:
        if not validate_youtube_url(url):
            raise ExtractionError(f"Invalid YouTube URL: '{url}'.")

        os.makedirs(self.output_dir, exist_ok=True)
        media_id: str = str(uuid.uuid4())
        filename: str = f"{media_id}.{self.audio_format}"
        path: str = os.path.join(self.output_dir, filename)

        try:
            with yt_dlp.YoutubeDL(self._options(media_id)) as ydl:
                info: dict = ydl.extract_info(url, download=True) or {}
        except DownloadError as exc:
            raise ExtractionError(f"Failed to extract audio: {exc}") from exc

        if not os.path.isfile(path):
            raise ExtractionError(f"Failed to extract audio: no {self.audio_format} file was produced.")

        video_info: VideoInfoDTO = video_info_from(info)
        size: int = os.path.getsize(path)
        logger.info("extracted id=%s size=%dB duration=%.0fs", media_id[:8], size, video_info.duration)

        return ExtractedMediaDTO(
            id=media_id,
            filename=filename,
            path=path,
            size=size,
            duration=video_info.duration,
            video_info=video_info,
        )
