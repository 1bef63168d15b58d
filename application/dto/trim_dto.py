# application/dto/trim_dto.py
# Data Transfer Objects for trim requests, jobs and extracted media.

from dataclasses import dataclass, field


@dataclass
class TrimSettingsDTO:
    """Per-run pipeline policy."""
    encode_timeout_s: float = 30.0
    copy_slice_seconds: float = 1.0
    encode_slice_seconds: float = 0.1
    stream_progress: bool = True        # False = "fast" fidelity, no fine-grained progress
    container_format: str = "wav"
    max_download_bytes: int = 100 * 1024 * 1024


@dataclass
class TrimRequestDTO:
    """Single trim-and-download request."""
    source_url: str
    start: float
    end: float
    fidelity: str = "full"              # full | fast


@dataclass
class VideoInfoDTO:
    """Pass-through display metadata from the extraction service."""
    title: str = "Unknown Title"
    author: str = "Unknown Author"
    duration: float = 0.0
    thumbnail: str = ""
    description: str = ""
    upload_date: str = ""
    view_count: int = 0

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "duration": self.duration,
            "thumbnail": self.thumbnail,
            "description": self.description,
            "uploadDate": self.upload_date,
            "viewCount": self.view_count,
        }


@dataclass
class ExtractedMediaDTO:
    """Audio artifact produced by the extraction service."""
    id: str
    filename: str
    path: str
    size: int
    duration: float
    video_info: VideoInfoDTO = field(default_factory=VideoInfoDTO)
