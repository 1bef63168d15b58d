import math
import os
import re
from typing import Optional
from urllib.parse import unquote, urlparse

from application.domain.audio import TimeRange

# Supported containers for trimmed output
SUPPORTED_OUTPUT_FORMATS: set[str] = {".wav"}

# Default pipeline settings (mirrors TrimSettingsDTO)
DEFAULT_SETTINGS: dict[str, float] = {
    "timeout": 30.0,         # seconds allowed for the encode stage
    "copy_slice": 1.0,       # seconds of audio copied between yields
    "encode_slice": 0.1,     # seconds of audio encoded between yields
    "max_download_mb": 100,
}

# Quick-pick trim lengths offered by the UI
PRESET_TRIMS: list[dict] = [
    {"label": "15s",  "duration": 15,  "description": "15 seconds"},
    {"label": "30s",  "duration": 30,  "description": "30 seconds"},
    {"label": "60s",  "duration": 60,  "description": "1 minute"},
    {"label": "2min", "duration": 120, "description": "2 minutes"},
    {"label": "5min", "duration": 300, "description": "5 minutes"},
]

YOUTUBE_URL_PATTERNS: list[re.Pattern] = [
    re.compile(r"^(https?://)?(www\.)?(youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)[a-zA-Z0-9_-]{11}"),
    re.compile(r"^(https?://)?(www\.)?(youtube\.com/v/)[a-zA-Z0-9_-]{11}"),
]


# Validation helpers
def validate_source_url(url: str) -> None:
    """Raise ValueError if *url* is not an absolute http(s) URL."""
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(
            f"Source URL must be an http(s) address: '{url}'.\n"
            f"    → Example: python main.py https://example.com/audio.mp3 --start 0 --end 30"
        )


def validate_youtube_url(url: str) -> bool:
    """Return True for watch, youtu.be, embed and /v/ links with an 11-char id."""
    return any(pattern.match(url or "") for pattern in YOUTUBE_URL_PATTERNS)


def parse_time_range(start, end) -> TimeRange:
    """Build a TimeRange from loose user input. Raises RangeError / ValueError."""
    try:
        start_f: float = float(start)
        end_f: float = float(end)
    except (TypeError, ValueError):
        raise ValueError(
            f"Start and end must be numbers of seconds. Got: start={start!r}, end={end!r}.\n"
            f"    → Example: --start 2.5 --end 10"
        )
    return TimeRange(start_f, end_f)


def preset_time_range(label: str, duration: Optional[float] = None) -> TimeRange:
    """
    Range for a preset trim, starting at 0.

    With a known duration the end is capped at it; otherwise the pipeline's
    end-of-audio clamping does the same job.
    """
    for preset in PRESET_TRIMS:
        if preset["label"] == label:
            end: float = float(preset["duration"])
            if duration is not None and duration > 0:
                end = min(end, duration)
            return TimeRange(0.0, end)
    labels: str = ", ".join(p["label"] for p in PRESET_TRIMS)
    raise ValueError(f"Unknown preset: '{label}'.\n    Supported: {labels}")


# Path helpers

def get_trimmed_filename(start: float, end: float, ext: str = "wav") -> str:
    """
    Suggested download name for a trim window.

    Example: 2.0, 5.0  →  trimmed_audio_2.0s_to_5.0s.wav
    """
    return f"trimmed_audio_{start:.1f}s_to_{end:.1f}s.{ext.lstrip('.')}"


def get_original_filename(url: str, default: str = "audio.mp3") -> str:
    """Last path segment of *url*, or *default* when it has none."""
    name: str = os.path.basename(unquote(urlparse(url or "").path))
    return name or default


def get_output_path(directory: str, start: float, end: float, output_ext: str = ".wav") -> str:
    """Auto-generate an output path inside *directory* for a trim window."""
    return os.path.join(directory, get_trimmed_filename(start, end, output_ext))


def format_time(seconds: float) -> str:
    """Render seconds as m:ss (e.g., 125 → 2:05)."""
    if not math.isfinite(seconds) or seconds < 0:
        seconds = 0
    mins: int = int(seconds // 60)
    secs: int = int(seconds % 60)
    return f"{mins}:{secs:02d}"
