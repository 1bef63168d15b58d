# application/domain/audio.py
# Audio value types shared by every pipeline stage.
# Domain layer: must not import infrastructure or adapter code.

import math
from dataclasses import dataclass

import numpy as np

from application.domain.errors import RangeError


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """
    Decoded multi-channel PCM.

    Samples are stored as a read-only (num_frames, channels) float32 array,
    clamped to [-1.0, 1.0]. The array is always a private copy, so two
    buffers never share memory.
    """

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self) -> None:
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples.reshape(-1, 1)
        if samples.ndim != 2:
            raise ValueError(
                f"Audio samples must be shaped (frames, channels). Got: {samples.shape}."
            )
        if samples.shape[1] < 1:
            raise ValueError("Audio buffer needs at least one channel.")
        if int(self.sample_rate) <= 0:
            raise ValueError(f"Sample rate must be positive. Got: {self.sample_rate}.")

        # np.clip always returns a fresh array, which also breaks any aliasing
        samples = np.clip(samples, -1.0, 1.0)
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[1])

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        """Length in seconds."""
        return self.frame_count / self.sample_rate

    def channel(self, index: int) -> np.ndarray:
        return self.samples[:, index]


@dataclass(frozen=True)
class TimeRange:
    """Requested trim window in seconds, start inclusive, end exclusive."""

    start: float
    end: float

    def __post_init__(self) -> None:
        start, end = float(self.start), float(self.end)
        if not (math.isfinite(start) and math.isfinite(end)):
            raise RangeError(f"Invalid range: bounds must be finite numbers. Got: {start}–{end}.")
        if start < 0:
            raise RangeError(f"Invalid range: start must not be negative. Got: {start}.")
        if start >= end:
            raise RangeError(
                f"Invalid range: start ({start:.1f}s) must be before end ({end:.1f}s)."
            )
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class SampleRange:
    """Frame offsets [start_sample, end_sample) derived from a TimeRange."""

    start_sample: int
    end_sample: int

    @property
    def length(self) -> int:
        return self.end_sample - self.start_sample


@dataclass(frozen=True)
class EncodedArtifact:
    """Finished container bytes plus the suggested download name."""

    data: bytes
    filename: str
    mimetype: str = "audio/wav"

    @property
    def size(self) -> int:
        return len(self.data)
