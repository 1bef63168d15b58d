# infrastructure/audio/numpy_audio_trimmer.py
# Implementation of IAudioTrimmer using NumPy array slicing.

import math
from typing import Callable, Optional

import numpy as np

from application.domain.audio import AudioBuffer, SampleRange, TimeRange
from application.domain.errors import RangeError
from application.ports.audio_trimmer_port import IAudioTrimmer


class NumpyAudioTrimmer(IAudioTrimmer):
    """Select and copy a frame range using direct NumPy array slicing."""

    def select(self, buffer: AudioBuffer, time_range: TimeRange) -> SampleRange:
        if time_range.start < 0:
            raise RangeError(f"Invalid range: start must not be negative. Got: {time_range.start}.")
        if time_range.start >= time_range.end:
            raise RangeError(
                f"Invalid range: start ({time_range.start:.1f}s) must be before end ({time_range.end:.1f}s)."
            )

        total_frames: int = buffer.frame_count
        sr: int = buffer.sample_rate

        start_frame: int = min(max(0, math.floor(time_range.start * sr)), total_frames)
        # End past the audio means "trim to the end"
        end_frame: int = min(max(0, math.floor(time_range.end * sr)), total_frames)

        if start_frame >= total_frames:
            raise RangeError(
                f"Invalid range: start {time_range.start:.1f}s is past the end of the audio "
                f"({buffer.duration:.1f}s)."
            )
        if start_frame >= end_frame:
            raise RangeError(
                f"Invalid range: {time_range.start}s–{time_range.end}s selects no samples "
                f"at {sr} Hz."
            )

        return SampleRange(start_sample=start_frame, end_sample=end_frame)

    def copy(
        self,
        buffer: AudioBuffer,
        sample_range: SampleRange,
        slice_frames: Optional[int] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> AudioBuffer:
        start: int = sample_range.start_sample
        length: int = sample_range.length
        if start < 0 or length <= 0 or sample_range.end_sample > buffer.frame_count:
            raise RangeError(
                f"Sample range {start}–{sample_range.end_sample} does not fit a buffer "
                f"of {buffer.frame_count} frames."
            )

        # Default slice: one second of audio
        step: int = max(1, int(slice_frames or buffer.sample_rate))

        source: np.ndarray = buffer.samples
        trimmed: np.ndarray = np.empty((length, buffer.channel_count), dtype=np.float32)

        for offset in range(0, length, step):
            end: int = min(offset + step, length)
            trimmed[offset:end] = source[start + offset:start + end]
            if progress_callback:
                progress_callback(end, length)
            if checkpoint and end < length:
                checkpoint()

        return AudioBuffer(trimmed, buffer.sample_rate)
