# application/ports/audio_trimmer_port.py
# Port interface for range selection and sample-accurate trimming.

from abc import ABC, abstractmethod
from typing import Callable, Optional

from application.domain.audio import AudioBuffer, SampleRange, TimeRange


class IAudioTrimmer(ABC):
    """Abstract base class for audio trimming."""

    @abstractmethod
    def select(self, buffer: AudioBuffer, time_range: TimeRange) -> SampleRange:
        """
        Convert a time range into frame offsets against the buffer.

        Args:
            buffer:     Decoded source audio.
            time_range: Requested window in seconds.

        Returns:
            SampleRange clamped to the buffer's length.

        Raises:
            RangeError: If the range is empty or starts past the end of the audio.
        """
        ...

    @abstractmethod
    def copy(
        self,
        buffer: AudioBuffer,
        sample_range: SampleRange,
        slice_frames: Optional[int] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> AudioBuffer:
        """
        Copy the selected frames into a new, independent AudioBuffer.

        Args:
            buffer:            Decoded source audio.
            sample_range:      Frames to keep.
            slice_frames:      Max frames copied between checkpoints.
            progress_callback: Optional callback (frames_done, frames_total).
            checkpoint:        Called between slices; may raise to abort.

        Returns:
            Trimmed audio, verbatim sample values.
        """
        ...
