# application/ports/container_encoder_port.py
# Port interface for serializing PCM into a downloadable container.

from abc import ABC, abstractmethod
from typing import Callable, Optional

from application.domain.audio import AudioBuffer


class IContainerEncoder(ABC):
    """Abstract base class for container encoders."""

    @property
    @abstractmethod
    def format_id(self) -> str:
        """Registry key (e.g., 'wav')."""
        ...

    @property
    def file_extension(self) -> str:
        return self.format_id

    @property
    def mimetype(self) -> str:
        return "application/octet-stream"

    @abstractmethod
    def encode(
        self,
        buffer: AudioBuffer,
        slice_frames: Optional[int] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> bytes:
        """
        Serialize the buffer.

        Args:
            buffer:            Audio to encode.
            slice_frames:      Max frames written between checkpoints.
            progress_callback: Optional callback (frames_done, frames_total).
            checkpoint:        Called between slices; may raise to abort.

        Returns:
            Complete container bytes. Identical for identical input.
        """
        ...
