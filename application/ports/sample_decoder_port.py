# application/ports/sample_decoder_port.py
# Port interface for compressed-audio decoding.
# A decoder is a long-lived handle owned by the host and borrowed by each run.

from abc import ABC, abstractmethod

from application.domain.audio import AudioBuffer


class ISampleDecoder(ABC):

    @abstractmethod
    def decode(self, data: bytes) -> AudioBuffer:
        """Decode *data* into PCM. Raises DecodeError with the underlying message."""
        ...
