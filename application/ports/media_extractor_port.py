# application/ports/media_extractor_port.py
# Port interface for the external media extraction service.
# Not part of the trim core: it only has to yield an artifact fetchable by URL.

from abc import ABC, abstractmethod

from application.dto.trim_dto import ExtractedMediaDTO


class ExtractionError(Exception):
    """The extraction service could not produce an audio artifact."""


class IMediaExtractor(ABC):

    @abstractmethod
    def extract(self, url: str) -> ExtractedMediaDTO:
        """Extract the audio track of a platform video URL."""
        ...
