# application/ports/stream_fetcher_port.py
# Port interface for incremental byte retrieval.

from abc import ABC, abstractmethod
from typing import Callable, Optional


class IStreamFetcher(ABC):

    @abstractmethod
    def fetch(
        self,
        url: str,
        progress_callback: Optional[Callable[[int, Optional[int]], None]] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> bytes:
        """
        Download *url* and return the whole body as one contiguous buffer.

        progress_callback receives (received_bytes, total_bytes); total is None
        when the server does not declare a length. checkpoint runs once per
        received chunk.

        Raises NetworkError when the request cannot start or returns a non-2xx
        status, TransferError when the body is interrupted.
        """
        ...
