# infrastructure/net/httpx_stream_fetcher.py
# Implementation of IStreamFetcher on top of httpx response streaming.

import logging
from typing import Callable, List, Optional

import httpx

from application.domain.errors import NetworkError, TransferError
from application.ports.stream_fetcher_port import IStreamFetcher

logger = logging.getLogger(__name__)

MIB: int = 1024 * 1024
PROGRESS_FRACTION: float = 0.05
DEFAULT_MAX_BYTES: int = 100 * MIB


def progress_step(total: Optional[int]) -> int:
    """Bytes between progress reports: max(5% of total, 1 MiB)."""
    if not total:
        return MIB
    return max(int(total * PROGRESS_FRACTION), MIB)


class HttpxStreamFetcher(IStreamFetcher):
    """
    Download a URL chunk by chunk with coarse byte-level progress.

    Args:
        client:    Optional shared httpx.Client. When omitted a client is
                   opened and closed for every fetch.
        timeout:   httpx timeout used for self-managed clients.
        max_bytes: Hard cap on the body size; larger payloads are rejected.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        timeout: Optional[httpx.Timeout] = None,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self._client: Optional[httpx.Client] = client
        self._timeout: httpx.Timeout = timeout or httpx.Timeout(30.0, connect=10.0)
        self.max_bytes: int = max_bytes

    def fetch(
        self,
        url: str,
        progress_callback: Optional[Callable[[int, Optional[int]], None]] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> bytes:
        if self._client is not None:
            return self._fetch_with(self._client, url, progress_callback, checkpoint)
        with httpx.Client(timeout=self._timeout, follow_redirects=True) as client:
            return self._fetch_with(client, url, progress_callback, checkpoint)

    def _fetch_with(
        self,
        client: httpx.Client,
        url: str,
        progress_callback: Optional[Callable[[int, Optional[int]], None]],
        checkpoint: Optional[Callable[[], None]],
    ) -> bytes:
        try:
            with client.stream("GET", url) as response:
                if not response.is_success:
                    raise NetworkError(
                        f"Failed to fetch audio: {response.status_code} {response.reason_phrase}"
                    )
                total: Optional[int] = self._declared_length(response)
                return self._read_body(response, total, progress_callback, checkpoint)
        except (httpx.TransportError, httpx.InvalidURL) as exc:
            # Only reached for failures before the body starts; body errors are TransferError
            raise NetworkError(f"Failed to fetch audio: {exc}") from exc

    def _declared_length(self, response: httpx.Response) -> Optional[int]:
        raw: Optional[str] = response.headers.get("content-length")
        try:
            total: Optional[int] = int(raw) if raw is not None else None
        except ValueError:
            total = None
        if total is not None and total > self.max_bytes:
            raise TransferError(
                f"Audio file too large: {total} bytes (max {self.max_bytes})."
            )
        return total

    def _read_body(
        self,
        response: httpx.Response,
        total: Optional[int],
        progress_callback: Optional[Callable[[int, Optional[int]], None]],
        checkpoint: Optional[Callable[[], None]],
    ) -> bytes:
        # content-length counts wire bytes, so progress and the truncation check
        # use num_bytes_downloaded; the size cap applies to the decoded body
        chunks: List[bytes] = []
        received: int = 0
        downloaded: int = 0
        step: int = progress_step(total)
        next_mark: int = step

        try:
            for chunk in response.iter_bytes():
                downloaded = response.num_bytes_downloaded
                if not chunk:
                    continue
                chunks.append(chunk)
                received += len(chunk)
                if received > self.max_bytes:
                    raise TransferError(
                        f"Audio file too large: more than {self.max_bytes} bytes received."
                    )
                if downloaded >= next_mark:
                    if progress_callback:
                        progress_callback(downloaded, total)
                    next_mark = (downloaded // step + 1) * step
                if checkpoint:
                    checkpoint()
            downloaded = response.num_bytes_downloaded
        except httpx.HTTPError as exc:
            raise TransferError(
                f"Download interrupted after {response.num_bytes_downloaded} bytes: {exc}"
            ) from exc

        if total is not None and downloaded < total:
            raise TransferError(
                f"Download incomplete: received {downloaded} of {total} bytes."
            )

        logger.debug("fetched %d bytes (%d on the wire) from %s", received, downloaded, response.url)
        return b"".join(chunks)
