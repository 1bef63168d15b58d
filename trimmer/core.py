import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional, Tuple, Union

from application.domain.audio import AudioBuffer, EncodedArtifact, SampleRange, TimeRange
from application.domain.cancellation import CancellationToken
from application.domain.errors import (
    EncodeTimeout,
    InternalError,
    PipelineCancelled,
    TrimError,
)
from application.domain.status import (
    IDLE_STATUS,
    PipelineState,
    ProcessingStatus,
    status_tag_for,
)
from application.dto.trim_dto import TrimSettingsDTO
from application.ports.audio_trimmer_port import IAudioTrimmer
from application.ports.container_encoder_port import IContainerEncoder
from application.ports.sample_decoder_port import ISampleDecoder
from application.ports.stream_fetcher_port import IStreamFetcher
from infrastructure.audio.numpy_audio_trimmer import NumpyAudioTrimmer
from infrastructure.audio.wav_container_encoder import WavContainerEncoder
from infrastructure.net.httpx_stream_fetcher import HttpxStreamFetcher
from trimmer.utils import get_original_filename, get_trimmed_filename

logger = logging.getLogger(__name__)

# ── Container registry ───────────────────────────────────────────
# The output container is a single policy switch, not separate code paths.
CONTAINER_ENCODERS: Dict[str, IContainerEncoder] = {
    "wav": WavContainerEncoder(),
}

ProgressCallback = Callable[[ProcessingStatus], None]


@dataclass(frozen=True)
class FallbackOffer:
    """Untrimmed original offered for direct download after an encode timeout."""
    source_url: str
    filename: str


class TrimPipeline:
    """
    Fetch → decode → select → copy → encode, one stage at a time.

    One instance serves one trim request. The decoder is a long-lived handle
    owned by the host and only borrowed here. Every stage failure is reported
    as exactly one Error status and re-raised; cancellation returns the
    pipeline to Idle and raises PipelineCancelled.
    """

    def __init__(
        self,
        decoder: ISampleDecoder,
        fetcher: Optional[IStreamFetcher] = None,
        trimmer: Optional[IAudioTrimmer] = None,
        encoder: Optional[IContainerEncoder] = None,
        settings: Optional[TrimSettingsDTO] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings: TrimSettingsDTO = settings or TrimSettingsDTO()
        if encoder is None:
            fmt: str = self.settings.container_format
            if fmt not in CONTAINER_ENCODERS:
                raise ValueError(
                    f"Unsupported container format: '{fmt}'.\n"
                    f"    Supported: {', '.join(sorted(CONTAINER_ENCODERS))}"
                )
            encoder = CONTAINER_ENCODERS[fmt]

        self.decoder: ISampleDecoder = decoder
        self.fetcher: IStreamFetcher = fetcher or HttpxStreamFetcher(
            max_bytes=self.settings.max_download_bytes
        )
        self.trimmer: IAudioTrimmer = trimmer or NumpyAudioTrimmer()
        self.encoder: IContainerEncoder = encoder
        self._clock: Callable[[], float] = clock

        self._lock: Lock = Lock()
        self._running: bool = False
        # True once a run has ended; a later cancel() has nothing to stop
        self._settled: bool = False
        self._token: CancellationToken = CancellationToken()
        self._status: ProcessingStatus = IDLE_STATUS
        self._callback: Optional[ProgressCallback] = None
        self._deadline: Optional[float] = None
        self._source_url: Optional[str] = None
        self._fallback: Optional[FallbackOffer] = None

    # ── Public API ───────────────────────────────────────────────

    @property
    def status(self) -> ProcessingStatus:
        return self._status

    @property
    def state(self) -> PipelineState:
        return self._status.state

    @property
    def _container_label(self) -> str:
        return self.encoder.format_id.upper()

    def cancel(self) -> None:
        """
        Request cancellation; honoured at the next checkpoint. Thread-safe.

        A pipeline that has already finished ignores the request, so a late
        cancel never leaks into the next run.
        """
        with self._lock:
            if not self._running and self._settled:
                logger.debug("cancel ignored: pipeline already %s", self._status.state.value)
                return
            self._token.cancel()

    def reset(self) -> None:
        """Return a finished pipeline to Idle."""
        with self._lock:
            if self._running:
                raise RuntimeError("Cannot reset a pipeline while it is running.")
            self._reset_unlocked()
            self._settled = False

    def offer_fallback(self) -> Optional[FallbackOffer]:
        """The original artifact, offered only after an encode timeout."""
        return self._fallback

    def download_original(self) -> EncodedArtifact:
        """Fetch the untrimmed original. Only valid when a fallback is on offer."""
        offer: Optional[FallbackOffer] = self._fallback
        if offer is None:
            raise RuntimeError("No fallback download is on offer for this pipeline.")
        data: bytes = self.fetcher.fetch(offer.source_url)
        return EncodedArtifact(
            data=data,
            filename=offer.filename,
            mimetype="application/octet-stream",
        )

    def run(
        self,
        source_url: str,
        time_range: Union[TimeRange, Tuple[float, float]],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> EncodedArtifact:
        """
        Produce the encoded trim window of *source_url*.

        Args:
            source_url:        URL the fetcher can retrieve.
            time_range:        TimeRange or (start, end) in seconds.
            progress_callback: Receives every ProcessingStatus of the run.

        Returns:
            EncodedArtifact with the container bytes and suggested filename.

        Raises:
            TrimError subclass on failure (after the Error status is emitted).
            PipelineCancelled if cancel() was called mid-run.
        """
        with self._lock:
            if self._running:
                raise RuntimeError("Pipeline is already running.")
            self._running = True
            # Keep the token: a cancel() issued before the run starts still counts
            self._reset_unlocked(keep_token=True)
        self._callback = progress_callback
        self._source_url = source_url

        try:
            # Range validation happens before any network work
            if not isinstance(time_range, TimeRange):
                start, end = time_range
                time_range = TimeRange(start, end)
            return self._run_stages(source_url, time_range)
        except PipelineCancelled:
            logger.info("trim cancelled url=%s", source_url)
            self._emit(PipelineState.IDLE, 0, "Trim cancelled")
            raise
        except TrimError as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            logger.error("unexpected pipeline failure: %s", exc, exc_info=True)
            wrapped = InternalError(f"Failed to process audio: {exc}")
            self._fail(wrapped)
            raise wrapped from exc
        finally:
            self._deadline = None
            self._callback = None
            with self._lock:
                self._token = CancellationToken()
                self._running = False
                self._settled = True

    # ── Stages ───────────────────────────────────────────────────

    def _run_stages(self, source_url: str, time_range: TimeRange) -> EncodedArtifact:
        settings: TrimSettingsDTO = self.settings
        detailed: bool = settings.stream_progress
        started: float = self._clock()

        # [1] Fetch
        self._emit(PipelineState.FETCHING, 0, "Initializing download...")
        self._emit(PipelineState.FETCHING, 10, "Downloading audio file...")
        payload: bytes = self.fetcher.fetch(
            source_url,
            progress_callback=self._on_fetch_progress if detailed else None,
            checkpoint=self._checkpoint,
        )

        # [2] Decode
        self._emit(PipelineState.DECODING, 35, "Processing audio data...")
        self._checkpoint()
        self._emit(PipelineState.DECODING, 50, "Decoding audio...")
        source: AudioBuffer = self.decoder.decode(payload)
        del payload
        self._checkpoint()

        # [3] Select
        self._emit(PipelineState.SELECTING, 60, "Selecting trim range...")
        sample_range: SampleRange = self.trimmer.select(source, time_range)
        logger.info(
            "trim window frames=%d-%d rate=%d channels=%d",
            sample_range.start_sample, sample_range.end_sample,
            source.sample_rate, source.channel_count,
        )

        # [4] Copy
        self._emit(PipelineState.COPYING, 70, "Creating trimmed audio...")
        trimmed: AudioBuffer = self.trimmer.copy(
            source,
            sample_range,
            slice_frames=self._slice_frames(source, settings.copy_slice_seconds),
            progress_callback=self._on_copy_progress if detailed else None,
            checkpoint=self._checkpoint,
        )
        del source

        # [5] Encode, under the deadline
        self._emit(PipelineState.ENCODING, 90, f"Converting to {self._container_label} format...")
        self._deadline = self._clock() + settings.encode_timeout_s
        data: bytes = self.encoder.encode(
            trimmed,
            slice_frames=self._slice_frames(trimmed, settings.encode_slice_seconds),
            progress_callback=self._on_encode_progress if detailed else None,
            checkpoint=self._checkpoint,
        )
        # An encode that finishes late still loses the race against its deadline
        self._check_deadline()
        self._deadline = None
        del trimmed

        self._emit(PipelineState.ENCODING, 95, "Preparing download...")
        artifact: EncodedArtifact = EncodedArtifact(
            data=data,
            filename=get_trimmed_filename(
                time_range.start, time_range.end, self.encoder.file_extension
            ),
            mimetype=self.encoder.mimetype,
        )

        self._emit(PipelineState.COMPLETED, 100, "Download completed successfully")
        logger.info(
            "trim completed file=%s size=%dB elapsed=%.2fs",
            artifact.filename, artifact.size, self._clock() - started,
        )
        return artifact

    # ── Checkpoints & progress ───────────────────────────────────

    def _checkpoint(self) -> None:
        """Yield point between slices and chunks: cancellation, then deadline."""
        time.sleep(0)
        self._token.raise_if_cancelled()
        self._check_deadline()

    def _check_deadline(self) -> None:
        if self._deadline is not None and self._clock() >= self._deadline:
            raise EncodeTimeout(
                f"{self._container_label} conversion timed out after {self.settings.encode_timeout_s:g}s. "
                f"Try downloading the original audio instead."
            )

    @staticmethod
    def _slice_frames(buffer: AudioBuffer, seconds: float) -> int:
        return max(1, int(buffer.sample_rate * seconds))

    def _on_fetch_progress(self, received: int, total: Optional[int]) -> None:
        if total:
            fraction: float = received / total
            self._emit(
                PipelineState.FETCHING,
                min(30, round(10 + fraction * 20)),
                f"Downloading: {round(fraction * 100)}%",
            )
        else:
            self._emit(
                PipelineState.FETCHING,
                10,
                f"Downloading: {received / (1024 * 1024):.1f} MB received",
            )

    def _on_copy_progress(self, done: int, total: int) -> None:
        self._emit(PipelineState.COPYING, 70 + int(20 * done / total), "Creating trimmed audio...")

    def _on_encode_progress(self, done: int, total: int) -> None:
        percent: int = round(done / total * 100)
        self._emit(
            PipelineState.ENCODING,
            90 + int(5 * done / total),
            f"Converting to {self._container_label}: {percent}%",
        )

    # ── Status bookkeeping ───────────────────────────────────────

    def _emit(
        self,
        state: PipelineState,
        progress: int,
        message: str,
        error: Optional[TrimError] = None,
    ) -> None:
        if state in (PipelineState.IDLE, PipelineState.ERROR):
            value: int = progress
        else:
            # Monotonic within a run
            value = max(int(progress), self._status.progress)
        status = ProcessingStatus(
            status=status_tag_for(state),
            progress=value,
            message=message,
            state=state,
            error_kind=error.kind if error else None,
            error=error.message if error else None,
            fallback_url=self._fallback.source_url if self._fallback else None,
        )
        self._status = status
        if self._callback:
            self._callback(status)

    def _fail(self, exc: TrimError) -> None:
        if isinstance(exc, EncodeTimeout) and self._source_url:
            self._fallback = FallbackOffer(
                source_url=self._source_url,
                filename=get_original_filename(self._source_url),
            )
            message: str = f"{self._container_label} conversion timed out"
        elif exc.kind == "range_error":
            message = "Invalid trim range"
        else:
            message = "Failed to process audio"
        logger.error("trim failed kind=%s: %s", exc.kind, exc.message)
        self._emit(PipelineState.ERROR, 0, message, error=exc)

    def _reset_unlocked(self, keep_token: bool = False) -> None:
        if not keep_token:
            self._token = CancellationToken()
        self._status = IDLE_STATUS
        self._deadline = None
        self._fallback = None
        self._source_url = None
