# infrastructure/audio/wav_container_encoder.py
# Implementation of IContainerEncoder producing canonical 16-bit PCM WAV.

import struct
from typing import Callable, Optional

import numpy as np

from application.domain.audio import AudioBuffer
from application.domain.errors import InternalError
from application.ports.container_encoder_port import IContainerEncoder

WAV_HEADER_SIZE: int = 44
BITS_PER_SAMPLE: int = 16
BYTES_PER_SAMPLE: int = BITS_PER_SAMPLE // 8
PCM_FORMAT_TAG: int = 1
MAX_RIFF_SIZE: int = 0xFFFFFFFF

# RIFF/WAVE header, all integers little-endian:
#   'RIFF' riff_size 'WAVE' 'fmt ' 16 format channels rate byte_rate block_align bits 'data' data_size
_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")


def build_wav_header(frame_count: int, channel_count: int, sample_rate: int) -> bytes:
    """Pack the fixed 44-byte header for 16-bit PCM."""
    block_align: int = channel_count * BYTES_PER_SAMPLE
    data_size: int = frame_count * block_align
    if WAV_HEADER_SIZE - 8 + data_size > MAX_RIFF_SIZE:
        raise InternalError(
            f"Audio too large for a WAV container: {data_size} data bytes "
            f"(max {MAX_RIFF_SIZE - 36})."
        )
    return _HEADER_STRUCT.pack(
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_TAG,
        channel_count,
        sample_rate,
        sample_rate * block_align,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """
    Convert float samples to int16.

    Clamp to [-1, 1], scale negatives by 32768 and the rest by 32767, then
    truncate toward zero. Works in float64 so the result does not depend on
    float32 rounding of the product.
    """
    clamped: np.ndarray = np.clip(samples.astype(np.float64), -1.0, 1.0)
    scaled: np.ndarray = np.where(clamped < 0, clamped * 32768.0, clamped * 32767.0)
    return np.trunc(scaled).astype("<i2")


class WavContainerEncoder(IContainerEncoder):
    """Canonical RIFF/WAVE, PCM format 1, 16 bits per sample, interleaved frames."""

    @property
    def format_id(self) -> str:
        return "wav"

    @property
    def mimetype(self) -> str:
        return "audio/wav"

    def encode(
        self,
        buffer: AudioBuffer,
        slice_frames: Optional[int] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> bytes:
        frames: int = buffer.frame_count
        channels: int = buffer.channel_count
        block_align: int = channels * BYTES_PER_SAMPLE
        data_size: int = frames * block_align

        header: bytes = build_wav_header(frames, channels, buffer.sample_rate)
        out: bytearray = bytearray(WAV_HEADER_SIZE + data_size)
        out[:WAV_HEADER_SIZE] = header

        # Default slice: 0.1 s of audio
        step: int = max(1, int(slice_frames or buffer.sample_rate // 10))
        source: np.ndarray = buffer.samples

        for offset in range(0, frames, step):
            end: int = min(offset + step, frames)
            # Row-major (frames, channels) bytes are already frame-interleaved
            chunk: bytes = float_to_pcm16(source[offset:end]).tobytes()
            pos: int = WAV_HEADER_SIZE + offset * block_align
            out[pos:pos + len(chunk)] = chunk
            if progress_callback:
                progress_callback(end, frames)
            if checkpoint and end < frames:
                checkpoint()

        self._verify(out, frames, channels, buffer.sample_rate)
        return bytes(out)

    @staticmethod
    def _verify(out: bytearray, frames: int, channels: int, sample_rate: int) -> None:
        """Raise InternalError if the container does not match its own header."""
        fields = _HEADER_STRUCT.unpack_from(out, 0)
        riff_size, n_channels, rate, data_size = fields[1], fields[6], fields[7], fields[12]
        expected_data: int = frames * channels * BYTES_PER_SAMPLE
        if (
            data_size != expected_data
            or riff_size != 36 + data_size
            or len(out) != WAV_HEADER_SIZE + data_size
            or n_channels != channels
            or rate != sample_rate
        ):
            raise InternalError(
                f"WAV header mismatch: declared {data_size} data bytes, "
                f"expected {expected_data}, container holds {len(out) - WAV_HEADER_SIZE}."
            )
