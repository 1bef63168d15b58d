import io
import struct

import numpy as np
import pytest
import soundfile as sf

from application.domain.audio import AudioBuffer
from application.domain.errors import InternalError
from infrastructure.audio.wav_container_encoder import (
    WAV_HEADER_SIZE,
    WavContainerEncoder,
    build_wav_header,
    float_to_pcm16,
)

# Test Constants
SAMPLE_RATE: int = 44100


# Helpers


def make_stereo_sine(freq: int = 440, frames: int = 4410, sr: int = SAMPLE_RATE) -> AudioBuffer:
    """Create a stereo sine wave test buffer."""
    t: np.ndarray = np.arange(frames, dtype=np.float32) / sr
    mono: np.ndarray = (0.8 * np.sin(2 * np.pi * freq * t)).astype(np.float32)
    return AudioBuffer(np.column_stack([mono, -mono]), sr)


def unpack_header(data: bytes) -> tuple:
    return struct.unpack("<4sI4s4sIHHIIHH4sI", data[:WAV_HEADER_SIZE])


class TestWavHeader:
    """Tests for the fixed 44-byte RIFF/WAVE header."""

    def test_stereo_44100_layout(self) -> None:
        fields: tuple = unpack_header(build_wav_header(132300, 2, SAMPLE_RATE))
        assert fields[0] == b"RIFF"
        assert fields[1] == 529236
        assert fields[2] == b"WAVE"
        assert fields[3] == b"fmt "
        assert fields[4] == 16
        assert fields[5] == 1
        assert fields[6] == 2
        assert fields[7] == 44100
        assert fields[8] == 176400
        assert fields[9] == 4
        assert fields[10] == 16
        assert fields[11] == b"data"
        assert fields[12] == 529200

    def test_mono_48000_one_second(self) -> None:
        fields: tuple = unpack_header(build_wav_header(48000, 1, 48000))
        assert fields[1] == 96036
        assert fields[8] == 96000
        assert fields[9] == 2
        assert fields[12] == 96000

    def test_oversized_data_is_internal_error(self) -> None:
        with pytest.raises(InternalError, match="too large"):
            build_wav_header(2 ** 31, 2, SAMPLE_RATE)


class TestFloatToPcm16:
    """Tests for float → signed 16-bit sample conversion."""

    def test_full_scale_values(self) -> None:
        pcm: np.ndarray = float_to_pcm16(np.array([-1.0, 0.0, 1.0], dtype=np.float32))
        assert pcm.tolist() == [-32768, 0, 32767]

    def test_out_of_range_values_are_clamped(self) -> None:
        pcm: np.ndarray = float_to_pcm16(np.array([1.5, -2.0], dtype=np.float32))
        assert pcm.tolist() == [32767, -32768]

    def test_truncates_toward_zero(self) -> None:
        pcm: np.ndarray = float_to_pcm16(np.array([0.5, -0.5], dtype=np.float64))
        # 0.5 * 32767 = 16383.5 and -0.5 * 32768 = -16384
        assert pcm.tolist() == [16383, -16384]

    def test_output_is_little_endian_int16(self) -> None:
        pcm: np.ndarray = float_to_pcm16(np.zeros(4, dtype=np.float32))
        assert pcm.dtype == np.dtype("<i2")


class TestWavContainerEncoder:
    """Tests for whole-buffer WAV encoding."""

    def test_encoded_length(self) -> None:
        buffer: AudioBuffer = make_stereo_sine(frames=4410)
        data: bytes = WavContainerEncoder().encode(buffer)
        assert len(data) == WAV_HEADER_SIZE + 4410 * 4

    def test_header_matches_buffer(self) -> None:
        buffer: AudioBuffer = make_stereo_sine(frames=1000)
        fields: tuple = unpack_header(WavContainerEncoder().encode(buffer))
        assert fields[6] == 2
        assert fields[7] == SAMPLE_RATE
        assert fields[12] == 4000

    def test_frames_are_interleaved(self) -> None:
        raw: np.ndarray = np.array([[1.0, -1.0], [0.0, 1.0]], dtype=np.float32)
        data: bytes = WavContainerEncoder().encode(AudioBuffer(raw, 8000))
        samples: tuple = struct.unpack("<4h", data[WAV_HEADER_SIZE:])
        assert samples == (32767, -32768, 0, 32767)

    def test_out_of_range_buffer_encodes_like_clamped_buffer(self) -> None:
        loud: np.ndarray = np.array([[1.7, -3.0], [0.25, 0.0]], dtype=np.float32)
        clamped: np.ndarray = np.array([[1.0, -1.0], [0.25, 0.0]], dtype=np.float32)
        encoder: WavContainerEncoder = WavContainerEncoder()
        assert encoder.encode(AudioBuffer(loud, 8000)) == encoder.encode(AudioBuffer(clamped, 8000))

    def test_encoding_is_deterministic(self) -> None:
        buffer: AudioBuffer = make_stereo_sine()
        encoder: WavContainerEncoder = WavContainerEncoder()
        assert encoder.encode(buffer) == encoder.encode(buffer)

    @pytest.mark.parametrize("slice_frames", [1, 3, 441, 100_000])
    def test_slicing_does_not_change_output(self, slice_frames: int) -> None:
        buffer: AudioBuffer = make_stereo_sine(frames=2000)
        encoder: WavContainerEncoder = WavContainerEncoder()
        assert encoder.encode(buffer, slice_frames=slice_frames) == encoder.encode(buffer)

    def test_readable_by_soundfile(self) -> None:
        buffer: AudioBuffer = make_stereo_sine(frames=4410)
        data: bytes = WavContainerEncoder().encode(buffer)
        decoded, sr = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
        assert sr == SAMPLE_RATE
        assert decoded.shape == (4410, 2)
        np.testing.assert_allclose(decoded, buffer.samples, atol=1e-4)

    def test_progress_reaches_total(self) -> None:
        buffer: AudioBuffer = make_stereo_sine(frames=4410)
        calls: list[tuple[int, int]] = []
        WavContainerEncoder().encode(
            buffer,
            slice_frames=1000,
            progress_callback=lambda done, total: calls.append((done, total)),
        )
        assert len(calls) == 5
        assert calls[-1] == (4410, 4410)
        assert [done for done, _ in calls] == sorted(done for done, _ in calls)

    def test_checkpoint_can_abort(self) -> None:
        def abort() -> None:
            raise RuntimeError("stop")

        with pytest.raises(RuntimeError, match="stop"):
            WavContainerEncoder().encode(make_stereo_sine(frames=4410), slice_frames=441, checkpoint=abort)

    def test_format_identity(self) -> None:
        encoder: WavContainerEncoder = WavContainerEncoder()
        assert encoder.format_id == "wav"
        assert encoder.file_extension == "wav"
        assert encoder.mimetype == "audio/wav"
