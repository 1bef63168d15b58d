import io

import numpy as np
import pytest
import soundfile as sf

from application.domain.audio import AudioBuffer
from application.domain.errors import DecodeError
from infrastructure.audio.pydub_sample_decoder import PydubSampleDecoder, sniff_format

# Test Constants
SAMPLE_RATE: int = 44100


# Helpers


def make_wav_bytes(duration: float = 0.5, sr: int = SAMPLE_RATE, channels: int = 2) -> bytes:
    """Encode a short sine as 16-bit PCM WAV in memory."""
    num_frames: int = int(sr * duration)
    t: np.ndarray = np.arange(num_frames, dtype=np.float32) / sr
    mono: np.ndarray = (0.5 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
    samples: np.ndarray = np.column_stack([mono] * channels)
    out: io.BytesIO = io.BytesIO()
    sf.write(out, samples, sr, format="WAV", subtype="PCM_16")
    return out.getvalue()


class TestSniffFormat:

    def test_wav(self) -> None:
        assert sniff_format(make_wav_bytes(duration=0.01)) == "wav"

    def test_mp3_with_id3_tag(self) -> None:
        assert sniff_format(b"ID3\x04\x00" + b"\x00" * 20) == "mp3"

    def test_flac(self) -> None:
        assert sniff_format(b"fLaC\x00\x00\x00\x22") == "flac"

    def test_unknown_bytes(self) -> None:
        assert sniff_format(b"hello world") is None


class TestPydubSampleDecoder:
    """Tests for payload → AudioBuffer decoding."""

    def test_decodes_stereo_wav(self) -> None:
        buffer: AudioBuffer = PydubSampleDecoder().decode(make_wav_bytes())
        assert buffer.sample_rate == SAMPLE_RATE
        assert buffer.channel_count == 2
        assert buffer.frame_count == 22050
        assert buffer.samples.dtype == np.float32

    def test_decodes_mono_wav(self) -> None:
        buffer: AudioBuffer = PydubSampleDecoder().decode(make_wav_bytes(sr=22050, channels=1))
        assert buffer.channel_count == 1
        assert buffer.sample_rate == 22050

    def test_decoded_samples_match_source(self) -> None:
        buffer: AudioBuffer = PydubSampleDecoder().decode(make_wav_bytes(duration=0.1))
        expected: np.ndarray = 0.5 * np.sin(2 * np.pi * 440 * np.arange(4410) / SAMPLE_RATE)
        np.testing.assert_allclose(buffer.channel(0), expected, atol=1e-3)

    def test_decoder_is_reusable(self) -> None:
        decoder: PydubSampleDecoder = PydubSampleDecoder()
        first: AudioBuffer = decoder.decode(make_wav_bytes(duration=0.1))
        second: AudioBuffer = decoder.decode(make_wav_bytes(duration=0.2))
        assert first.frame_count == 4410
        assert second.frame_count == 8820

    def test_empty_payload_is_decode_error(self) -> None:
        with pytest.raises(DecodeError, match="empty"):
            PydubSampleDecoder().decode(b"")

    def test_garbage_payload_is_decode_error(self) -> None:
        with pytest.raises(DecodeError):
            PydubSampleDecoder().decode(b"<html>not audio</html>" * 10)

    def test_truncated_wav_header_is_decode_error(self) -> None:
        with pytest.raises(DecodeError):
            PydubSampleDecoder().decode(make_wav_bytes()[:20])
