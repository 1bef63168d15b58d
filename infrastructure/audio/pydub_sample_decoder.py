# infrastructure/audio/pydub_sample_decoder.py
# Implementation of ISampleDecoder: pydub loads the payload, soundfile reads the PCM.

import io
import logging
from typing import Optional

import numpy as np
import soundfile as sf
from pydub import AudioSegment

from application.domain.audio import AudioBuffer
from application.domain.errors import DecodeError
from application.ports.sample_decoder_port import ISampleDecoder

logger = logging.getLogger(__name__)

# Magic bytes for known audio containers → pydub/ffmpeg format tag
AUDIO_MAGIC_BYTES: dict[bytes, str] = {
    b"\xff\xfb":              "mp3",  # MP3 (MPEG layer 3)
    b"\xff\xf3":              "mp3",
    b"\xff\xf2":              "mp3",
    b"ID3":                   "mp3",  # MP3 with ID3 tag
    b"fLaC":                  "flac",
    b"OggS":                  "ogg",
    b"\x00\x00\x00\x20ftyp": "mp4",
    b"\x00\x00\x00\x1cftyp": "mp4",
    b"\x00\x00\x00\x18ftyp": "mp4",
}


def sniff_format(data: bytes) -> Optional[str]:
    """Return the container format from the leading bytes, or None if unknown."""
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav"
    for magic, fmt in AUDIO_MAGIC_BYTES.items():
        if data[:len(magic)] == magic:
            return fmt
    return None


class PydubSampleDecoder(ISampleDecoder):
    """
    Decode any format pydub understands into a float32 AudioBuffer.

    WAV payloads are parsed in pure Python; everything else goes through
    ffmpeg, so it must be on PATH. The decoder keeps no per-run state and is
    safe to reuse across sequential pipeline runs.
    """

    def decode(self, data: bytes) -> AudioBuffer:
        if not data:
            raise DecodeError("Unable to decode audio: the downloaded payload is empty.")

        fmt: Optional[str] = sniff_format(data)
        logger.debug("decoding %d bytes format=%s", len(data), fmt or "auto")

        try:
            segment: AudioSegment = AudioSegment.from_file(io.BytesIO(data), format=fmt)
            wav_buffer: io.BytesIO = io.BytesIO()
            segment.export(wav_buffer, format="wav")
            wav_buffer.seek(0)
            samples: np.ndarray
            sr: int
            samples, sr = sf.read(wav_buffer, dtype="float32", always_2d=True)
        except Exception as exc:
            raise DecodeError(f"Unable to decode audio data: {exc}") from exc

        if samples.shape[0] == 0:
            raise DecodeError("Unable to decode audio: the payload contains no audio frames.")

        return AudioBuffer(samples, sr)
