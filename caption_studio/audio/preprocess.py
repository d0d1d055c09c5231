"""Audio preprocessing: any media file → 16 kHz mono 16-bit PCM WAV.

WHY: The transcription service receives the audio inline, base64-encoded
inside the request. Speech recognition gains nothing above 16 kHz, and
a stereo 48 kHz video soundtrack is ~6x larger than the same speech as
16 kHz mono. Shrinking the signal before upload keeps requests small.

HOW: Four steps, each a plain function so tests can drive them alone:
  1. decode_media()  — ffprobe reads the first audio stream's rate and
                       channel count, ffmpeg streams it as raw float32
  2. first_channel() — keep channel 0 only
  3. resample()      — scipy polyphase resampling to 16 kHz
  4. encode_wav()    — clip, convert to int16, write a WAV with soundfile
AudioPreprocessor chains them and returns an EncodedAudio.

RULES:
- Only channel 0 is kept. This is a deliberate simplification, not a
  weighted downmix; a right-only recording transcribes as silence
- Every failure to produce samples raises MediaDecodeError (missing
  ffmpeg/ffprobe, undecodable input, no audio stream, zero samples)
- Output length is always 44 + 2 * sample_count bytes
- The header always declares 1 channel at 16000 Hz, 16 bits
"""

from __future__ import annotations

import asyncio
import base64
import io
import json
import logging
import os
import shutil
import subprocess
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from math import gcd
from pathlib import Path
from typing import Union

import numpy as np
import soundfile as sf
from scipy.signal import resample_poly

from caption_studio.config import TARGET_SAMPLE_RATE

logger = logging.getLogger(__name__)

WAV_MEDIA_TYPE = "audio/wav"
WAV_HEADER_SIZE = 44

MediaSource = Union[bytes, str, Path]


class MediaDecodeError(Exception):
    """Raised when a media file cannot be turned into audio samples.

    WHY: A corrupt upload or an unsupported codec must stop the current
    generation attempt with a clear message. Handing an empty or
    truncated buffer to the transcription service would produce an empty
    caption list that looks like success.

    RULES:
    - Raised by decode_media() and AudioPreprocessor.process()
    - Never caught inside this module
    """


@dataclass(frozen=True)
class DecodedAudio:
    """Raw float32 samples at the source's native rate.

    samples has shape (frames, channels), or (frames,) for mono.
    """

    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        return 1 if self.samples.ndim == 1 else int(self.samples.shape[1])

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[0])


@dataclass(frozen=True)
class EncodedAudio:
    """A WAV byte buffer ready to embed in a request."""

    data: bytes
    sample_rate: int
    sample_count: int
    media_type: str = WAV_MEDIA_TYPE

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


Decoder = Callable[[MediaSource], DecodedAudio]


# ---------------------------------------------------------------------------
# Step 1: decode
# ---------------------------------------------------------------------------


def _require_binary(name: str) -> str:
    path = shutil.which(name)
    if path is None:
        raise MediaDecodeError(
            "{} not found on PATH. Install FFmpeg to decode media files.".format(name)
        )
    return path


def _probe_audio_stream(ffprobe: str, media_path: str) -> tuple[int, int]:
    """Return (sample_rate, channels) of the first audio stream."""
    cmd = [
        ffprobe,
        "-v", "error",
        "-select_streams", "a:0",
        "-show_entries", "stream=sample_rate,channels",
        "-of", "json",
        media_path,
    ]
    result = subprocess.run(cmd, capture_output=True, text=True, encoding="utf-8")
    if result.returncode != 0:
        raise MediaDecodeError(
            "Could not read media file: {}".format(result.stderr.strip() or "ffprobe failed")
        )

    try:
        streams = json.loads(result.stdout or "{}").get("streams", [])
    except json.JSONDecodeError as exc:
        raise MediaDecodeError("Could not read media info: {}".format(exc)) from exc

    if not streams:
        raise MediaDecodeError("Media file has no audio stream")

    try:
        sample_rate = int(streams[0]["sample_rate"])
        channels = int(streams[0]["channels"])
    except (KeyError, TypeError, ValueError) as exc:
        raise MediaDecodeError("Audio stream info is incomplete: {}".format(streams[0])) from exc

    if sample_rate <= 0 or channels <= 0:
        raise MediaDecodeError(
            "Invalid audio stream (sample_rate={}, channels={})".format(sample_rate, channels)
        )
    return sample_rate, channels


def _decode_path(media_path: str) -> DecodedAudio:
    ffprobe = _require_binary("ffprobe")
    ffmpeg = _require_binary("ffmpeg")

    sample_rate, channels = _probe_audio_stream(ffprobe, media_path)

    cmd = [
        ffmpeg,
        "-v", "error",
        "-nostdin",
        "-i", media_path,
        "-map", "0:a:0",
        "-f", "f32le",
        "-acodec", "pcm_f32le",
        "pipe:1",
    ]
    result = subprocess.run(cmd, capture_output=True)
    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise MediaDecodeError("Could not decode audio: {}".format(stderr or "ffmpeg failed"))

    raw = np.frombuffer(result.stdout, dtype="<f4")
    frames = raw.size // channels
    if frames == 0:
        raise MediaDecodeError("Decoded audio is empty")

    samples = raw[: frames * channels].reshape(frames, channels)
    logger.debug(
        "Decoded %s: %d frames, %d channel(s) @ %d Hz",
        media_path, frames, channels, sample_rate,
    )
    return DecodedAudio(samples=samples, sample_rate=sample_rate)


def decode_media(source: MediaSource) -> DecodedAudio:
    """Decode the first audio stream of a media file or byte buffer.

    Args:
        source: Path to a media file, or the file's bytes (written to a
            temporary file, since containers such as MP4 need seeking).

    Returns:
        DecodedAudio at the source's native rate and channel count.

    Raises:
        MediaDecodeError: On any failure to produce at least one sample.
    """
    if isinstance(source, (bytes, bytearray)):
        if not source:
            raise MediaDecodeError("Media buffer is empty")
        fd, tmp_path = tempfile.mkstemp(prefix="caption_studio_", suffix=".media")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(source)
            return _decode_path(tmp_path)
        finally:
            os.unlink(tmp_path)

    media_path = Path(source)
    if not media_path.is_file():
        raise MediaDecodeError("Media file not found: {}".format(media_path))
    return _decode_path(str(media_path))


# ---------------------------------------------------------------------------
# Steps 2-4: downmix, resample, encode
# ---------------------------------------------------------------------------


def first_channel(samples: np.ndarray) -> np.ndarray:
    """Return channel 0 as a 1-D float32 array (mono input passes through)."""
    if samples.ndim == 1:
        return samples.astype(np.float32, copy=False)
    return np.ascontiguousarray(samples[:, 0], dtype=np.float32)


def resample(samples: np.ndarray, orig_sr: int, target_sr: int = TARGET_SAMPLE_RATE) -> np.ndarray:
    """Polyphase resampling from orig_sr to target_sr.

    The up/down ratio is reduced by its gcd, so 44100 → 16000 runs as
    160/441 rather than 16000/44100.
    """
    if orig_sr == target_sr or samples.size == 0:
        return samples.astype(np.float32, copy=False)
    divisor = gcd(orig_sr, target_sr)
    up = target_sr // divisor
    down = orig_sr // divisor
    return resample_poly(samples, up, down).astype(np.float32)


def encode_wav(samples: np.ndarray, sample_rate: int = TARGET_SAMPLE_RATE) -> bytes:
    """Serialize mono float samples as a 16-bit PCM WAV file.

    Samples are clipped to [-1, 1]; negatives scale by 0x8000 and the rest
    by 0x7FFF, truncating toward zero. soundfile receives the int16
    buffer, so libsndfile writes the samples unscaled behind the plain
    44-byte RIFF header.
    """
    pcm = np.clip(np.nan_to_num(samples.astype(np.float64), nan=0.0), -1.0, 1.0)
    pcm = np.where(pcm < 0, pcm * 0x8000, pcm * 0x7FFF).astype(np.int16)

    buffer = io.BytesIO()
    sf.write(buffer, pcm, sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class AudioPreprocessor:
    """Runs decode → first channel → resample → WAV for one media input.

    Args:
        decoder: Replaces decode_media(), e.g. in tests that have no
            ffmpeg or want a synthetic signal.
        target_rate: Output sample rate (16 kHz unless overridden).
    """

    def __init__(
        self,
        decoder: Decoder | None = None,
        target_rate: int = TARGET_SAMPLE_RATE,
    ) -> None:
        self._decoder = decoder or decode_media
        self._target_rate = target_rate

    def process(self, source: MediaSource) -> EncodedAudio:
        """Blocking pipeline. Raises MediaDecodeError on any decode failure."""
        decoded = self._decoder(source)
        if decoded.samples.size == 0:
            raise MediaDecodeError("Decoded audio is empty")

        mono = first_channel(decoded.samples)
        resampled = resample(mono, decoded.sample_rate, self._target_rate)
        data = encode_wav(resampled, self._target_rate)

        logger.info(
            "Preprocessed audio: %d ch @ %d Hz → mono @ %d Hz, %d samples (%d bytes)",
            decoded.channels,
            decoded.sample_rate,
            self._target_rate,
            resampled.size,
            len(data),
        )
        return EncodedAudio(
            data=data,
            sample_rate=self._target_rate,
            sample_count=int(resampled.size),
        )

    async def process_async(self, source: MediaSource) -> EncodedAudio:
        """Same as process(), run in a worker thread."""
        return await asyncio.to_thread(self.process, source)
