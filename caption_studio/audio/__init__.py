"""Audio preprocessing: media → compact 16 kHz mono WAV for upload."""

from caption_studio.audio.preprocess import (
    AudioPreprocessor,
    DecodedAudio,
    EncodedAudio,
    MediaDecodeError,
    decode_media,
    encode_wav,
)

__all__ = [
    "AudioPreprocessor",
    "DecodedAudio",
    "EncodedAudio",
    "MediaDecodeError",
    "decode_media",
    "encode_wav",
]
