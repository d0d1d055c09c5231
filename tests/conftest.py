"""Shared test fixtures for the caption_studio test suite.

WHY: Most test modules need the same small caption list, a fake media
player and a fake AI client. Centralizing them here avoids duplication
and keeps every module on the same sample data.

HOW: Plain helper functions build events; pytest fixtures hand out
fresh copies so no test can leak state into another.

RULES:
- Event ids are deterministic ("e1", "e2", ...) for readable asserts
- Fakes record every call so tests can assert on them
- No fixture touches the network or needs ffmpeg
"""

from __future__ import annotations

from typing import Dict, List, Optional

import numpy as np
import pytest

from caption_studio.api.models import TranscriptionItem, TranscriptionResult, TranslationItem
from caption_studio.audio.preprocess import AudioPreprocessor, DecodedAudio
from caption_studio.core.model import CaptionEvent


def make_event(
    event_id: str,
    start: float,
    end: float,
    text: str = "",
    **kwargs,
) -> CaptionEvent:
    """Build a CaptionEvent with a default text derived from the id."""
    return CaptionEvent(
        id=event_id,
        start_time=start,
        end_time=end,
        text=text or "Caption {}".format(event_id),
        **kwargs,
    )


SAMPLE_EVENTS: List[CaptionEvent] = [
    make_event("e1", 0.5, 2.0, "Hello there."),
    make_event("e2", 2.5, 4.0, "How are you doing today?"),
    make_event("e3", 4.5, 7.25, "I am fantastic,\nthank you."),
]


@pytest.fixture
def sample_events() -> List[CaptionEvent]:
    """Three non-overlapping captions, already in time order."""
    return list(SAMPLE_EVENTS)


class FakePlayer:
    """Media player double recording seek/pause calls."""

    def __init__(self) -> None:
        self.seeks: List[float] = []
        self.pauses = 0

    def seek(self, time_s: float) -> None:
        self.seeks.append(time_s)

    def pause(self) -> None:
        self.pauses += 1


@pytest.fixture
def player() -> FakePlayer:
    return FakePlayer()


class FakeGeminiClient:
    """Stand-in for GeminiClient with canned results.

    Set ``error`` to make both calls raise it.
    """

    def __init__(
        self,
        items: Optional[List[Dict]] = None,
        detected_language: Optional[str] = "en",
        translations: Optional[Dict[str, str]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.items = items if items is not None else [
            {"startTime": "00:00:01,000", "endTime": "00:00:02,500", "text": "First line", "speaker": "Anna"},
            {"startTime": "00:00:03,000", "endTime": "00:00:04,250", "text": "Second line"},
        ]
        self.detected_language = detected_language
        self.translations = translations or {}
        self.error = error
        self.transcribe_calls: list = []
        self.translate_calls: list = []

    async def transcribe(self, audio, settings=None, on_status=None) -> TranscriptionResult:
        self.transcribe_calls.append((audio, settings))
        if self.error is not None:
            raise self.error
        return TranscriptionResult(
            items=[TranscriptionItem.from_dict(item) for item in self.items],
            detected_language=self.detected_language,
        )

    async def translate(self, items, target_language, on_status=None) -> List[TranslationItem]:
        self.translate_calls.append((list(items), target_language))
        if self.error is not None:
            raise self.error
        return [
            TranslationItem(id=item["id"], translated_text=self.translations[item["id"]])
            for item in items
            if item["id"] in self.translations
        ]


def synthetic_decoder(sample_rate: int = 48_000, channels: int = 2, seconds: float = 0.5):
    """Return a decoder producing a sine tone on channel 0 and silence elsewhere."""

    def decode(_source) -> DecodedAudio:
        frames = int(sample_rate * seconds)
        t = np.arange(frames, dtype=np.float32) / sample_rate
        samples = np.zeros((frames, channels), dtype=np.float32)
        samples[:, 0] = 0.5 * np.sin(2 * np.pi * 440.0 * t)
        return DecodedAudio(samples=samples, sample_rate=sample_rate)

    return decode


@pytest.fixture
def preprocessor() -> AudioPreprocessor:
    """AudioPreprocessor that never shells out to ffmpeg."""
    return AudioPreprocessor(decoder=synthetic_decoder())
