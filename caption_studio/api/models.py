"""Gemini request/response shapes for transcription and translation.

WHY: The AI service answers in free-form JSON that we ask it to shape
with a response schema. The service does not always honor that schema,
so every reply is validated again on our side and parsed into typed
dataclasses before it can touch a caption document.

HOW: Two JSON schemas (jsonschema draft 7), one per call, plus a
dataclass per item with a from_dict() factory. to_caption_events()
maps transcription items onto CaptionEvents through the timecode codec.

RULES:
- Transcription items: startTime, endTime, text required; speaker and
  confidence optional
- The transcription reply may be a bare array or
  {"detectedLanguage": ..., "subtitles": [...]}
- Translation items: id and translatedText required
- Timecodes that fail to parse become 0.0, they never raise
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from caption_studio.core.model import CaptionEvent, mint_event_id
from caption_studio.core.timecode import parse_timecode

# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

TRANSCRIPTION_ITEM_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "startTime": {"type": "string"},
        "endTime": {"type": "string"},
        "speaker": {"type": ["string", "null"]},
        "text": {"type": "string"},
        "confidence": {"type": ["number", "null"], "minimum": 0, "maximum": 1},
    },
    "required": ["startTime", "endTime", "text"],
}

TRANSCRIPTION_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "oneOf": [
        {"type": "array", "items": TRANSCRIPTION_ITEM_SCHEMA},
        {
            "type": "object",
            "properties": {
                "detectedLanguage": {"type": ["string", "null"]},
                "subtitles": {"type": "array", "items": TRANSCRIPTION_ITEM_SCHEMA},
            },
            "required": ["subtitles"],
        },
    ],
}

TRANSLATION_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "translatedText": {"type": "string"},
        },
        "required": ["id", "translatedText"],
    },
}

# Gemini's responseSchema is an OpenAPI subset: no oneOf, no type unions.
GEMINI_TRANSCRIPTION_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "detectedLanguage": {"type": "STRING"},
        "subtitles": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "startTime": {"type": "STRING"},
                    "endTime": {"type": "STRING"},
                    "speaker": {"type": "STRING"},
                    "text": {"type": "STRING"},
                },
                "required": ["startTime", "endTime", "text"],
            },
        },
    },
    "required": ["subtitles"],
}

GEMINI_TRANSLATION_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "id": {"type": "STRING"},
            "translatedText": {"type": "STRING"},
        },
        "required": ["id", "translatedText"],
    },
}


# ---------------------------------------------------------------------------
# Parsed items
# ---------------------------------------------------------------------------


@dataclass
class TranscriptionItem:
    """One caption as returned by the transcription call.

    RULES:
    - start_time / end_time are the raw timecode strings
    - speaker and confidence are None when the service omits them
    """

    start_time: str
    end_time: str
    text: str
    speaker: str | None = None
    confidence: float | None = None

    @classmethod
    def from_dict(cls, data: dict) -> TranscriptionItem:
        speaker = data.get("speaker")
        return cls(
            start_time=data["startTime"],
            end_time=data["endTime"],
            text=data["text"],
            speaker=speaker or None,
            confidence=data.get("confidence"),
        )


@dataclass
class TranscriptionResult:
    """Parsed transcription reply: language label plus ordered items."""

    items: list[TranscriptionItem] = field(default_factory=list)
    detected_language: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> TranscriptionResult:
        """Build from an already-validated reply (array or object form)."""
        if isinstance(payload, list):
            raw_items, language = payload, None
        else:
            raw_items, language = payload.get("subtitles", []), payload.get("detectedLanguage")
        return cls(
            items=[TranscriptionItem.from_dict(item) for item in raw_items],
            detected_language=language or None,
        )


@dataclass
class TranslationItem:
    """One translated caption, matched back by event id."""

    id: str
    translated_text: str

    @classmethod
    def from_dict(cls, data: dict) -> TranslationItem:
        return cls(id=data["id"], translated_text=data["translatedText"])


def to_caption_events(items: list[TranscriptionItem]) -> list[CaptionEvent]:
    """Map transcription items to CaptionEvents with freshly minted ids."""
    return [
        CaptionEvent(
            id=mint_event_id(),
            start_time=parse_timecode(item.start_time),
            end_time=parse_timecode(item.end_time),
            text=item.text,
            speaker=item.speaker,
            confidence=item.confidence,
        )
        for item in items
    ]
