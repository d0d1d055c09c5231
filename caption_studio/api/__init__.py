"""Gemini API client package — async HTTP interface to the AI caption service.

WHY: Generation and translation both go to a generative model over
HTTP. This package keeps that communication behind one async client
class, so the engine only sees typed results and two failure types.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. Replies are validated
with jsonschema and parsed into the dataclasses defined in models.py.

RULES:
- All HTTP calls go through GeminiClient (no direct httpx usage elsewhere)
- Authentication is via the x-goog-api-key header from config
"""

from caption_studio.api.client import (
    GeminiAPIError,
    GeminiClient,
    GenerationFailure,
    TranslationFailure,
)
from caption_studio.api.models import (
    TranscriptionItem,
    TranscriptionResult,
    TranslationItem,
    to_caption_events,
)

__all__ = [
    "GeminiAPIError",
    "GeminiClient",
    "GenerationFailure",
    "TranscriptionItem",
    "TranscriptionResult",
    "TranslationFailure",
    "TranslationItem",
    "to_caption_events",
]
