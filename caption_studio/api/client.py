"""Async HTTP client for the Gemini generateContent REST API.

WHY: Caption generation and translation are both single calls to a
generative model. This module hides the HTTP details (auth header,
request body layout, reply unwrapping, schema checking) behind two
methods so callers (CLI, server, project) only deal with typed results.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. GeminiClient is an
async context manager: enter it to get an authenticated client, exit to
close the connection pool. Each call is:
  build body → POST models/{model}:generateContent → extract reply text
  → strip Markdown fences → json.loads → jsonschema.validate → dataclasses

RULES:
- Always use the async context manager (async with GeminiClient(...) as client:)
- Default model is gemini-2.5-flash
- Raw non-2xx replies raise GeminiAPIError internally; the public
  methods wrap every failure into GenerationFailure / TranslationFailure
  with a user-facing message
- Status callback (on_status) is optional; when provided, called with status strings
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from typing import Any

import httpx
import jsonschema

from caption_studio.api.models import (
    GEMINI_TRANSCRIPTION_RESPONSE_SCHEMA,
    GEMINI_TRANSLATION_RESPONSE_SCHEMA,
    TRANSCRIPTION_SCHEMA,
    TRANSLATION_SCHEMA,
    TranscriptionResult,
    TranslationItem,
)
from caption_studio.audio.preprocess import EncodedAudio
from caption_studio.config import GEMINI_BASE_URL, GEMINI_MODEL, language_name, load_api_key
from caption_studio.core.model import ProjectSettings

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


class GeminiAPIError(Exception):
    """Raised when the Gemini API returns an error response.

    WHY: Callers need a typed exception to distinguish service errors
    from network errors or malformed replies.

    RULES:
    - Always include status_code and message
    - message is the response body text or a summary
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Gemini API error {status_code}: {message}")


class GenerationFailure(Exception):
    """Caption generation failed; the message is safe to show the user.

    The underlying cause (HTTP error, bad JSON, schema mismatch) is kept
    as __cause__ and in detail.
    """

    def __init__(self, message: str, detail: str = "") -> None:
        self.message = message
        self.detail = detail
        super().__init__(message)


class TranslationFailure(Exception):
    """Caption translation failed; the message is safe to show the user."""

    def __init__(self, message: str, detail: str = "") -> None:
        self.message = message
        self.detail = detail
        super().__init__(message)


GENERATION_FAILED_MESSAGE = "Failed to generate subtitles. Please check if the file is valid."
TRANSLATION_FAILED_MESSAGE = "Translation failed. Please try again."


def build_transcription_prompt(settings: ProjectSettings) -> str:
    """Return the instruction text sent alongside the audio."""
    return (
        "Analyze the audio and generate professional subtitles (SRT style).\n"
        "\n"
        "STRICT GUIDELINES:\n"
        "1. LANGUAGE: Detect the spoken language automatically. Transcribe EXACTLY "
        "what is said in that language, and report it as detectedLanguage.\n"
        "2. LENGTH:\n"
        "   - Maximum 2 lines per subtitle event.\n"
        f"   - Maximum {settings.max_chars_per_line} characters per line.\n"
        "   - ABSOLUTELY NO PARAGRAPHS.\n"
        "3. SPLITTING:\n"
        "   - If a sentence is long, SPLIT it into multiple sequential subtitle events.\n"
        "   - Better to have 3 short subtitles than 1 long one.\n"
        "4. TIMING:\n"
        "   - Use standard SRT format timestamps (00:00:00,000).\n"
        f"   - Duration should be between {settings.min_duration:g} and "
        f"{settings.max_duration:g} seconds per event.\n"
        "\n"
        'Return JSON: {"detectedLanguage": "...", "subtitles": [{"startTime": '
        '"00:00:00,000", "endTime": "00:00:00,000", "speaker": "Speaker Name", '
        '"text": "Line 1 text\\nLine 2 text"}]}'
    )


def build_translation_prompt(items: list[dict[str, str]], target_language: str) -> str:
    """Return the translation instruction with the {id, text} items inlined."""
    return (
        f"Translate the following subtitle text to {language_name(target_language)}.\n"
        "Rules:\n"
        "1. Keep the same meaning and tone.\n"
        "2. Keep the translation concise (max 2 lines, max 42 chars/line if possible).\n"
        "3. Return a JSON array of objects with 'id' and 'translatedText'.\n"
        "\n"
        "Input:\n"
        f"{json.dumps(items, ensure_ascii=False)}"
    )


def clean_json_text(text: str) -> str:
    """Strip Markdown code fences the model sometimes wraps around JSON."""
    return _FENCE_RE.sub("", text).strip()


def extract_reply_text(payload: dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate.

    Raises:
        ValueError: The reply has no candidate text (e.g. blocked prompt).
    """
    candidates = payload.get("candidates") or []
    if not candidates:
        feedback = payload.get("promptFeedback") or {}
        raise ValueError(
            "Reply has no candidates (blockReason={})".format(feedback.get("blockReason"))
        )
    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts)
    if not text.strip():
        raise ValueError(
            "Reply candidate has no text (finishReason={})".format(
                candidates[0].get("finishReason")
            )
        )
    return text


class GeminiClient:
    """Async client for the two Gemini calls the captioner needs.

    WHY: Provides a typed interface for transcription (audio in, timed
    captions out) and translation ({id, text} in, {id, translatedText}
    out). Handles auth, reply unwrapping, validation and error wrapping.

    HOW: Wraps httpx.AsyncClient with the x-goog-api-key header. Use as
    an async context manager so the connection pool is closed.

    RULES:
    - Use as: async with GeminiClient() as client: ...
    - api_key defaults to load_api_key() from .env
    - base_url / model default to GEMINI_BASE_URL / GEMINI_MODEL
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or GEMINI_BASE_URL).rstrip("/")
        self._model = model or GEMINI_MODEL
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def model(self) -> str:
        return self._model

    async def __aenter__(self) -> GeminiClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"x-goog-api-key": self._api_key},
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "GeminiClient must be used as an async context manager: "
                "async with GeminiClient() as client: ..."
            )
        return self._client

    async def _generate(self, body: dict[str, Any], schema: dict[str, Any]) -> Any:
        """POST one generateContent request and return the validated JSON reply."""
        client = self._ensure_client()
        resp = await client.post(f"/models/{self._model}:generateContent", json=body)
        if resp.status_code != 200:
            raise GeminiAPIError(resp.status_code, resp.text)

        text = extract_reply_text(resp.json())
        data = json.loads(clean_json_text(text))
        jsonschema.validate(instance=data, schema=schema)
        return data

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------

    async def transcribe(
        self,
        audio: EncodedAudio,
        settings: ProjectSettings | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> TranscriptionResult:
        """Send encoded audio and return the timed captions.

        Args:
            audio: Output of AudioPreprocessor.
            settings: Line length and duration limits for the prompt.
            on_status: Optional callback for status updates.

        Returns:
            TranscriptionResult with items in the service's order.

        Raises:
            GenerationFailure: On any HTTP, JSON or schema problem.
        """
        settings = settings or ProjectSettings()
        if on_status:
            on_status("Gemini is analyzing speech patterns...")

        body = {
            "contents": [{
                "parts": [
                    {"inline_data": {"mime_type": audio.media_type, "data": audio.to_base64()}},
                    {"text": build_transcription_prompt(settings)},
                ],
            }],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": GEMINI_TRANSCRIPTION_RESPONSE_SCHEMA,
            },
        }

        try:
            data = await self._generate(body, TRANSCRIPTION_SCHEMA)
        except (GeminiAPIError, httpx.HTTPError, ValueError, jsonschema.ValidationError) as exc:
            logger.error("Gemini transcription error: %s", exc)
            raise GenerationFailure(GENERATION_FAILED_MESSAGE, detail=str(exc)) from exc

        result = TranscriptionResult.from_payload(data)
        if on_status:
            on_status("Received {} captions.".format(len(result.items)))
        return result

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    async def translate(
        self,
        items: list[dict[str, str]],
        target_language: str,
        on_status: Callable[[str], None] | None = None,
    ) -> list[TranslationItem]:
        """Translate {id, text} items and return {id, translatedText} items.

        Only id and text are sent, to keep the request small. An empty
        input returns an empty list without a request.

        Raises:
            TranslationFailure: On any HTTP, JSON or schema problem.
        """
        if not items:
            return []
        if on_status:
            on_status("Translating {} captions to {}...".format(
                len(items), language_name(target_language)
            ))

        body = {
            "contents": [{"parts": [{"text": build_translation_prompt(items, target_language)}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": GEMINI_TRANSLATION_RESPONSE_SCHEMA,
            },
        }

        try:
            data = await self._generate(body, TRANSLATION_SCHEMA)
        except (GeminiAPIError, httpx.HTTPError, ValueError, jsonschema.ValidationError) as exc:
            logger.error("Gemini translation error: %s", exc)
            raise TranslationFailure(TRANSLATION_FAILED_MESSAGE, detail=str(exc)) from exc

        return [TranslationItem.from_dict(item) for item in data]
