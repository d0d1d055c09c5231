"""Tests for the Gemini client and its reply parsing.

WHY: The service is outside our control. Replies arrive fenced in
Markdown, in two different shapes, or missing fields. Every one of those
must become either typed results or a single user-facing failure.

HOW: httpx.MockTransport answers requests in-process, so the real
request-building and reply-parsing code runs without network access.
Async methods are driven with asyncio.run().
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from caption_studio.api.client import (
    GENERATION_FAILED_MESSAGE,
    TRANSLATION_FAILED_MESSAGE,
    GeminiClient,
    GenerationFailure,
    TranslationFailure,
    build_transcription_prompt,
    build_translation_prompt,
    clean_json_text,
    extract_reply_text,
)
from caption_studio.api.models import TranscriptionItem, TranscriptionResult, to_caption_events
from caption_studio.audio.preprocess import EncodedAudio
from caption_studio.core.model import ProjectSettings

AUDIO = EncodedAudio(data=b"RIFF0000WAVE", sample_rate=16000, sample_count=0)


def _reply(text: str, status: int = 200) -> httpx.Response:
    return httpx.Response(
        status,
        json={"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]},
    )


def _run_with(handler, call):
    """Run call(client) against a GeminiClient backed by handler."""

    async def go():
        transport = httpx.MockTransport(handler)
        async with GeminiClient(api_key="test-key", transport=transport) as client:
            return await call(client)

    return asyncio.run(go())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestReplyHelpers:

    def test_clean_json_text_strips_fences(self):
        assert clean_json_text('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'

    def test_clean_json_text_plain(self):
        assert clean_json_text("  []  ") == "[]"

    def test_extract_reply_text_joins_parts(self):
        payload = {"candidates": [{"content": {"parts": [{"text": "[1,"}, {"text": "2]"}]}}]}
        assert extract_reply_text(payload) == "[1,2]"

    def test_extract_reply_text_no_candidates(self):
        with pytest.raises(ValueError, match="SAFETY"):
            extract_reply_text({"promptFeedback": {"blockReason": "SAFETY"}})

    def test_extract_reply_text_empty(self):
        with pytest.raises(ValueError):
            extract_reply_text({"candidates": [{"content": {"parts": []}}]})

    def test_transcription_prompt_uses_settings(self):
        prompt = build_transcription_prompt(ProjectSettings(max_chars_per_line=30))
        assert "Maximum 30 characters per line" in prompt
        assert "between 1 and 6 seconds" in prompt

    def test_translation_prompt_names_language(self):
        prompt = build_translation_prompt([{"id": "a", "text": "Hello"}], "es")
        assert "to Spanish" in prompt
        assert '"id": "a"' in prompt


class TestModels:

    def test_result_from_array(self):
        result = TranscriptionResult.from_payload([
            {"startTime": "00:00:01,000", "endTime": "00:00:02,000", "text": "Hi"},
        ])
        assert result.detected_language is None
        assert result.items[0].speaker is None
        assert result.items[0].confidence is None

    def test_result_from_object(self):
        result = TranscriptionResult.from_payload({
            "detectedLanguage": "German",
            "subtitles": [{"startTime": "0", "endTime": "1", "text": "Hallo", "speaker": ""}],
        })
        assert result.detected_language == "German"
        assert result.items[0].speaker is None

    def test_to_caption_events(self):
        events = to_caption_events([
            TranscriptionItem("00:00:01,500", "00:00:03,000", "One", speaker="Anna"),
            TranscriptionItem("bad", "00:00:04,000", "Two"),
        ])
        assert [(e.start_time, e.end_time) for e in events] == [(1.5, 3.0), (0.0, 4.0)]
        assert events[0].speaker == "Anna"
        assert events[0].id and events[1].id and events[0].id != events[1].id


# ---------------------------------------------------------------------------
# Transcription
# ---------------------------------------------------------------------------


class TestTranscribe:

    def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return _reply("[]")

        _run_with(handler, lambda c: c.transcribe(AUDIO))

        assert seen["url"].endswith("/models/gemini-2.5-flash:generateContent")
        assert seen["key"] == "test-key"
        parts = seen["body"]["contents"][0]["parts"]
        assert parts[0]["inline_data"] == {"mime_type": "audio/wav", "data": AUDIO.to_base64()}
        assert "STRICT GUIDELINES" in parts[1]["text"]
        assert seen["body"]["generationConfig"]["responseMimeType"] == "application/json"

    def test_fenced_object_reply(self):
        text = "```json\n" + json.dumps({
            "detectedLanguage": "English",
            "subtitles": [
                {"startTime": "00:00:01,000", "endTime": "00:00:02,000", "text": "Hi", "speaker": "A"},
            ],
        }) + "\n```"
        result = _run_with(lambda r: _reply(text), lambda c: c.transcribe(AUDIO))
        assert result.detected_language == "English"
        assert result.items[0].text == "Hi"

    def test_status_callback(self):
        messages = []
        _run_with(lambda r: _reply("[]"), lambda c: c.transcribe(AUDIO, on_status=messages.append))
        assert messages == ["Gemini is analyzing speech patterns...", "Received 0 captions."]

    @pytest.mark.parametrize("response", [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"candidates": []}),
    ])
    def test_service_errors_become_failure(self, response):
        with pytest.raises(GenerationFailure) as info:
            _run_with(lambda r: response, lambda c: c.transcribe(AUDIO))
        assert info.value.message == GENERATION_FAILED_MESSAGE

    @pytest.mark.parametrize("text", [
        "not json",
        '[{"startTime": "00:00:01,000"}]',
        '{"detectedLanguage": "en"}',
    ])
    def test_malformed_reply_becomes_failure(self, text):
        with pytest.raises(GenerationFailure):
            _run_with(lambda r: _reply(text), lambda c: c.transcribe(AUDIO))

    def test_network_error_becomes_failure(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(GenerationFailure) as info:
            _run_with(handler, lambda c: c.transcribe(AUDIO))
        assert isinstance(info.value.__cause__, httpx.ConnectError)

    def test_outside_context_manager(self):
        client = GeminiClient(api_key="k")
        with pytest.raises(RuntimeError):
            asyncio.run(client.transcribe(AUDIO))


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


class TestTranslate:

    def test_translates_items(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return _reply('[{"id": "a", "translatedText": "Hola"}]')

        items = _run_with(handler, lambda c: c.translate([{"id": "a", "text": "Hello"}], "es"))
        assert [(i.id, i.translated_text) for i in items] == [("a", "Hola")]
        prompt = seen["body"]["contents"][0]["parts"][0]["text"]
        assert "Spanish" in prompt

    def test_empty_input_makes_no_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return _reply("[]")

        assert _run_with(handler, lambda c: c.translate([], "es")) == []
        assert calls == []

    def test_schema_mismatch_becomes_failure(self):
        with pytest.raises(TranslationFailure) as info:
            _run_with(
                lambda r: _reply('[{"id": "a"}]'),
                lambda c: c.translate([{"id": "a", "text": "x"}], "fr"),
            )
        assert info.value.message == TRANSLATION_FAILED_MESSAGE

    def test_http_error_becomes_failure(self):
        with pytest.raises(TranslationFailure):
            _run_with(
                lambda r: httpx.Response(429, text="quota"),
                lambda c: c.translate([{"id": "a", "text": "x"}], "fr"),
            )
