"""Tests for the command-line interface.

HOW: Parser and path helpers are tested directly. Pipeline tests patch
GeminiClient with a fake and the audio preprocessor with a synthetic
decoder, then run main() against files in tmp_path.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from caption_studio.audio.preprocess import AudioPreprocessor
from caption_studio.cli import _parse_formats, _resolve_output_path, build_parser, main
from tests.conftest import FakeGeminiClient, synthetic_decoder


class _FakeClientContext:

    def __init__(self, fake):
        self.fake = fake

    def __call__(self, *args, **kwargs):
        return self

    async def __aenter__(self):
        return self.fake

    async def __aexit__(self, exc_type, exc, tb):
        return None


@pytest.fixture
def media(tmp_path):
    path = tmp_path / "talk.mp4"
    path.write_bytes(b"fake media")
    return path


@pytest.fixture
def fake_gemini():
    fake = FakeGeminiClient(translations={})
    with patch("caption_studio.cli.GeminiClient", new=_FakeClientContext(fake)), \
            patch(
                "caption_studio.core.project.AudioPreprocessor",
                new=lambda: AudioPreprocessor(decoder=synthetic_decoder()),
            ):
        yield fake


class TestParser:

    def test_defaults(self):
        args = build_parser().parse_args(["talk.mp4"])
        assert args.input_file == "talk.mp4"
        assert args.target_language is None
        assert args.offset == 0.0
        assert args.formats is None
        assert args.max_chars == 42
        assert args.user_id is None

    def test_all_options(self):
        args = build_parser().parse_args([
            "talk.mp4", "--target-language", "es", "--offset", "-1.5",
            "--formats", "srt", "--output-dir", "/tmp", "--max-chars", "32",
            "--user-id", "alice",
        ])
        assert args.target_language == "es"
        assert args.offset == -1.5
        assert args.max_chars == 32
        assert args.user_id == "alice"

    def test_parse_formats(self):
        assert _parse_formats(None) == ["srt", "json"]
        assert _parse_formats("json, srt") == ["json", "srt"]

    def test_parse_unknown_format_exits(self):
        with pytest.raises(SystemExit):
            _parse_formats("docx")


class TestResolveOutputPath:

    def test_free_name(self, tmp_path):
        assert _resolve_output_path("talk", ".srt", tmp_path) == tmp_path / "talk.srt"

    def test_conflict_counter(self, tmp_path):
        (tmp_path / "talk.srt").write_text("x")
        (tmp_path / "talk-2.srt").write_text("x")
        assert _resolve_output_path("talk", ".srt", tmp_path) == tmp_path / "talk-3.srt"


class TestPipeline:

    def test_missing_file_exits(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as info:
            main([str(tmp_path / "nope.mp4")])
        assert info.value.code == 1
        assert "File not found" in capsys.readouterr().err

    def test_unsupported_extension_exits(self, tmp_path, capsys):
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        with pytest.raises(SystemExit):
            main([str(path)])
        assert "Unsupported file type '.txt'" in capsys.readouterr().err

    def test_writes_all_formats(self, media, fake_gemini, capsys):
        main([str(media)])

        srt = (media.parent / "talk.srt").read_text(encoding="utf-8")
        assert srt.startswith("1\n00:00:01,000 --> 00:00:02,500\nFirst line\n")
        data = json.loads((media.parent / "talk.json").read_text(encoding="utf-8"))
        assert [e["text"] for e in data] == ["First line", "Second line"]
        assert "Done! Saved 2 file(s)" in capsys.readouterr().err

    def test_offset_and_translation(self, media, fake_gemini):
        fake_gemini.translate = _translate_everything
        main([str(media), "--offset", "0.5", "--target-language", "fr", "--formats", "json"])

        data = json.loads((media.parent / "talk.json").read_text(encoding="utf-8"))
        assert data[0]["startTime"] == 1.5
        assert data[0]["text"] == "[fr] First line"
        assert data[0]["originalText"] == "First line"

    def test_generation_failure_exits(self, media, fake_gemini, capsys):
        from caption_studio.api.client import GenerationFailure

        fake_gemini.error = GenerationFailure("Failed to generate subtitles.")
        with pytest.raises(SystemExit) as info:
            main([str(media)])
        assert info.value.code == 1
        assert "Failed to generate subtitles." in capsys.readouterr().err
        assert not (media.parent / "talk.srt").exists()

    def test_user_id_saves_project(self, media, fake_gemini, tmp_path):
        store_dir = tmp_path / "store"
        with patch("caption_studio.storage.PROJECT_STORE_DIR", store_dir):
            main([str(media), "--formats", "srt", "--user-id", "alice"])
        saved = json.loads((store_dir / "alice.json").read_text(encoding="utf-8"))
        assert saved["mediaName"] == "talk.mp4"
        assert len(saved["events"]) == 2


async def _translate_everything(items, target_language, on_status=None):
    from caption_studio.api.models import TranslationItem

    return [
        TranslationItem(id=item["id"], translated_text="[{}] {}".format(target_language, item["text"]))
        for item in items
    ]
