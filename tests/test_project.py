"""Tests for CaptionProject: draft/commit editing, AI jobs, autosave.

WHY: CaptionProject is where edits, the history, AI results and the
store meet. Most user-visible bugs (an undo that resurrects a deleted
line, a translation landing in a closed project) would show up here.

HOW: FakeGeminiClient stands in for the service and the synthetic
preprocessor for ffmpeg. Async methods run under asyncio.run(). The
store writes into pytest's tmp_path.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from caption_studio.api.client import GenerationFailure, TranslationFailure
from caption_studio.audio.preprocess import AudioPreprocessor, MediaDecodeError
from caption_studio.core.document import SetText, SetTiming
from caption_studio.core.model import ProjectRecord, Session
from caption_studio.core.project import CaptionProject
from caption_studio.storage import LocalProjectStore
from tests.conftest import FakeGeminiClient, make_event

SESSION = Session(user_id="alice")


class TestDraftAndCommit:

    def test_initial_events_are_first_history_entry(self, sample_events):
        project = CaptionProject(sample_events)
        assert len(project.history) == 1
        assert not project.is_dirty
        assert not project.can_undo()

    def test_update_changes_draft_only(self, sample_events):
        project = CaptionProject(sample_events)
        project.update("e1", SetText("Edited"))
        assert project.draft.get("e1").text == "Edited"
        assert len(project.history) == 1
        assert project.is_dirty

    def test_commit_records_draft(self, sample_events):
        project = CaptionProject(sample_events)
        project.update("e1", SetText("Edited"))
        assert project.commit() is True
        assert len(project.history) == 2
        assert not project.is_dirty

    def test_commit_without_change(self, sample_events):
        project = CaptionProject(sample_events)
        assert project.commit() is False

    def test_undo_discards_uncommitted_edit(self, sample_events):
        project = CaptionProject(sample_events)
        project.update("e1", SetText("Committed"))
        project.commit()
        project.update("e2", SetText("Draft only"))
        assert project.undo() is True
        assert project.draft.get("e1").text == "Hello there."
        assert project.draft.get("e2").text == "How are you doing today?"
        assert project.redo() is True
        assert project.draft.get("e1").text == "Committed"
        assert project.draft.get("e2").text == "How are you doing today?"

    def test_undo_at_start(self, sample_events):
        project = CaptionProject(sample_events)
        assert project.undo() is False
        assert project.redo() is False

    def test_delete_commits(self, sample_events):
        project = CaptionProject(sample_events)
        assert project.delete("e2") is True
        assert len(project.history) == 2
        project.undo()
        assert [e.id for e in project.events] == ["e1", "e2", "e3"]

    def test_delete_unknown_does_not_commit(self, sample_events):
        project = CaptionProject(sample_events)
        assert project.delete("nope") is False
        assert len(project.history) == 1

    def test_offset_commits(self, sample_events):
        project = CaptionProject(sample_events)
        project.apply_global_offset(1.0)
        assert project.draft.get("e1").start_time == pytest.approx(1.5)
        assert len(project.history) == 2

    def test_draft_object_is_stable(self, sample_events):
        project = CaptionProject(sample_events)
        draft = project.draft
        project.delete("e1")
        project.undo()
        project.load_record(ProjectRecord(user_id="x"))
        project.close()
        assert project.draft is draft

    def test_validate_and_export(self, sample_events):
        project = CaptionProject(sample_events)
        project.update("e1", SetTiming(0.5, 0.75))
        assert [i.kind for i in project.validate()] == ["too_short"]
        output = project.export("srt")
        assert output.content.startswith("1\n00:00:00,500 --> 00:00:00,750\n")

    def test_export_unknown_format(self, sample_events):
        with pytest.raises(ValueError, match="Available"):
            CaptionProject(sample_events).export("docx")


class TestLifecycle:

    def test_load_record_resets_history(self, sample_events):
        project = CaptionProject(sample_events)
        project.delete("e1")
        project.load_record(ProjectRecord(
            user_id="alice", events=[make_event("r1", 0, 1)], media_name="talk.mp4",
        ))
        assert [e.id for e in project.events] == ["r1"]
        assert project.media_name == "talk.mp4"
        assert not project.can_undo()

    def test_close_empties_project(self, sample_events):
        project = CaptionProject(sample_events, media_name="clip.mov")
        epoch = project.epoch
        project.close()
        assert len(project.draft) == 0
        assert project.media_name == "Untitled Project"
        assert project.epoch == epoch + 1

    def test_to_record_requires_session(self, sample_events):
        with pytest.raises(ValueError):
            CaptionProject(sample_events).to_record()


# ---------------------------------------------------------------------------
# AI operations
# ---------------------------------------------------------------------------


class TestGenerate:

    def test_replaces_events_and_commits(self, sample_events, preprocessor):
        project = CaptionProject(sample_events)
        client = FakeGeminiClient()
        statuses = []

        events = asyncio.run(project.generate(
            b"media", client, preprocessor=preprocessor, on_status=statuses.append,
        ))

        assert [e.text for e in events] == ["First line", "Second line"]
        assert events[0].start_time == 1.0
        assert events[0].speaker == "Anna"
        assert events[1].speaker is None
        assert project.detected_language == "en"
        assert len(project.history) == 2
        assert statuses[0] == "Extracting & compressing audio..."
        audio, _settings = client.transcribe_calls[0]
        assert audio.sample_rate == 16000

    def test_undo_after_generate_restores_previous(self, sample_events, preprocessor):
        project = CaptionProject(sample_events)
        asyncio.run(project.generate(b"media", FakeGeminiClient(), preprocessor=preprocessor))
        project.undo()
        assert [e.id for e in project.events] == ["e1", "e2", "e3"]

    def test_failure_leaves_project_untouched(self, sample_events, preprocessor):
        project = CaptionProject(sample_events)
        client = FakeGeminiClient(error=GenerationFailure("Failed"))
        with pytest.raises(GenerationFailure):
            asyncio.run(project.generate(b"media", client, preprocessor=preprocessor))
        assert [e.id for e in project.events] == ["e1", "e2", "e3"]
        assert len(project.history) == 1

    def test_decode_failure_skips_service(self, sample_events):
        def broken(_source):
            raise MediaDecodeError("bad file")

        project = CaptionProject(sample_events)
        client = FakeGeminiClient()
        with pytest.raises(MediaDecodeError):
            asyncio.run(project.generate(
                b"media", client, preprocessor=AudioPreprocessor(decoder=broken),
            ))
        assert client.transcribe_calls == []

    def test_result_dropped_after_close(self, sample_events, preprocessor):
        project = CaptionProject(sample_events)
        client = FakeGeminiClient()
        original = client.transcribe

        async def closing_transcribe(audio, settings=None, on_status=None):
            project.close()
            return await original(audio, settings, on_status)

        client.transcribe = closing_transcribe
        result = asyncio.run(project.generate(b"media", client, preprocessor=preprocessor))
        assert result is None
        assert len(project.draft) == 0


class TestTranslate:

    def test_applies_translations(self, sample_events):
        project = CaptionProject(sample_events)
        client = FakeGeminiClient(translations={"e1": "Hola.", "e2": "¿Cómo estás hoy?"})

        asyncio.run(project.translate(client, "es"))

        assert project.draft.get("e1").text == "Hola."
        assert project.draft.get("e1").original_text == "Hello there."
        assert project.draft.get("e3").original_text is None
        items, language = client.translate_calls[0]
        assert language == "es"
        assert items[0] == {"id": "e1", "text": "Hello there."}
        assert len(project.history) == 2

    def test_default_language_from_settings(self, sample_events):
        project = CaptionProject(sample_events)
        client = FakeGeminiClient()
        asyncio.run(project.translate(client))
        assert client.translate_calls[0][1] == project.settings.target_language

    def test_failure_leaves_text_unchanged(self, sample_events):
        project = CaptionProject(sample_events)
        client = FakeGeminiClient(error=TranslationFailure("Translation failed. Please try again."))
        with pytest.raises(TranslationFailure):
            asyncio.run(project.translate(client, "fr"))
        assert project.draft.get("e1").text == "Hello there."
        assert len(project.history) == 1

    def test_applies_on_request_time_state(self, sample_events):
        project = CaptionProject(sample_events)
        client = FakeGeminiClient(translations={"e1": "Hola."})
        original = client.translate

        async def editing_translate(items, target_language, on_status=None):
            project.update("e2", SetText("Typed meanwhile"))
            return await original(items, target_language, on_status)

        client.translate = editing_translate
        asyncio.run(project.translate(client, "es"))
        assert project.draft.get("e1").text == "Hola."
        assert project.draft.get("e2").text == "How are you doing today?"

    def test_result_dropped_after_load(self, sample_events):
        project = CaptionProject(sample_events)
        client = FakeGeminiClient(translations={"e1": "Hola."})
        original = client.translate

        async def reloading_translate(items, target_language, on_status=None):
            project.load_record(ProjectRecord(user_id="x", events=[make_event("n", 0, 1)]))
            return await original(items, target_language, on_status)

        client.translate = reloading_translate
        assert asyncio.run(project.translate(client, "es")) is None
        assert [e.id for e in project.events] == ["n"]


# ---------------------------------------------------------------------------
# Autosave
# ---------------------------------------------------------------------------


class TestAutosave:

    def test_commit_saves_synchronously_without_loop(self, tmp_path, sample_events):
        store = LocalProjectStore(tmp_path)
        project = CaptionProject(sample_events, session=SESSION, store=store, media_name="a.mp4")
        project.delete("e1")

        data = json.loads(store.path_for(SESSION).read_text(encoding="utf-8"))
        assert [e["id"] for e in data["events"]] == ["e2", "e3"]
        assert data["mediaName"] == "a.mp4"
        assert data["userId"] == "alice"

    def test_no_store_no_save(self, sample_events):
        project = CaptionProject(sample_events, session=SESSION)
        project.delete("e1")  # must not raise

    def test_save_failure_is_logged_not_raised(self, sample_events, caplog):
        store = MagicMock()
        store.save.side_effect = OSError("disk full")
        project = CaptionProject(sample_events, session=SESSION, store=store)
        project.delete("e1")
        assert "Autosave failed" in caplog.text

    def test_saves_inside_event_loop(self, tmp_path, sample_events):
        store = LocalProjectStore(tmp_path)
        project = CaptionProject(sample_events, session=SESSION, store=store)

        async def edit_burst():
            project.delete("e1")
            project.delete("e2")
            await project.flush()

        asyncio.run(edit_burst())
        record = store.load(SESSION)
        assert [e.id for e in record.events] == ["e3"]

    def test_open_restores_saved_project(self, tmp_path, sample_events):
        store = LocalProjectStore(tmp_path)
        store.save(SESSION, ProjectRecord(user_id="alice", events=sample_events, media_name="m.mp4"))

        project = CaptionProject.open(SESSION, store)
        assert [e.id for e in project.events] == ["e1", "e2", "e3"]
        assert project.media_name == "m.mp4"

    def test_open_without_saved_project(self, tmp_path):
        project = CaptionProject.open(SESSION, LocalProjectStore(tmp_path))
        assert len(project.draft) == 0
