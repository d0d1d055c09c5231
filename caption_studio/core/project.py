"""Caption project: draft document, commit history, async jobs, autosave.

WHY: The engine pieces (document, history, AI client, store) each do one
thing. Something has to decide when an edit becomes a history entry,
what happens when an AI result lands after the user moved on, and when
the project is written to disk. CaptionProject is that one place, so the
CLI and the HTTP server share the exact same editing rules.

HOW: Two-phase editing. update() changes the draft freely (the user is
typing); commit() snapshots the draft into the history and schedules an
autosave. Structural edits (delete, global offset, bulk replace) commit
immediately. Async operations capture an epoch before awaiting and
drop their result if close() or load_record() bumped it meanwhile.

RULES:
- The draft object is never rebound; loads and undo/redo restore into it
- undo()/redo() discard uncommitted draft edits
- A failed generate/translate leaves draft and history untouched
- A late AI result replaces interim edits (last-write-wins, logged)
- Autosave never raises into an edit; failures are logged
- Inside a running event loop at most one save is in flight; newer
  records replace queued ones
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from caption_studio.api.models import to_caption_events
from caption_studio.audio.preprocess import AudioPreprocessor, MediaSource
from caption_studio.config import HISTORY_CAPACITY
from caption_studio.core.document import CaptionDocument, EditCommand, Snapshot
from caption_studio.core.history import HistoryManager
from caption_studio.core.model import (
    UNTITLED_PROJECT,
    CaptionEvent,
    ProjectRecord,
    ProjectSettings,
    Session,
)
from caption_studio.core.validation import CaptionIssue, validate_events
from caption_studio.formatters import FORMATTERS
from caption_studio.formatters.base import FormatterOutput

if TYPE_CHECKING:
    from caption_studio.api.client import GeminiClient
    from caption_studio.storage import LocalProjectStore

logger = logging.getLogger(__name__)


class CaptionProject:
    """One open caption project.

    Args:
        events: Initial events (e.g. from an import); committed as the
            first history entry.
        settings: Caption constraints for generation and validation.
        media_name: Display name of the source media.
        session: Whose project this is; required for autosave.
        store: Where to autosave; None disables autosave.
        history_capacity: Maximum number of history entries.
    """

    def __init__(
        self,
        events: Iterable[CaptionEvent] = (),
        settings: ProjectSettings | None = None,
        media_name: str | None = None,
        session: Session | None = None,
        store: LocalProjectStore | None = None,
        history_capacity: int = HISTORY_CAPACITY,
    ) -> None:
        self.settings = settings or ProjectSettings()
        self.media_name = media_name or UNTITLED_PROJECT
        self.session = session
        self.store = store
        self.detected_language: str | None = None
        self.draft = CaptionDocument(events)
        self.history = HistoryManager(history_capacity)
        self.history.reset(self.draft.snapshot())
        self._epoch = 0
        self._pending_record: ProjectRecord | None = None
        self._save_task: asyncio.Task | None = None

    @classmethod
    def open(
        cls,
        session: Session,
        store: LocalProjectStore,
        settings: ProjectSettings | None = None,
        history_capacity: int = HISTORY_CAPACITY,
    ) -> CaptionProject:
        """Open the user's saved project, or an empty one if none exists."""
        project = cls(
            settings=settings, session=session, store=store,
            history_capacity=history_capacity,
        )
        record = store.load(session)
        if record is not None:
            project.load_record(record)
        return project

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def events(self) -> Snapshot:
        return self.draft.events

    @property
    def is_dirty(self) -> bool:
        """True if the draft has edits not yet committed to the history."""
        return self.draft.snapshot() != self.history.current()

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def update(self, event_id: str, command: EditCommand) -> bool:
        """Apply an edit to the draft only. Call commit() to checkpoint it."""
        return self.draft.update(event_id, command)

    def commit(self) -> bool:
        """Snapshot the draft into the history; False if nothing changed."""
        committed = self.history.commit(self.draft.snapshot())
        if committed:
            self._schedule_autosave()
        return committed

    def delete(self, event_id: str) -> bool:
        """Remove an event and commit at once."""
        removed = self.draft.delete(event_id)
        if removed:
            self.commit()
        return removed

    def apply_global_offset(self, delta_seconds: float) -> bool:
        """Shift every event and commit at once."""
        self.draft.apply_global_offset(delta_seconds)
        return self.commit()

    def replace_events(self, events: Iterable[CaptionEvent]) -> bool:
        """Replace the whole event list and commit at once."""
        self.draft.insert_or_replace_all(events)
        return self.commit()

    def undo(self) -> bool:
        snapshot = self.history.undo()
        if snapshot is None:
            return False
        self.draft.restore(snapshot)
        self._schedule_autosave()
        return True

    def redo(self) -> bool:
        snapshot = self.history.redo()
        if snapshot is None:
            return False
        self.draft.restore(snapshot)
        self._schedule_autosave()
        return True

    def validate(self) -> list[CaptionIssue]:
        return validate_events(self.draft.events, self.settings)

    def export(self, format_name: str = "srt") -> FormatterOutput:
        """Render the draft in one of the registered formats.

        Raises:
            ValueError: Unknown format name.
        """
        formatter_cls = FORMATTERS.get(format_name)
        if formatter_cls is None:
            raise ValueError(
                "Unknown export format '{}'. Available: {}".format(
                    format_name, ", ".join(sorted(FORMATTERS))
                )
            )
        return formatter_cls().format(self.draft.events)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load_record(self, record: ProjectRecord) -> None:
        """Replace the project with a persisted record and start a fresh history."""
        self._epoch += 1
        self.draft.insert_or_replace_all(record.events)
        self.history.reset(self.draft.snapshot())
        self.media_name = record.media_name
        self.detected_language = None

    def close(self) -> None:
        """Empty the project. Results of in-flight operations are dropped."""
        self._epoch += 1
        self.draft.insert_or_replace_all(())
        self.history.reset(self.draft.snapshot())
        self.media_name = UNTITLED_PROJECT
        self.detected_language = None

    def to_record(self) -> ProjectRecord:
        if self.session is None:
            raise ValueError("Project has no session; cannot build a record")
        return ProjectRecord.capture(self.session, list(self.draft.events), self.media_name)

    # ------------------------------------------------------------------
    # Async operations
    # ------------------------------------------------------------------

    def _superseded(self, epoch: int, operation: str) -> bool:
        if self._epoch != epoch:
            logger.info("Dropping %s result: project was closed or reloaded", operation)
            return True
        return False

    async def generate(
        self,
        media: MediaSource,
        client: GeminiClient,
        preprocessor: AudioPreprocessor | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> Snapshot | None:
        """Transcribe media and replace the document with the result.

        Returns:
            The new events, or None if the project was closed or
            reloaded while the request was running.

        Raises:
            MediaDecodeError: The media could not be decoded.
            GenerationFailure: The AI service call failed.
        """
        epoch = self._epoch
        baseline = self.draft.snapshot()
        preprocessor = preprocessor or AudioPreprocessor()

        if on_status:
            on_status("Extracting & compressing audio...")
        audio = await preprocessor.process_async(media)
        result = await client.transcribe(audio, self.settings, on_status=on_status)

        if self._superseded(epoch, "generation"):
            return None
        if self.draft.snapshot() != baseline:
            logger.warning("Generation result replaces edits made while it was running")

        self.detected_language = result.detected_language
        self.replace_events(to_caption_events(result.items))
        return self.draft.events

    async def translate(
        self,
        client: GeminiClient,
        target_language: str | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> Snapshot | None:
        """Translate every event's text and commit the result.

        The request is built from the document as it is now; when the
        reply lands it is applied on top of that same state.

        Returns:
            The translated events, or None if superseded.

        Raises:
            TranslationFailure: The AI service call failed.
        """
        epoch = self._epoch
        baseline = self.draft.snapshot()
        language = target_language or self.settings.target_language

        items = [{"id": e.id, "text": e.text} for e in baseline]
        translations = await client.translate(items, language, on_status=on_status)

        if self._superseded(epoch, "translation"):
            return None
        if self.draft.snapshot() != baseline:
            logger.warning("Translation result replaces edits made while it was running")

        self.draft.restore(baseline)
        applied = self.draft.apply_translations(
            {t.id: t.translated_text for t in translations}
        )
        if applied < len(baseline):
            logger.info("Translated %d of %d captions", applied, len(baseline))
        self.commit()
        return self.draft.events

    # ------------------------------------------------------------------
    # Autosave
    # ------------------------------------------------------------------

    def _schedule_autosave(self) -> None:
        if self.store is None or self.session is None:
            return
        record = self.to_record()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._save(record)
            return

        self._pending_record = record
        if self._save_task is None or self._save_task.done():
            self._save_task = loop.create_task(self._drain_saves())

    async def _drain_saves(self) -> None:
        while self._pending_record is not None:
            record, self._pending_record = self._pending_record, None
            try:
                await asyncio.to_thread(self.store.save, self.session, record)
            except Exception:
                logger.exception("Autosave failed for %s", self.session.user_id)

    def _save(self, record: ProjectRecord) -> None:
        try:
            self.store.save(self.session, record)
        except Exception:
            logger.exception("Autosave failed for %s", self.session.user_id)

    async def flush(self) -> None:
        """Wait until queued autosaves have been written."""
        task = self._save_task
        if task is not None and not task.done():
            await task
