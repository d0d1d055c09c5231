"""Dataclasses for caption events, project settings, and persisted records.

WHY: The AI client, the document, the history, the exporters and the
store all need the same notion of "one timed caption".
A single, well-typed record decouples them: the client produces events,
the document edits them, the formatters render them.

HOW: Four dataclasses:
  CaptionEvent    — one timed text entry (frozen, replaced on edit)
  ProjectSettings — per-project caption constraints
  Session         — explicit "who is saving" value for persistence
  ProjectRecord   — the persisted project shape for the local store

RULES:
- All times are float seconds
- CaptionEvent is frozen: edits produce a new instance via replace()
- Event ids are opaque strings, stable across edits and undo/redo
- original_text is the pre-translation text; set once, never overwritten
- Persisted/wire keys are camelCase (startTime, originalText, ...)
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from caption_studio.config import (
    DEFAULT_MAX_CHARS_PER_LINE,
    DEFAULT_MAX_DURATION_S,
    DEFAULT_MIN_DURATION_S,
    DEFAULT_TARGET_LANGUAGE,
)

UNTITLED_PROJECT = "Untitled Project"


def mint_event_id() -> str:
    """Return a fresh, globally unique caption event id."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class CaptionEvent:
    """A single timed caption.

    WHY: Captions are time-addressed, so the record carries its own range
    instead of relying on list position. Freezing it means a snapshot
    taken for the history can never be changed behind its back.

    RULES:
    - id: unique within a document; "" means "mint one on insert"
    - start_time / end_time: seconds, non-negative; end after start is
      expected but not enforced here (offset clamping can collapse it)
    - text: may contain newlines (multi-line captions)
    - speaker, confidence, original_text: optional metadata
    """

    id: str
    start_time: float
    end_time: float
    text: str
    original_text: str | None = None
    speaker: str | None = None
    confidence: float | None = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def contains(self, time_s: float) -> bool:
        """True if time_s lies in the inclusive [start_time, end_time] range."""
        return self.start_time <= time_s <= self.end_time

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase shape used by exports and the store."""
        data: dict[str, Any] = {
            "id": self.id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "text": self.text,
        }
        if self.original_text is not None:
            data["originalText"] = self.original_text
        if self.speaker is not None:
            data["speaker"] = self.speaker
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CaptionEvent:
        """Parse an event from its camelCase dict form.

        RULES:
        - startTime, endTime and text are required
        - a missing id becomes "" (the document mints one on insert)
        """
        return cls(
            id=str(data.get("id") or ""),
            start_time=float(data["startTime"]),
            end_time=float(data["endTime"]),
            text=data["text"],
            original_text=data.get("originalText"),
            speaker=data.get("speaker"),
            confidence=data.get("confidence"),
        )


@dataclass(frozen=True)
class ProjectSettings:
    """Per-project caption constraints.

    Read by generation (prompt limits) and validation; the engine never
    mutates them.
    """

    max_chars_per_line: int = DEFAULT_MAX_CHARS_PER_LINE
    min_duration: float = DEFAULT_MIN_DURATION_S
    max_duration: float = DEFAULT_MAX_DURATION_S
    target_language: str = DEFAULT_TARGET_LANGUAGE


@dataclass(frozen=True)
class Session:
    """The user on whose behalf a project is loaded and saved."""

    user_id: str


@dataclass
class ProjectRecord:
    """The persisted form of one user's project.

    WHY: The local store keeps one record per user. Keeping the shape in
    one dataclass lets the store stay a dumb key-value layer.

    RULES:
    - last_edited is epoch milliseconds
    - media_name defaults to "Untitled Project" when absent
    """

    user_id: str
    events: list[CaptionEvent] = field(default_factory=list)
    last_edited: int = 0
    media_name: str = UNTITLED_PROJECT

    @classmethod
    def capture(
        cls,
        session: Session,
        events: list[CaptionEvent],
        media_name: str | None = None,
    ) -> ProjectRecord:
        """Build a record stamped with the current time."""
        return cls(
            user_id=session.user_id,
            events=list(events),
            last_edited=int(time.time() * 1000),
            media_name=media_name or UNTITLED_PROJECT,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "events": [e.to_dict() for e in self.events],
            "lastEditedTimestamp": self.last_edited,
            "mediaName": self.media_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectRecord:
        return cls(
            user_id=data["userId"],
            events=[CaptionEvent.from_dict(e) for e in data.get("events", [])],
            last_edited=int(data.get("lastEditedTimestamp", 0)),
            media_name=data.get("mediaName") or UNTITLED_PROJECT,
        )
