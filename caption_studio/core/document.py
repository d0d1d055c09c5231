"""Caption document: the ordered event list and its typed edit commands.

WHY: The editor, the history and the playback sync all need one owner of
"the captions of this project". Edits arrive as small typed commands
rather than open-ended field merges, so an illegal timing (end before
start, negative, NaN) cannot be expressed at all.

HOW: CaptionDocument keeps a list of frozen CaptionEvents. Every change
replaces an event with a new instance (dataclasses.replace), so
snapshots handed to the history are plain tuples that never change.
Commands are small frozen dataclasses with an apply(event) method.

RULES:
- Identifiers are unique within a document
- update() and delete() on an unknown id are silent no-ops
- active_at() uses inclusive ranges; the first match by position wins
- apply_global_offset() clamps start and end at zero independently
- Translations set original_text only once (first translation wins)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Iterable, Iterator, Mapping, Tuple, Union

from caption_studio.core.model import CaptionEvent, mint_event_id

Snapshot = Tuple[CaptionEvent, ...]
"""Immutable value copy of a document's events at one point in time."""


class InvalidTiming(ValueError):
    """Raised when a SetTiming command is built with an illegal range.

    WHY: Timing edits are validated where they are expressed, so the
    document itself never has to reject or repair a command.

    RULES:
    - Raised before any document operation runs
    - Message names the offending values
    """


# ---------------------------------------------------------------------------
# Edit commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SetText:
    """Replace the caption text."""

    text: str

    def apply(self, event: CaptionEvent) -> CaptionEvent:
        return replace(event, text=self.text)


@dataclass(frozen=True)
class SetTiming:
    """Replace both ends of the caption's time range.

    RULES:
    - start and end must be finite and non-negative
    - end must be strictly after start
    - Violations raise InvalidTiming at construction
    """

    start: float
    end: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.start) and math.isfinite(self.end)):
            raise InvalidTiming(
                "Timing must be finite (start={}, end={})".format(self.start, self.end)
            )
        if self.start < 0 or self.end < 0:
            raise InvalidTiming(
                "Timing must be non-negative (start={}, end={})".format(self.start, self.end)
            )
        if self.end <= self.start:
            raise InvalidTiming(
                "End must be after start (start={}, end={})".format(self.start, self.end)
            )

    def apply(self, event: CaptionEvent) -> CaptionEvent:
        return replace(event, start_time=self.start, end_time=self.end)


@dataclass(frozen=True)
class SetSpeaker:
    """Replace (or clear, with None) the speaker label."""

    speaker: str | None

    def apply(self, event: CaptionEvent) -> CaptionEvent:
        return replace(event, speaker=self.speaker)


EditCommand = Union[SetText, SetTiming, SetSpeaker]


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class CaptionDocument:
    """Ordered collection of caption events for one project.

    WHY: Insertion order drives list display and editing focus, while
    rendering is time-addressed. The document keeps the order and answers
    time queries on top of it.

    HOW: A plain list of frozen events. Lookups by id are linear; caption
    documents hold hundreds of events, not millions.

    RULES:
    - Never raises from update/delete/offset/query operations
    - snapshot() returns an immutable tuple safe to keep forever
    - restore() replaces the events with a snapshot's contents
    """

    def __init__(self, events: Iterable[CaptionEvent] = ()) -> None:
        self._events: list[CaptionEvent] = []
        self.insert_or_replace_all(events)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def events(self) -> Snapshot:
        return tuple(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[CaptionEvent]:
        return iter(list(self._events))

    def get(self, event_id: str) -> CaptionEvent | None:
        """Return the event with event_id, or None."""
        index = self._index_of(event_id)
        return None if index is None else self._events[index]

    def snapshot(self) -> Snapshot:
        return tuple(self._events)

    def restore(self, snapshot: Snapshot) -> None:
        self._events = list(snapshot)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def insert_or_replace_all(self, events: Iterable[CaptionEvent]) -> None:
        """Replace every event with a new batch.

        WHY: Generation, translation and import all produce a whole new
        event list. Events carried over from the current document keep
        their ids so the history and the editor focus stay continuous.

        RULES:
        - Events with an id keep it
        - Events without an id, or whose id repeats an earlier event of
          the same batch, get a freshly minted id
        """
        seen: set[str] = set()
        result: list[CaptionEvent] = []
        for event in events:
            if not event.id or event.id in seen:
                event = replace(event, id=mint_event_id())
            seen.add(event.id)
            result.append(event)
        self._events = result

    def update(self, event_id: str, command: EditCommand) -> bool:
        """Apply an edit command to one event.

        Returns True if the event existed. An unknown id is a no-op: the
        UI may race an update against a delete.
        """
        index = self._index_of(event_id)
        if index is None:
            return False
        self._events[index] = command.apply(self._events[index])
        return True

    def delete(self, event_id: str) -> bool:
        """Remove one event; returns False if it was already gone."""
        index = self._index_of(event_id)
        if index is None:
            return False
        del self._events[index]
        return True

    def apply_global_offset(self, delta_seconds: float) -> None:
        """Shift every event by delta_seconds, clamping each end at zero.

        Start and end are clamped independently, so events pushed past
        zero collapse (e.g. [0, 0]); validation reports those as
        invalid_timing.
        """
        self._events = [
            replace(
                e,
                start_time=max(0.0, e.start_time + delta_seconds),
                end_time=max(0.0, e.end_time + delta_seconds),
            )
            for e in self._events
        ]

    def apply_translations(self, translations: Mapping[str, str]) -> int:
        """Set translated text on the events named in translations.

        RULES:
        - original_text is recorded from the current text only if unset
        - Events missing from the mapping keep their text untouched
        - An empty translation is applied like any other
        - Returns the number of events that received a translation
        """
        applied = 0
        updated: list[CaptionEvent] = []
        for event in self._events:
            if event.id in translations:
                event = replace(
                    event,
                    text=translations[event.id],
                    original_text=event.original_text if event.original_text is not None else event.text,
                )
                applied += 1
            updated.append(event)
        self._events = updated
        return applied

    # ------------------------------------------------------------------
    # Time queries
    # ------------------------------------------------------------------

    def active_at(self, time_s: float) -> CaptionEvent | None:
        """Return the first event (by position) containing time_s, or None."""
        for event in self._events:
            if event.contains(time_s):
                return event
        return None

    def all_active_at(self, time_s: float) -> list[CaptionEvent]:
        """Return every event containing time_s, in document order."""
        return [e for e in self._events if e.contains(time_s)]

    def _index_of(self, event_id: str) -> int | None:
        for i, event in enumerate(self._events):
            if event.id == event_id:
                return i
        return None
