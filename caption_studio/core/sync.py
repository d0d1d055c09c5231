"""Playback sync: keeps a media clock and the active caption in step.

WHY: The player's clock advances on its own, while the user also moves
it (dragging the timeline, clicking a caption). Without a guard the two
feed back into each other: the app seeks, the player reports a slightly
different time, the app corrects it, and so on.

HOW: PlaybackSync tracks the last known position and a "seeking" flag.
An explicit seek tells the player to move and raises the flag; clock
ticks are ignored until the player reports that the seek finished
(on_seeked). Seeks that land within the tolerance of the known position
are treated as natural progression and never reach the player.

RULES:
- The seeking flag is cleared only by on_seeked(), never by a timer
- Active-caption changes are reported edge-triggered: a different event,
  or the same event with edited text or timing
- Negative positions clamp to 0
- seek_to_event() pauses the player before seeking to the event start
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from caption_studio.config import SEEK_TOLERANCE_S
from caption_studio.core.document import CaptionDocument
from caption_studio.core.model import CaptionEvent

logger = logging.getLogger(__name__)


class MediaPlayer(Protocol):
    """The two player controls the sync needs."""

    def seek(self, time_s: float) -> None: ...

    def pause(self) -> None: ...


class PlaybackSync:
    """Reconciles a player's clock with a caption document.

    Args:
        document: The document to query for the active caption. Read
            only; the sync never edits it.
        player: Anything with seek(time_s) and pause().
        tolerance: Seek requests this close to the known position are
            absorbed without touching the player.
        on_active_change: Called with the new active event (or None)
            whenever the active event changes, including edits to it.
    """

    def __init__(
        self,
        document: CaptionDocument,
        player: MediaPlayer,
        tolerance: float = SEEK_TOLERANCE_S,
        on_active_change: Callable[[CaptionEvent | None], None] | None = None,
    ) -> None:
        self._document = document
        self._player = player
        self._tolerance = tolerance
        self._on_active_change = on_active_change
        self._position = 0.0
        self._active: CaptionEvent | None = None
        self._seeking = False

    @property
    def position(self) -> float:
        return self._position

    @property
    def active(self) -> CaptionEvent | None:
        return self._active

    @property
    def is_seeking(self) -> bool:
        return self._seeking

    def attach(self, document: CaptionDocument) -> None:
        """Point the sync at another document (e.g. after a project reload)."""
        self._document = document
        self.refresh()

    # ------------------------------------------------------------------
    # Player → sync
    # ------------------------------------------------------------------

    def tick(self, time_s: float) -> bool:
        """Handle a natural clock update from the player.

        Returns:
            True if the tick was applied, False if it was suppressed
            because a seek is still in flight.
        """
        if self._seeking:
            return False
        self._position = max(0.0, time_s)
        self.refresh()
        return True

    def on_seeking(self) -> None:
        """The player started a seek of its own (e.g. native scrubbing)."""
        self._seeking = True

    def on_seeked(self, time_s: float | None = None) -> None:
        """The player finished seeking; resume accepting ticks."""
        self._seeking = False
        if time_s is not None:
            self._position = max(0.0, time_s)
        self.refresh()

    # ------------------------------------------------------------------
    # User → sync
    # ------------------------------------------------------------------

    def seek(self, time_s: float) -> bool:
        """Move playback to time_s.

        Returns:
            True if the player was told to seek, False if the request was
            within tolerance and absorbed as natural progression.
        """
        target = max(0.0, time_s)
        if abs(target - self._position) <= self._tolerance:
            self._position = target
            self.refresh()
            return False

        self._seeking = True
        self._position = target
        self._player.seek(target)
        self.refresh()
        return True

    def seek_to_event(self, event_id: str) -> bool:
        """Pause and jump to the start of a caption.

        Returns False (and leaves the player alone) if the id is unknown.
        """
        event = self._document.get(event_id)
        if event is None:
            logger.debug("seek_to_event: no event %s", event_id)
            return False
        self._player.pause()
        self.seek(event.start_time)
        return True

    def refresh(self) -> CaptionEvent | None:
        """Recompute the active caption, e.g. after the document changed."""
        active = self._document.active_at(self._position)
        previous = self._active
        self._active = active
        if active != previous and self._on_active_change is not None:
            self._on_active_change(active)
        return active
