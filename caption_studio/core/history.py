"""Bounded linear undo/redo history of document snapshots.

WHY: Every discrete edit (a committed text change, a delete, an offset,
a generation result) must be reversible. Storing whole snapshots rather
than inverse operations keeps undo trivially correct for every kind of
edit, including bulk replacements from the AI service.

HOW: A list of immutable snapshots plus a current index. Snapshots are
tuples of frozen events, so unchanged events are shared between entries
and a snapshot costs one tuple of references.

RULES:
- 0 <= index < len(entries) whenever the history is non-empty
- commit() discards everything after the index (linear, no branches)
- A commit equal to the current snapshot is a no-op
- Capacity is a sliding window: the oldest entry is evicted
- navigate() only accepts -1 and +1; at a boundary it returns None
"""

from __future__ import annotations

from caption_studio.config import HISTORY_CAPACITY
from caption_studio.core.document import Snapshot


class HistoryManager:
    """Linear snapshot history with a sliding capacity window.

    Example:
        commit(A), commit(B), undo(), commit(C) leaves [A, C] with the
        index at C. B is gone for good.
    """

    def __init__(self, capacity: int = HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1, got {}".format(capacity))
        self._capacity = capacity
        self._entries: list[Snapshot] = []
        self._index = -1

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def entries(self) -> tuple[Snapshot, ...]:
        return tuple(self._entries)

    @property
    def index(self) -> int:
        """Position of the current snapshot, -1 when empty."""
        return self._index

    def __len__(self) -> int:
        return len(self._entries)

    def current(self) -> Snapshot | None:
        if self._index < 0:
            return None
        return self._entries[self._index]

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return 0 <= self._index < len(self._entries) - 1

    def commit(self, snapshot: Snapshot) -> bool:
        """Record a new snapshot after the current one.

        Returns False (and changes nothing) when the snapshot equals the
        current one, so repeated blur/commit calls don't pile up entries.
        """
        snapshot = tuple(snapshot)
        if self._index >= 0 and self._entries[self._index] == snapshot:
            return False

        del self._entries[self._index + 1:]
        self._entries.append(snapshot)
        if len(self._entries) > self._capacity:
            del self._entries[: len(self._entries) - self._capacity]
        self._index = len(self._entries) - 1
        return True

    def navigate(self, delta: int) -> Snapshot | None:
        """Move one step back (-1) or forward (+1).

        Returns:
            The snapshot now current, or None if the move would leave the
            history (the index is left unchanged).

        Raises:
            ValueError: delta is anything other than -1 or +1.
        """
        if delta not in (-1, 1):
            raise ValueError("History can only move by -1 or +1, got {}".format(delta))
        target = self._index + delta
        if self._index < 0 or not 0 <= target < len(self._entries):
            return None
        self._index = target
        return self._entries[target]

    def undo(self) -> Snapshot | None:
        return self.navigate(-1)

    def redo(self) -> Snapshot | None:
        return self.navigate(1)

    def reset(self, snapshot: Snapshot | None = None) -> None:
        """Drop every entry, optionally seeding the history with one snapshot."""
        self._entries = []
        self._index = -1
        if snapshot is not None:
            self.commit(snapshot)
