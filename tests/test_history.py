"""Tests for the linear snapshot history.

HOW: Snapshots are small tuples of events (or plain tuples of strings
where only identity matters); the history never looks inside them.
"""

from __future__ import annotations

import pytest

from caption_studio.core.history import HistoryManager
from tests.conftest import make_event

A = (make_event("a", 0, 1),)
B = (make_event("a", 0, 1), make_event("b", 1, 2))
C = (make_event("c", 2, 3),)
D = (make_event("d", 3, 4),)


class TestCommit:

    def test_empty_history(self):
        history = HistoryManager()
        assert len(history) == 0
        assert history.index == -1
        assert history.current() is None

    def test_commit_appends_and_moves_index(self):
        history = HistoryManager()
        assert history.commit(A) is True
        assert history.commit(B) is True
        assert history.entries == (A, B)
        assert history.index == 1
        assert history.current() == B

    def test_identical_commit_is_noop(self):
        history = HistoryManager()
        history.commit(A)
        assert history.commit(A) is False
        assert len(history) == 1

    def test_structurally_equal_commit_is_noop(self):
        history = HistoryManager()
        history.commit(A)
        assert history.commit((make_event("a", 0, 1),)) is False
        assert len(history) == 1

    def test_commit_after_undo_discards_redo_branch(self):
        history = HistoryManager()
        history.commit(A)
        history.commit(B)
        history.undo()
        history.commit(C)
        assert history.entries == (A, C)
        assert history.current() == C
        assert history.redo() is None

    def test_commit_accepts_lists(self):
        history = HistoryManager()
        history.commit(list(A))
        assert history.current() == A


class TestNavigate:

    def test_undo_redo(self):
        history = HistoryManager()
        history.commit(A)
        history.commit(B)
        assert history.undo() == A
        assert history.redo() == B

    def test_undo_at_start_is_noop(self):
        history = HistoryManager()
        history.commit(A)
        assert history.undo() is None
        assert history.index == 0

    def test_redo_at_tail_is_noop(self):
        history = HistoryManager()
        history.commit(A)
        assert history.redo() is None
        assert history.index == 0

    def test_navigate_on_empty_history(self):
        history = HistoryManager()
        assert history.navigate(-1) is None
        assert history.navigate(1) is None

    @pytest.mark.parametrize("delta", [0, 2, -2])
    def test_other_deltas_rejected(self, delta):
        history = HistoryManager()
        history.commit(A)
        with pytest.raises(ValueError):
            history.navigate(delta)

    def test_can_undo_can_redo(self):
        history = HistoryManager()
        assert not history.can_undo()
        history.commit(A)
        history.commit(B)
        assert history.can_undo()
        assert not history.can_redo()
        history.undo()
        assert history.can_redo()


class TestCapacity:

    def test_oldest_entry_evicted(self):
        history = HistoryManager(capacity=3)
        for snap in (A, B, C, D):
            history.commit(snap)
        assert history.entries == (B, C, D)
        assert history.index == 2
        assert history.current() == D

    def test_undo_stops_at_oldest_kept_entry(self):
        history = HistoryManager(capacity=2)
        for snap in (A, B, C):
            history.commit(snap)
        assert history.undo() == B
        assert history.undo() is None

    def test_default_capacity(self):
        history = HistoryManager()
        for i in range(60):
            history.commit((make_event("x", i, i + 1),))
        assert len(history) == 50
        assert 0 <= history.index < len(history)

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            HistoryManager(capacity=0)


class TestReset:

    def test_reset_empty(self):
        history = HistoryManager()
        history.commit(A)
        history.reset()
        assert len(history) == 0
        assert history.current() is None

    def test_reset_with_seed(self):
        history = HistoryManager()
        history.commit(A)
        history.commit(B)
        history.reset(C)
        assert history.entries == (C,)
        assert not history.can_undo()
