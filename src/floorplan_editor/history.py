# src/floorplan_editor/history.py
"""Bounded undo/redo history over immutable floor-plan snapshots."""
from __future__ import annotations

from collections import deque
from typing import Callable

from floorplan_editor.exceptions import HistoryError
from floorplan_editor.models import FloorPlan

DEFAULT_HISTORY_LIMIT = 20


class History:
    """Undo and redo stacks of whole-plan snapshots.

    Snapshots are frozen models and mutations build new plans with
    ``model_copy``, so frames share every space they did not touch.
    When a stack is full the oldest frame is evicted.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self.limit = limit
        self._undo: deque[FloorPlan] = deque(maxlen=limit)
        self._redo: deque[FloorPlan] = deque(maxlen=limit)

    @property
    def undo_stack(self) -> list[FloorPlan]:
        return list(self._undo)

    @property
    def redo_stack(self) -> list[FloorPlan]:
        return list(self._redo)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def push(self, frame: FloorPlan) -> None:
        """Record the state before a committed mutation; invalidates redo."""
        self._undo.append(frame)
        self._redo.clear()

    def undo(self, present: FloorPlan) -> FloorPlan:
        if not self._undo:
            raise HistoryError("Nothing to undo")
        self._redo.append(present)
        return self._undo.pop()

    def redo(self, present: FloorPlan) -> FloorPlan:
        if not self._redo:
            raise HistoryError("Nothing to redo")
        self._undo.append(present)
        return self._redo.pop()

    def rebase(self, fn: Callable[[FloorPlan], FloorPlan]) -> None:
        """Apply ``fn`` to every frame, e.g. to fold a server-side change into history.

        All frames are rewritten before either stack is replaced, so a
        failing ``fn`` leaves the history untouched.
        """
        undo = [fn(frame) for frame in self._undo]
        redo = [fn(frame) for frame in self._redo]
        self._undo = deque(undo, maxlen=self.limit)
        self._redo = deque(redo, maxlen=self.limit)

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def __len__(self) -> int:
        return len(self._undo)
