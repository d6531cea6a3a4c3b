"""
Undo/redo over EditState snapshots.

History is a single timeline of states plus a cursor pointing at the current
one. Undo and redo only move the cursor; pushing a new state truncates
everything after it. EditState is frozen, so snapshots are shared, not copied.
"""

import time
from typing import Callable, List, NamedTuple, Optional

from ..model.edit_state import EditState
from .logger import get_logger

logger = get_logger(__name__)


class HistoryEntry(NamedTuple):
    state: EditState
    description: str
    timestamp: float


class EditHistory:
    """
    Bounded undo/redo timeline.

    Args:
        max_size: Entries kept up to and including the current one; the
            oldest are dropped first.
        on_change: Called without arguments whenever the timeline or cursor
            moves. Exceptions from it are logged, never raised.
    """

    def __init__(self, max_size: int = 50, on_change: Optional[Callable[[], None]] = None):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._entries: List[HistoryEntry] = []
        self._cursor = -1
        self._max_size = max_size
        self._on_change = on_change

    def push(self, state: EditState, description: str = "") -> None:
        """Make ``state`` current, discarding any redo branch.

        A state equal to the current one is not recorded.
        """
        if not isinstance(state, EditState):
            raise TypeError(f"EditHistory stores EditState values, got {type(state).__name__}")
        if self.current() == state:
            return

        del self._entries[self._cursor + 1:]
        self._entries.append(HistoryEntry(state, description, time.time()))
        overflow = len(self._entries) - self._max_size
        if overflow > 0:
            del self._entries[:overflow]
        self._cursor = len(self._entries) - 1

        logger.debug("History push '%s' (%d entries)", description or "edit", len(self._entries))
        self._changed()

    def undo(self) -> Optional[EditState]:
        """Move back one step and return the state there, or None at the start."""
        if not self.can_undo():
            return None
        self._cursor -= 1
        self._changed()
        return self._entries[self._cursor].state

    def redo(self) -> Optional[EditState]:
        """Move forward one step and return the state there, or None at the end."""
        if not self.can_redo():
            return None
        self._cursor += 1
        self._changed()
        return self._entries[self._cursor].state

    def can_undo(self) -> bool:
        return self._cursor > 0

    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    def current(self) -> Optional[EditState]:
        if self._cursor < 0:
            return None
        return self._entries[self._cursor].state

    def get_undo_description(self) -> Optional[str]:
        """Label of the edit that undo() would revert."""
        return self._entries[self._cursor].description if self.can_undo() else None

    def get_redo_description(self) -> Optional[str]:
        """Label of the edit that redo() would re-apply."""
        return self._entries[self._cursor + 1].description if self.can_redo() else None

    def clear(self) -> None:
        self._entries.clear()
        self._cursor = -1
        self._changed()

    def __len__(self) -> int:
        # Entries reachable by undo, including the current one
        return self._cursor + 1

    def _changed(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change()
        except Exception:
            logger.exception("History change listener failed")
