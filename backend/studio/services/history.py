"""
Linear undo/redo history over EditorState snapshots.
"""

import logging
from typing import List, Optional

from studio.config import settings
from studio.models.state import EditorState

logger = logging.getLogger(__name__)


class HistoryManager:
    """
    Snapshot stack with a cursor.

    Snapshots are immutable, so the stack stores references rather than
    copies. There is no automatic coalescing: continuous controls (slider
    drags) should commit once on release.
    """

    def __init__(self, initial: EditorState, limit: Optional[int] = None):
        self.limit = limit if limit is not None else settings.history_limit
        self._stack: List[EditorState] = [initial]
        self._cursor = 0

    @property
    def current(self) -> EditorState:
        return self._stack[self._cursor]

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._stack) - 1

    @property
    def size(self) -> int:
        return len(self._stack)

    def commit(self, state: EditorState) -> bool:
        """
        Record a new state, discarding any redo tail.

        Returns:
            False if ``state`` equals the current snapshot (nothing recorded)
        """
        if state == self.current:
            return False

        del self._stack[self._cursor + 1:]
        self._stack.append(state)

        if self.limit and len(self._stack) > self.limit:
            overflow = len(self._stack) - self.limit
            del self._stack[:overflow]
            logger.debug(f"History limit reached, dropped {overflow} oldest snapshot(s)")

        self._cursor = len(self._stack) - 1
        return True

    def undo(self) -> Optional[EditorState]:
        """Step back one snapshot. Returns None when there is nothing to undo."""
        if not self.can_undo:
            return None
        self._cursor -= 1
        return self.current

    def redo(self) -> Optional[EditorState]:
        """Step forward one snapshot. Returns None when there is nothing to redo."""
        if not self.can_redo:
            return None
        self._cursor += 1
        return self.current

    def reset(self, state: EditorState) -> None:
        """Drop all history and start over from ``state``."""
        self._stack = [state]
        self._cursor = 0
