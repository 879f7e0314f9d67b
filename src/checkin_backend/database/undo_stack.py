"""
Undo Stack for Guest Check-in
=============================
In-memory LIFO of inverse actions for the operator's recent check-ins and
check-outs. Owned by the running application; never persisted.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Deque, Optional

from .models import UndoKind, UndoStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UndoAction:
    """Inverse of one successful toggle, targeting a single check-in event in one database file."""
    kind: UndoKind
    checkin_id: int
    db_path: Optional[Path] = None

    @property
    def deletes_event(self) -> bool:
        """CHECK_IN and FORCED_CHECK_OUT are undone by deleting the event."""
        return self.kind in (UndoKind.CHECK_IN, UndoKind.FORCED_CHECK_OUT)

    @property
    def reverted_status(self) -> UndoStatus:
        if self.kind == UndoKind.CHECK_IN:
            return UndoStatus.REVERTED_CHECK_IN
        return UndoStatus.REVERTED_CHECK_OUT


class UndoStack:
    """
    Lock-guarded stack of UndoAction.

    Each push, and each pop together with its apply, runs under one lock so
    callers never see a half-applied undo.

    Args:
        max_size: Optional capacity; the oldest actions are dropped first.
    """

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size if max_size and max_size > 0 else None
        self._entries: Deque[UndoAction] = deque(maxlen=self.max_size)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def push(self, action: UndoAction) -> None:
        with self._lock:
            if self.max_size and len(self._entries) == self.max_size:
                logger.warning(f"[UNDO] Stack full ({self.max_size}), dropping oldest action")
            self._entries.append(action)
            logger.debug(f"[UNDO] Pushed {action.kind.value} for check-in {action.checkin_id}")

    def peek(self) -> Optional[UndoAction]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def pop_and_apply(self, apply: Callable[[UndoAction], None]) -> UndoStatus:
        """
        Pop the most recent action and apply its inverse.

        Args:
            apply: Performs the storage change for the action. If it raises,
                the action is put back on the stack and the error propagates.

        Returns:
            UndoStatus for the reverted action, or EMPTY if there was nothing to undo
        """
        with self._lock:
            if not self._entries:
                return UndoStatus.EMPTY

            action = self._entries.pop()
            try:
                apply(action)
            except Exception:
                self._entries.append(action)
                logger.error(f"[UNDO] Failed to revert {action.kind.value} for check-in {action.checkin_id}; action restored")
                raise

            logger.info(f"[UNDO] Reverted {action.kind.value} for check-in {action.checkin_id}")
            return action.reverted_status

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
