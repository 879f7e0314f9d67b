"""
Check-in Service for Guest Check-in
===================================
The per-guest attendance state machine.

A guest is either Out (no open event) or In (exactly one open event).
- check_in:  Out -> In, creates an open event
- check_out: In -> Out, closes the open event
- check_out(force=True) on an Out guest records an instantaneous visit

Every state change pushes its inverse onto the shared UndoStack.
"""

import logging
from typing import Optional, Tuple

from .. import clock
from ..errors import GuestNotFoundError, InvalidActionError
from .models import Guest, CheckIn, ToggleStatus, UndoKind, UndoStatus
from .db_manager import get_db_manager, DatabaseManager
from .undo_stack import UndoAction, UndoStack

logger = logging.getLogger(__name__)


class ToggleResult:
    """
    Result of a check-in/check-out request.
    undo is the inverse action pushed for it, or None when nothing changed.
    """

    def __init__(
        self,
        status: ToggleStatus,
        guest_id: int,
        checkin_id: Optional[int] = None,
        timestamp: Optional[str] = None,
        undo: Optional[UndoAction] = None
    ):
        self.status = status
        self.guest_id = guest_id
        self.checkin_id = checkin_id
        self.timestamp = timestamp
        self.undo = undo

    @property
    def changed(self) -> bool:
        return self.undo is not None

    def to_dict(self) -> dict:
        result = {"status": self.status.value, "guest_id": self.guest_id}
        if self.checkin_id:
            result["checkin_id"] = self.checkin_id
        if self.timestamp:
            result["timestamp"] = self.timestamp
        return result


class CheckinService:
    """
    Check-in/check-out operations for one database.

    Usage:
        service = CheckinService(get_db_manager("party.db"), undo_stack)
        result = service.toggle(guest_id=12, action="in", operator="front-door")
    """

    def __init__(self, db_manager: Optional[DatabaseManager] = None, undo_stack: Optional[UndoStack] = None):
        self.db = db_manager or get_db_manager()
        self.undo_stack = undo_stack if undo_stack is not None else UndoStack()

    def toggle(
        self,
        guest_id: int,
        action: str,
        operator: Optional[str] = None,
        force: bool = False
    ) -> ToggleResult:
        """
        Dispatch a check-in ("in") or check-out ("out") request.

        Raises:
            InvalidActionError: action is neither "in" nor "out"
            GuestNotFoundError: no guest with this id
        """
        normalized = (action or "").strip().lower()
        if normalized == "in":
            return self.check_in(guest_id, operator)
        if normalized == "out":
            return self.check_out(guest_id, operator, force=force)
        raise InvalidActionError(action)

    def check_in(self, guest_id: int, operator: Optional[str] = None) -> ToggleResult:
        with self.db.get_session() as session:
            self._require_guest(session, guest_id)

            existing = self._open_event(session, guest_id)
            if existing is not None:
                logger.info(f"[CHECKIN] Guest {guest_id} already checked in (event {existing.id})")
                return ToggleResult(ToggleStatus.ALREADY_IN, guest_id, checkin_id=existing.id)

            now = clock.now_time_string()
            event = CheckIn(guest_id=guest_id, in_ts=now, out_ts=None, in_by=operator)
            session.add(event)
            session.flush()
            checkin_id = event.id
            session.commit()

        undo = UndoAction(UndoKind.CHECK_IN, checkin_id, self.db.db_path)
        self.undo_stack.push(undo)
        logger.info(f"[CHECKIN] Guest {guest_id} checked in at {now} by {operator or 'unknown'}")
        return ToggleResult(ToggleStatus.CHECKED_IN, guest_id, checkin_id, now, undo)

    def check_out(self, guest_id: int, operator: Optional[str] = None, force: bool = False) -> ToggleResult:
        with self.db.get_session() as session:
            self._require_guest(session, guest_id)

            now = clock.now_time_string()
            existing = self._open_event(session, guest_id)

            if existing is not None:
                existing.out_ts = now
                existing.out_by = operator
                checkin_id = existing.id
                session.commit()
                kind = UndoKind.CHECK_OUT

            elif force:
                # Fabricate an instantaneous visit so the guest shows as having left
                event = CheckIn(guest_id=guest_id, in_ts=now, out_ts=now, in_by=operator, out_by=operator)
                session.add(event)
                session.flush()
                checkin_id = event.id
                session.commit()
                kind = UndoKind.FORCED_CHECK_OUT

            else:
                has_history = session.query(CheckIn.id).filter(CheckIn.guest_id == guest_id).first() is not None
                status = ToggleStatus.NOT_CHECKED_IN if has_history else ToggleStatus.NEVER_CHECKED_IN
                logger.info(f"[CHECKIN] Guest {guest_id} not present, check-out refused ({status.value})")
                return ToggleResult(status, guest_id)

        undo = UndoAction(kind, checkin_id, self.db.db_path)
        self.undo_stack.push(undo)
        logger.info(f"[CHECKIN] Guest {guest_id} checked out at {now} by {operator or 'unknown'}"
                    f"{' (forced)' if kind == UndoKind.FORCED_CHECK_OUT else ''}")
        return ToggleResult(ToggleStatus.CHECKED_OUT, guest_id, checkin_id, now, undo)

    def undo_last(self) -> UndoStatus:
        """
        Revert the most recent toggle still on the undo stack.

        The action is applied to the database it was recorded against, which
        may not be this service's database when several share one stack.
        """
        return self.undo_stack.pop_and_apply(self._apply_undo)

    def _apply_undo(self, action: UndoAction):
        db = self._db_for(action)
        with db.get_session() as session:
            query = session.query(CheckIn).filter(CheckIn.id == action.checkin_id)
            if action.deletes_event:
                changed = query.delete(synchronize_session=False)
            else:
                changed = query.update({CheckIn.out_ts: None, CheckIn.out_by: None}, synchronize_session=False)
            session.commit()

        if not changed:
            logger.warning(f"[UNDO] Check-in {action.checkin_id} no longer exists in {db.db_path}; nothing to revert")

    def _db_for(self, action: UndoAction) -> DatabaseManager:
        if action.db_path is None or action.db_path == self.db.db_path:
            return self.db
        return get_db_manager(action.db_path)

    # ============== Query Methods ==============

    def guest_state(self, guest_id: int) -> Tuple[bool, bool]:
        """
        Returns:
            (is_checked_in, has_history)
        """
        with self.db.get_session() as session:
            self._require_guest(session, guest_id)
            is_in = self._open_event(session, guest_id) is not None
            has_history = session.query(CheckIn.id).filter(CheckIn.guest_id == guest_id).first() is not None
            return is_in, has_history

    def guest_history(self, guest_id: int) -> list:
        """All events for a guest, ordered by check-in time."""
        with self.db.get_session() as session:
            self._require_guest(session, guest_id)
            events = session.query(CheckIn).filter(
                CheckIn.guest_id == guest_id
            ).order_by(CheckIn.id).all()
            events.sort(key=lambda event: clock.time_sort_key(event.in_ts))
            return [event.to_dict() for event in events]

    def _require_guest(self, session, guest_id: int):
        if session.query(Guest.id).filter(Guest.id == guest_id).first() is None:
            raise GuestNotFoundError(guest_id)

    def _open_event(self, session, guest_id: int) -> Optional[CheckIn]:
        return session.query(CheckIn).filter(
            CheckIn.guest_id == guest_id,
            CheckIn.out_ts.is_(None)
        ).order_by(CheckIn.id.desc()).first()
