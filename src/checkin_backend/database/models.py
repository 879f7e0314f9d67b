"""
Database Models for Guest Check-in
==================================
SQLAlchemy ORM models for guest attendance tracking.

Tables:
- guests: Imported guests, optionally sponsored by a hosting member
- checkins: Check-in/check-out events, one open event per guest at most
- guest_fts: FTS5 index over guest names (created by db_manager, not mapped)
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column, String, Integer, DateTime, Text, ForeignKey, Index, text
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UndoKind(str, Enum):
    """Which operation an undo action reverses."""
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"
    FORCED_CHECK_OUT = "FORCED_CHECK_OUT"


class ToggleStatus(str, Enum):
    """Outcome of a check-in or check-out request."""
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    ALREADY_IN = "already_in"
    NOT_CHECKED_IN = "not_checked_in"
    NEVER_CHECKED_IN = "never_checked_in"


class UndoStatus(str, Enum):
    """Outcome of an undo request."""
    REVERTED_CHECK_IN = "reverted_check_in"
    REVERTED_CHECK_OUT = "reverted_check_out"
    EMPTY = "empty"


class ImportMode(str, Enum):
    REPLACE = "replace"
    APPEND = "append"


class Guest(Base):
    """
    Guests table.
    display_name + member_host is unique case-insensitively; enforced by the
    import pipeline rather than a constraint.
    """
    __tablename__ = 'guests'

    id = Column(Integer, primary_key=True, autoincrement=True)
    display_name = Column(Text, nullable=False)
    member_host = Column(Text, nullable=True)
    source_row = Column(Integer, nullable=True)  # spreadsheet line, advisory only
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Note: no relationship to CheckIn; queries join explicitly

    def __repr__(self):
        return f"<Guest(id={self.id}, name={self.display_name}, host={self.member_host})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "member_host": self.member_host,
            "source_row": self.source_row,
        }


class CheckIn(Base):
    """
    One visit by a guest. out_ts NULL means the guest is still present.
    Timestamps are local time-of-day strings (see clock.TIME_FORMAT).
    """
    __tablename__ = 'checkins'

    id = Column(Integer, primary_key=True, autoincrement=True)
    guest_id = Column(Integer, ForeignKey('guests.id', ondelete='CASCADE'), nullable=False, index=True)
    in_ts = Column(String(20), nullable=False)
    out_ts = Column(String(20), nullable=True)
    in_by = Column(String(100), nullable=True)
    out_by = Column(String(100), nullable=True)

    __table_args__ = (
        # At most one open event per guest
        Index(
            'ix_checkins_one_open_per_guest',
            'guest_id',
            unique=True,
            sqlite_where=text('out_ts IS NULL'),
        ),
        # Never reuse event ids; undo actions refer to them
        {'sqlite_autoincrement': True},
    )

    @property
    def is_open(self) -> bool:
        return self.out_ts is None

    def __repr__(self):
        return f"<CheckIn(id={self.id}, guest={self.guest_id}, in={self.in_ts}, out={self.out_ts})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "guest_id": self.guest_id,
            "in_ts": self.in_ts,
            "out_ts": self.out_ts,
            "in_by": self.in_by,
            "out_by": self.out_by,
        }
