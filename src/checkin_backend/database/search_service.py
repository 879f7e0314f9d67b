"""
Search Service for Guest Check-in
=================================
Fast lookup of guests and hosts while the guest list grows.

- Guests: FTS5 prefix match on every query token, ranked by bm25,
  with a plain substring fallback
- Hosts: every token must appear in the host name; aggregated per host
"""

import logging
from typing import List, Optional

from sqlalchemy import case, exists, func, text

from .. import config
from .models import Guest, CheckIn
from .db_manager import get_db_manager, DatabaseManager

logger = logging.getLogger(__name__)

FTS_SEARCH_SQL = text("""
    SELECT g.id, g.display_name, g.member_host,
      EXISTS(SELECT 1 FROM checkins c WHERE c.guest_id = g.id AND c.out_ts IS NULL) AS is_checked_in,
      EXISTS(SELECT 1 FROM checkins c WHERE c.guest_id = g.id) AS has_history
    FROM guest_fts f
    JOIN guests g ON g.id = f.rowid
    WHERE guest_fts MATCH :match
    ORDER BY bm25(guest_fts)
    LIMIT :limit
""")


def search_tokens(query: Optional[str]) -> List[str]:
    """Split on whitespace, keep ASCII letters/digits, lowercase, drop empties."""
    tokens = []
    for raw in (query or "").split():
        token = "".join(c for c in raw if c.isascii() and c.isalnum()).lower()
        if token:
            tokens.append(token)
    return tokens


def build_prefix_query(tokens: List[str]) -> str:
    """FTS5 expression requiring every token as a display-name prefix."""
    return " AND ".join(f'display_name:"{token}"*' for token in tokens)


def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    if limit is None:
        return default
    return max(0, min(int(limit), maximum))


def is_present_clause():
    """EXISTS an open check-in for the guest in the enclosing query."""
    return exists().where(CheckIn.guest_id == Guest.id, CheckIn.out_ts.is_(None))


def has_history_clause():
    return exists().where(CheckIn.guest_id == Guest.id)


def present_count_column():
    return func.sum(case((is_present_clause(), 1), else_=0))


def _guest_result(row) -> dict:
    return {
        "id": row.id,
        "display_name": row.display_name,
        "member_host": row.member_host,
        "is_checked_in": bool(row.is_checked_in),
        "has_history": bool(row.has_history),
    }


class SearchService:
    """
    Read-only search over one database.

    Usage:
        service = SearchService(get_db_manager("party.db"))
        matches = service.search_guests("jo sm")
    """

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db = db_manager or get_db_manager()

    def search_guests(self, query: Optional[str], limit: Optional[int] = None) -> List[dict]:
        """
        Find guests by name.

        Empty queries (or queries with no usable tokens) list guests
        alphabetically. Otherwise every token must prefix-match a word of the
        display name; if nothing matches, the raw query is tried as a
        substring.
        """
        lim = clamp_limit(limit, config.GUEST_SEARCH_DEFAULT_LIMIT, config.GUEST_SEARCH_MAX_LIMIT)
        raw = (query or "").strip()
        tokens = search_tokens(raw)

        with self.db.get_session() as session:
            if not tokens:
                return [_guest_result(row) for row in self._guest_query(session).limit(lim).all()]

            match = build_prefix_query(tokens)
            rows = session.execute(FTS_SEARCH_SQL, {"match": match, "limit": lim}).all()
            if rows:
                logger.debug(f"Guest search {raw!r}: {len(rows)} prefix matches")
                return [_guest_result(row) for row in rows]

            rows = self._guest_query(session).filter(
                func.lower(Guest.display_name).contains(raw.lower(), autoescape=True)
            ).limit(lim).all()
            logger.debug(f"Guest search {raw!r}: {len(rows)} substring matches")
            return [_guest_result(row) for row in rows]

    def search_members(self, query: Optional[str], limit: Optional[int] = None) -> List[dict]:
        """
        Find hosts whose name contains every query token.

        Returns:
            [{"member_host", "total_guests", "present_guests"}] ordered by
            present guests, then total guests, both descending
        """
        lim = clamp_limit(limit, config.MEMBER_SEARCH_DEFAULT_LIMIT, config.MEMBER_SEARCH_MAX_LIMIT)
        tokens = search_tokens(query)

        with self.db.get_session() as session:
            return self._host_rollup(session, tokens, lim)

    def top_hosts(self, limit: int = config.TOP_HOSTS_LIMIT) -> List[dict]:
        with self.db.get_session() as session:
            return self._host_rollup(session, [], limit)

    def guests_for_member(self, member_host: Optional[str]) -> List[dict]:
        """All guests of one host (exact, case-insensitive), alphabetical."""
        host = (member_host or "").strip()
        if not host:
            return []

        with self.db.get_session() as session:
            rows = self._guest_query(session).filter(
                func.lower(Guest.member_host) == func.lower(host)
            ).all()
            return [_guest_result(row) for row in rows]

    def _guest_query(self, session):
        return session.query(
            Guest.id,
            Guest.display_name,
            Guest.member_host,
            is_present_clause().label("is_checked_in"),
            has_history_clause().label("has_history"),
        ).order_by(Guest.display_name, Guest.id)

    def _host_rollup(self, session, tokens: List[str], limit: int) -> List[dict]:
        total = func.count(Guest.id)
        present = present_count_column()

        query = session.query(
            Guest.member_host,
            total.label("total_guests"),
            present.label("present_guests"),
        ).filter(
            Guest.member_host.isnot(None),
            Guest.member_host != ""
        )

        for token in tokens:
            query = query.filter(func.lower(Guest.member_host).contains(token, autoescape=True))

        rows = query.group_by(Guest.member_host).order_by(
            present.desc(), total.desc(), Guest.member_host
        ).limit(limit).all()

        return [
            {
                "member_host": row.member_host,
                "total_guests": int(row.total_guests or 0),
                "present_guests": int(row.present_guests or 0),
            }
            for row in rows
        ]
