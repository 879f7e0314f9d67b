"""
Stats Service for Guest Check-in
================================
Read-only rollups for the dashboard: totals, who is here now, busiest hosts.
"""

import logging
from typing import Optional

from .. import config
from .models import Guest, CheckIn
from .db_manager import get_db_manager, DatabaseManager
from .search_service import SearchService

logger = logging.getLogger(__name__)


class StatsService:
    """
    Usage:
        stats = StatsService(get_db_manager("party.db")).get_summary()
    """

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db = db_manager or get_db_manager()

    def get_summary(self) -> dict:
        """
        Snapshot of the event.

        currently_present is the size of the capped present_guests list
        (at most config.PRESENT_GUESTS_LIMIT), not an unbounded count.
        """
        with self.db.get_session() as session:
            total_guests = session.query(Guest).count()
            total_check_ins = session.query(CheckIn).filter(CheckIn.in_ts.isnot(None)).count()
            total_check_outs = session.query(CheckIn).filter(CheckIn.out_ts.isnot(None)).count()

            present_rows = session.query(
                Guest.id,
                Guest.display_name,
                Guest.member_host,
                CheckIn.in_ts,
                CheckIn.in_by,
            ).join(
                CheckIn, CheckIn.guest_id == Guest.id
            ).filter(
                CheckIn.out_ts.is_(None)
            ).order_by(
                CheckIn.id.desc()
            ).limit(config.PRESENT_GUESTS_LIMIT).all()

        present_guests = [
            {
                "id": row.id,
                "display_name": row.display_name,
                "member_host": row.member_host,
                "in_ts": row.in_ts,
                "operator": row.in_by,
            }
            for row in present_rows
        ]

        top_hosts = SearchService(self.db).top_hosts(config.TOP_HOSTS_LIMIT)

        logger.debug(f"Stats: {total_guests} guests, {len(present_guests)} present")

        return {
            "total_guests": total_guests,
            "total_check_ins": total_check_ins,
            "total_check_outs": total_check_outs,
            "currently_present": len(present_guests),
            "present_guests": present_guests,
            "top_hosts": top_hosts,
        }
