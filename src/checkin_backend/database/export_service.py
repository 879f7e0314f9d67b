"""
Export Service for Guest Check-in
=================================
Writes a CSV snapshot of every guest in the same column layout the
importer reads, so an export can be re-imported into a fresh database.
"""

import csv
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from .. import clock
from .. import config
from ..errors import ExportError
from .models import Guest, CheckIn
from .db_manager import get_db_manager, DatabaseManager

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "Member Name",
    "Guest Name",
    "Check In Y/N",
    "Check In Time",
    "Check Out Y/N",
    "Check Out Time",
]


def default_export_dir() -> Path:
    """CHECKIN_EXPORT_DIR if set, otherwise the user's desktop."""
    if config.EXPORT_DIR:
        return Path(config.EXPORT_DIR).expanduser()
    return Path.home() / "Desktop"


def export_filename() -> str:
    return f"party-sign-in-{clock.local_now().strftime(clock.EXPORT_STAMP_FORMAT)}.csv"


class ExportService:
    """
    Usage:
        path = ExportService(get_db_manager("party.db")).export_csv()
    """

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db = db_manager or get_db_manager()

    def snapshot_rows(self) -> List[List[str]]:
        """
        One row per guest, alphabetical.

        Check-in columns come from the guest's latest event. Check-out is "Y"
        when any event is closed, with the time of the latest closed one.
        """
        with self.db.get_session() as session:
            guests = session.query(Guest).order_by(Guest.display_name, Guest.id).all()
            latest: Dict[int, CheckIn] = {}
            latest_closed: Dict[int, CheckIn] = {}
            for event in session.query(CheckIn).order_by(CheckIn.id).all():
                latest[event.guest_id] = event
                if event.out_ts is not None:
                    latest_closed[event.guest_id] = event

            rows = []
            for guest in guests:
                event = latest.get(guest.id)
                closed = latest_closed.get(guest.id)
                rows.append([
                    guest.member_host or "",
                    guest.display_name,
                    "Y" if event is not None else "N",
                    event.in_ts if event is not None else "",
                    "Y" if closed is not None else "N",
                    closed.out_ts if closed is not None else "",
                ])
            return rows

    def export_csv(self, out_dir: Optional[Union[str, Path]] = None) -> Path:
        """
        Write the snapshot file.

        Args:
            out_dir: Target directory (created if missing); defaults to default_export_dir()

        Returns:
            Path of the written file

        Raises:
            ExportError: directory or file could not be written
        """
        rows = self.snapshot_rows()
        target_dir = Path(out_dir).expanduser() if out_dir else default_export_dir()
        file_path = target_dir / export_filename()

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            with open(file_path, "w", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                writer.writerow(EXPORT_COLUMNS)
                writer.writerows(rows)
        except OSError as e:
            logger.error(f"[EXPORT] Failed to write {file_path}: {e}")
            raise ExportError(f"Unable to write export to {file_path}: {e}") from e

        logger.info(f"[EXPORT] Wrote {len(rows)} guests to {file_path}")
        return file_path
