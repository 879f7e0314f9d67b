"""
Import Service for Guest Check-in
=================================
Bulk import of spreadsheet rows into the guest store.

Features:
- Replace (wipe first) or Append (merge) modes
- Case-insensitive dedupe on (display name, host)
- One reconstructed visit per newly inserted guest
- Whole import runs in a single transaction
"""

import logging
from typing import Iterable, Optional, Union

from sqlalchemy import func

from .. import clock
from .. import config
from .models import Guest, CheckIn, ImportMode
from .db_manager import get_db_manager, DatabaseManager
from .import_parsing import ImportRow, parse_row, plan_history, read_import_csv

logger = logging.getLogger(__name__)


class ImportSummary:
    """Counts reported back after an import."""

    def __init__(self, inserted: int, total_rows: int):
        self.inserted = inserted
        self.total_rows = total_rows

    def to_dict(self) -> dict:
        return {"inserted": self.inserted, "total_rows": self.total_rows}


class ImportService:
    """
    Merges imported rows into one database.

    Usage:
        service = ImportService(get_db_manager("party.db"))
        summary = service.import_rows(rows, mode=ImportMode.APPEND)
    """

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db = db_manager or get_db_manager()

    def import_rows(self, rows: Iterable[ImportRow], mode: Union[ImportMode, str] = ImportMode.APPEND) -> ImportSummary:
        """
        Import rows atomically.

        Args:
            rows: Raw rows; each may expand to several guests
            mode: ImportMode.REPLACE clears all guests (and their events) first

        Returns:
            ImportSummary with net-new guests and the input row count
        """
        rows = list(rows)
        mode = ImportMode(mode)
        inserted = 0
        now = clock.now_time_string()

        logger.info(f"[IMPORT] Importing {len(rows)} rows into {self.db.db_path} (mode={mode.value})")

        with self.db.get_session() as session:
            if mode == ImportMode.REPLACE:
                removed = session.query(Guest).delete(synchronize_session=False)
                logger.info(f"[IMPORT] Replace mode: removed {removed} existing guests")

            for row in rows:
                parsed = parse_row(row)
                visit = plan_history(parsed, now)

                for name in parsed.names:
                    if self._find_existing(session, name, parsed.member_host) is not None:
                        logger.debug(f"[IMPORT] Skipping duplicate guest: {name} ({parsed.member_host})")
                        continue

                    guest = Guest(
                        display_name=name,
                        member_host=parsed.member_host,
                        source_row=parsed.source_row
                    )
                    session.add(guest)
                    session.flush()
                    inserted += 1

                    if visit is not None:
                        self._add_visit(session, guest.id, visit)

            session.commit()

        logger.info(f"[IMPORT] Complete: {inserted} guests inserted from {len(rows)} rows")
        return ImportSummary(inserted=inserted, total_rows=len(rows))

    def import_csv(self, text: str, mode: Union[ImportMode, str] = ImportMode.APPEND) -> ImportSummary:
        """Import spreadsheet CSV text (see import_parsing.read_import_csv)."""
        return self.import_rows(read_import_csv(text), mode)

    def _find_existing(self, session, display_name: str, member_host: Optional[str]) -> Optional[int]:
        """Id of a guest with the same name and host (case-insensitive), if any."""
        match = session.query(Guest.id).filter(
            func.lower(Guest.display_name) == func.lower(display_name),
            func.lower(func.coalesce(Guest.member_host, "")) == func.lower(member_host or "")
        ).first()
        return match[0] if match else None

    def _add_visit(self, session, guest_id: int, visit):
        in_ts, out_ts = visit
        session.add(CheckIn(
            guest_id=guest_id,
            in_ts=in_ts,
            out_ts=out_ts,
            in_by=config.IMPORT_OPERATOR,
            out_by=config.IMPORT_OPERATOR if out_ts is not None else None
        ))
        session.flush()
