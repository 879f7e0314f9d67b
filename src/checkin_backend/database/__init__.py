"""
Database Module for Guest Check-in
==================================
SQLite-backed guest store with:
- Check-in/check-out state machine and undo
- Spreadsheet import with dedupe and visit reconstruction
- Full-text guest search and host rollups
- Stats and CSV export
"""

from .models import Guest, CheckIn, ToggleStatus, UndoStatus, UndoKind, ImportMode
from .db_manager import DatabaseManager, get_db_manager, reset_db_managers
from .undo_stack import UndoAction, UndoStack
from .checkin_service import CheckinService, ToggleResult
from .import_parsing import ImportRow, ParsedRow, read_import_csv
from .import_service import ImportService, ImportSummary
from .search_service import SearchService
from .stats_service import StatsService
from .export_service import ExportService

__all__ = [
    'Guest',
    'CheckIn',
    'ToggleStatus',
    'UndoStatus',
    'UndoKind',
    'ImportMode',
    'DatabaseManager',
    'get_db_manager',
    'reset_db_managers',
    'UndoAction',
    'UndoStack',
    'CheckinService',
    'ToggleResult',
    'ImportRow',
    'ParsedRow',
    'read_import_csv',
    'ImportService',
    'ImportSummary',
    'SearchService',
    'StatsService',
    'ExportService',
]
