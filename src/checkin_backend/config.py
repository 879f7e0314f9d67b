"""
Configuration for the Guest Check-in Backend
============================================
All settings come from environment variables (a local .env file is loaded
first if present). Values are read once at import time.
"""

import os
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in ('true', '1', 'yes', 'on')


def _env_int(key: str, default: Optional[int] = None) -> Optional[int]:
    value = os.environ.get(key)
    try:
        return int(value) if value else default
    except ValueError:
        return default


# ============== Configuration ==============
DATABASE_PATH = Path(os.environ.get("CHECKIN_DB_PATH", "data/checkin.db"))
TIMEZONE_NAME = os.environ.get("CHECKIN_TIMEZONE", "America/Chicago")
LOCAL_TIMEZONE = ZoneInfo(TIMEZONE_NAME)
EXPORT_DIR = os.environ.get("CHECKIN_EXPORT_DIR") or None
UNDO_STACK_LIMIT = _env_int("CHECKIN_UNDO_LIMIT")  # None = unbounded
LOG_LEVEL = os.environ.get("CHECKIN_LOG_LEVEL", "INFO").upper()
SQL_ECHO = _env_bool("CHECKIN_SQL_ECHO")
HOST = os.environ.get("CHECKIN_HOST", "127.0.0.1")
PORT = _env_int("CHECKIN_PORT", 8000)

GUEST_SEARCH_DEFAULT_LIMIT = 25
GUEST_SEARCH_MAX_LIMIT = 100
MEMBER_SEARCH_DEFAULT_LIMIT = 25
MEMBER_SEARCH_MAX_LIMIT = 200
PRESENT_GUESTS_LIMIT = 200
TOP_HOSTS_LIMIT = 10
IMPORT_OPERATOR = "import"
# ==========================================
