import itertools
from zoneinfo import ZoneInfo

import pytest

from checkin_backend import clock, config
from checkin_backend.database import (
    DatabaseManager,
    Guest,
    ImportRow,
    ImportService,
    UndoStack,
    reset_db_managers,
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the default database and exports inside the test's tmp dir."""
    monkeypatch.setattr(config, "DATABASE_PATH", tmp_path / "default.db")
    monkeypatch.setattr(config, "EXPORT_DIR", str(tmp_path / "exports"))
    monkeypatch.setattr(config, "LOCAL_TIMEZONE", ZoneInfo("America/Chicago"))
    yield
    reset_db_managers()


@pytest.fixture
def fixed_clock(monkeypatch):
    """Deterministic 'now': 06:00:01 PM, 06:00:02 PM, ... one second per call."""
    counter = itertools.count(1)

    def fake_now(tz=None):
        return f"06:00:{next(counter):02d} PM"

    monkeypatch.setattr(clock, "now_time_string", fake_now)
    return fake_now


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(tmp_path / "party.db")
    manager.initialize()
    yield manager
    manager.close()


@pytest.fixture
def undo_stack():
    return UndoStack()


@pytest.fixture
def seed_guests(db):
    """Insert guests through the importer; returns {display_name: id}."""
    def _seed(*rows, mode="append"):
        import_rows = [
            row if isinstance(row, ImportRow) else ImportRow(member_name=row[0], guest_names=row[1])
            for row in rows
        ]
        ImportService(db).import_rows(import_rows, mode)
        with db.get_session() as session:
            return {g.display_name: g.id for g in session.query(Guest).all()}
    return _seed
