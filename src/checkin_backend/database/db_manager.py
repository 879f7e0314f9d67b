"""
Database Manager for Guest Check-in
===================================
Handles database connection, schema initialization, and session management.

Features:
- One SQLite engine per database file, shared across worker threads
- Idempotent schema creation (tables, indexes, FTS5 index and triggers)
- WAL journaling and foreign key enforcement on every connection
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Generator, Optional, Union
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from .. import config
from ..errors import StorageError
from .models import Base

logger = logging.getLogger(__name__)

# Full-text index over guest names, kept in sync with the guests table by triggers
FTS_SCHEMA = (
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS guest_fts USING fts5(
      display_name,
      member_host,
      content='guests',
      content_rowid='id'
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS guests_ai AFTER INSERT ON guests BEGIN
      INSERT INTO guest_fts(rowid, display_name, member_host)
      VALUES (new.id, new.display_name, new.member_host);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS guests_ad AFTER DELETE ON guests BEGIN
      INSERT INTO guest_fts(guest_fts, rowid, display_name, member_host)
      VALUES ('delete', old.id, old.display_name, old.member_host);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS guests_au AFTER UPDATE ON guests BEGIN
      INSERT INTO guest_fts(guest_fts, rowid, display_name, member_host)
      VALUES ('delete', old.id, old.display_name, old.member_host);
      INSERT INTO guest_fts(rowid, display_name, member_host)
      VALUES (new.id, new.display_name, new.member_host);
    END
    """,
)


class DatabaseManager:
    """
    Manages the engine for one database file and provides session context.

    Usage:
        db = DatabaseManager(Path("party.db"))
        with db.get_session() as session:
            guest = session.query(Guest).filter_by(id=1).first()
    """

    def __init__(self, db_path: Optional[Path] = None, echo: bool = False):
        """
        Initialize database manager.

        Args:
            db_path: Path to SQLite database file. Defaults to config.DATABASE_PATH
            echo: If True, log all SQL statements (useful for debugging)
        """
        self.db_path = Path(db_path or config.DATABASE_PATH)
        self.echo = echo
        self.engine = None
        self.SessionLocal = None
        self._initialized = False
        self._init_lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """
        Open the database and apply the schema. Safe to call repeatedly.

        Raises:
            StorageError: if the file cannot be created or the schema applied
        """
        with self._init_lock:
            if self._initialized:
                return
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

                # check_same_thread=False: sessions are opened from worker threads
                self.engine = create_engine(
                    f"sqlite:///{self.db_path}",
                    echo=self.echo,
                    connect_args={"check_same_thread": False},
                )

                @event.listens_for(self.engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.execute("PRAGMA journal_mode=WAL")
                    cursor.execute("PRAGMA synchronous=NORMAL")
                    cursor.close()

                self.SessionLocal = sessionmaker(
                    autocommit=False,
                    autoflush=False,
                    bind=self.engine
                )

                Base.metadata.create_all(bind=self.engine)
                with self.engine.begin() as conn:
                    for statement in FTS_SCHEMA:
                        conn.execute(text(statement))

                self._initialized = True
                logger.info(f"Database initialized at: {self.db_path}")

            except (OSError, SQLAlchemyError) as e:
                logger.error(f"Failed to initialize database at {self.db_path}: {e}")
                if self.engine is not None:
                    self.engine.dispose()
                    self.engine = None
                raise StorageError(f"Unable to open database at {self.db_path}: {e}") from e

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a database session with automatic cleanup.
        Any exception rolls the session back before propagating.

        Usage:
            with db.get_session() as session:
                # do database operations
                session.commit()

        Yields:
            SQLAlchemy Session object
        """
        if not self._initialized:
            self.initialize()

        session = self.SessionLocal()
        try:
            yield session
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def rebuild_search_index(self) -> None:
        """Rebuild guest_fts from the guests table."""
        with self.get_session() as session:
            session.execute(text("INSERT INTO guest_fts(guest_fts) VALUES ('rebuild')"))
            session.commit()
        logger.info(f"Search index rebuilt for {self.db_path}")

    def close(self):
        """Close database connection."""
        if self.engine:
            self.engine.dispose()
            self.engine = None
            self._initialized = False
            logger.info(f"Database connection closed: {self.db_path}")


# One manager per database file
_db_managers: Dict[Path, DatabaseManager] = {}
_registry_lock = threading.Lock()


def get_db_manager(db_path: Optional[Union[str, Path]] = None) -> DatabaseManager:
    """
    Get the database manager for a file, creating and initializing it on first use.

    Args:
        db_path: Database file; defaults to config.DATABASE_PATH

    Returns:
        Initialized DatabaseManager

    Raises:
        StorageError: if the database cannot be opened
    """
    path = Path(db_path or config.DATABASE_PATH).expanduser().resolve()

    with _registry_lock:
        manager = _db_managers.get(path)
        if manager is None:
            manager = DatabaseManager(path, echo=config.SQL_ECHO)
            _db_managers[path] = manager

    manager.initialize()
    return manager


def reset_db_managers():
    """Close and forget every database manager (for tests and shutdown)."""
    with _registry_lock:
        for manager in _db_managers.values():
            manager.close()
        _db_managers.clear()
