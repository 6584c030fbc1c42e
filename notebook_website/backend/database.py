"""SQLite persistence shared by the auth service and the note storage."""

import contextlib
import logging
import sqlite3
import threading
from typing import Iterator

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        first_name TEXT NOT NULL DEFAULT '',
        avatar TEXT NOT NULL DEFAULT '',
        is_account_deleted INTEGER NOT NULL DEFAULT 0,
        reset_token_hash TEXT,
        reset_token_expires TEXT,
        created_time TEXT NOT NULL,
        updated_time TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        token TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        created_time TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notes (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        created_time TEXT NOT NULL,
        updated_time TEXT NOT NULL,
        is_deleted INTEGER NOT NULL DEFAULT 0,
        deleted_time TEXT,
        FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_notes_user_id ON notes(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_notes_created_time ON notes(created_time DESC)",
    """
    CREATE TABLE IF NOT EXISTS note_groups (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        created_time TEXT NOT NULL,
        updated_time TEXT NOT NULL,
        is_deleted INTEGER NOT NULL DEFAULT 0,
        FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS group_notes (
        group_id TEXT NOT NULL,
        note_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        PRIMARY KEY (group_id, note_id),
        FOREIGN KEY (group_id) REFERENCES note_groups (id) ON DELETE CASCADE,
        FOREIGN KEY (note_id) REFERENCES notes (id) ON DELETE CASCADE
    )
    """,
)


class Database:
    """Opens short-lived connections to one SQLite file and serializes writes."""

    def __init__(self, db_path: str = "notebook.db"):
        self.db_path = db_path
        # sqlite3 connections are per operation; writers take this lock
        self.lock = threading.Lock()
        self._create_tables()

    @contextlib.contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection with WAL journaling and foreign keys enabled."""
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.execute("PRAGMA synchronous=FULL;")
        try:
            yield conn
        finally:
            conn.close()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Locked write transaction: commits on success, rolls back on error."""
        with self.lock:
            with self.connect() as conn:
                cursor = conn.cursor()
                try:
                    yield cursor
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise

    def _create_tables(self) -> None:
        with self.connect() as conn:
            cursor = conn.cursor()
            for statement in SCHEMA:
                cursor.execute(statement)
            conn.commit()
        logger.info("Database ready at %s", self.db_path)
