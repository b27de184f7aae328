import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator

from utils.constants import DB_FILE

logger = logging.getLogger(__name__)


class DatabaseManager:
    def __init__(self, db_path: str | None = None):
        self.db_path = db_path or DB_FILE
        self._conn: sqlite3.Connection | None = None
        # One connection is shared by the scheduler thread and callers.
        self._lock = threading.RLock()

    def get_connection(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is None:
                conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=5.0)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                conn.execute("PRAGMA journal_mode = WAL")
                self._conn = conn
            return self._conn

    def fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        # Held for the read; another thread's open unit is never visible.
        with self._lock:
            return self.get_connection().execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.get_connection().execute(sql, params).fetchall()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block as one unit: commit on success, roll back on any error."""
        with self._lock:
            conn = self.get_connection()
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

    def initialize(self):
        """Create schema and seed defaults."""
        with self.transaction() as conn:
            self._create_schema(conn)
            self._seed_defaults(conn)

    def _create_schema(self, conn: sqlite3.Connection):
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS recurring_expenses (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id        TEXT NOT NULL,
                amount          REAL NOT NULL CHECK(amount > 0),
                description     TEXT NOT NULL,
                category        TEXT NOT NULL,
                frequency       TEXT NOT NULL CHECK(frequency IN ('daily','weekly','monthly','yearly')),
                anchor_date     TEXT NOT NULL,
                next_occurrence TEXT NOT NULL,
                expiry_date     TEXT,
                is_active       INTEGER NOT NULL DEFAULT 1,
                created_at      TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at      TEXT NOT NULL DEFAULT (datetime('now')),
                CHECK(next_occurrence >= anchor_date)
            );

            CREATE TABLE IF NOT EXISTS recurring_incomes (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id        TEXT NOT NULL,
                amount          REAL NOT NULL CHECK(amount > 0),
                source          TEXT NOT NULL,
                frequency       TEXT NOT NULL CHECK(frequency IN ('daily','weekly','monthly','yearly')),
                anchor_date     TEXT NOT NULL,
                next_occurrence TEXT NOT NULL,
                expiry_date     TEXT,
                is_active       INTEGER NOT NULL DEFAULT 1,
                created_at      TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at      TEXT NOT NULL DEFAULT (datetime('now')),
                CHECK(next_occurrence >= anchor_date)
            );

            CREATE TABLE IF NOT EXISTS expenses (
                id           INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id     TEXT NOT NULL,
                amount       REAL NOT NULL CHECK(amount > 0),
                description  TEXT NOT NULL DEFAULT '',
                category     TEXT NOT NULL,
                date         TEXT NOT NULL,
                is_recurring INTEGER NOT NULL DEFAULT 0,
                recurring_id INTEGER REFERENCES recurring_expenses(id) ON DELETE SET NULL,
                created_at   TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at   TEXT NOT NULL DEFAULT (datetime('now'))
            );

            CREATE TABLE IF NOT EXISTS incomes (
                id           INTEGER PRIMARY KEY AUTOINCREMENT,
                owner_id     TEXT NOT NULL,
                amount       REAL NOT NULL CHECK(amount > 0),
                source       TEXT NOT NULL DEFAULT '',
                date         TEXT NOT NULL,
                is_recurring INTEGER NOT NULL DEFAULT 0,
                recurring_id INTEGER REFERENCES recurring_incomes(id) ON DELETE SET NULL,
                created_at   TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at   TEXT NOT NULL DEFAULT (datetime('now'))
            );

            CREATE INDEX IF NOT EXISTS idx_recurring_expenses_due   ON recurring_expenses(is_active, next_occurrence);
            CREATE INDEX IF NOT EXISTS idx_recurring_expenses_owner ON recurring_expenses(owner_id);
            CREATE INDEX IF NOT EXISTS idx_recurring_incomes_due    ON recurring_incomes(is_active, next_occurrence);
            CREATE INDEX IF NOT EXISTS idx_recurring_incomes_owner  ON recurring_incomes(owner_id);
            CREATE INDEX IF NOT EXISTS idx_expenses_owner_date      ON expenses(owner_id, date);
            CREATE INDEX IF NOT EXISTS idx_expenses_recurring_id    ON expenses(recurring_id);
            CREATE INDEX IF NOT EXISTS idx_incomes_owner_date       ON incomes(owner_id, date);
            CREATE INDEX IF NOT EXISTS idx_incomes_recurring_id     ON incomes(recurring_id);

            CREATE TABLE IF NOT EXISTS app_settings (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
        """)

    def _seed_defaults(self, conn: sqlite3.Connection):
        conn.execute(
            "INSERT OR IGNORE INTO app_settings(key, value) VALUES (?, ?)",
            ("last_processed_at", ""),
        )

    def get_setting(self, key: str, default: str = "") -> str:
        row = self.fetchone("SELECT value FROM app_settings WHERE key = ?", (key,))
        return row["value"] if row else default

    def set_setting(self, key: str, value: str):
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO app_settings(key, value) VALUES (?, ?)",
                (key, value),
            )

    @staticmethod
    def open(db_folder: str | None = None, db_path: str | None = None) -> "DatabaseManager":
        """Startup factory: resolves the DB file, creates its folder and schema.

        db_path wins over db_folder; with neither, the DB lives in the CWD.
        """
        if db_path is None:
            db_path = os.path.join(db_folder, DB_FILE) if db_folder else DB_FILE
        folder = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(folder, exist_ok=True)
        db = DatabaseManager(db_path)
        db.initialize()
        logger.debug("Opened database at %s", db_path)
        return db

    def close(self):
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
