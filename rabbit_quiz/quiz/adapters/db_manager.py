import os
import sqlite3
from typing import Any

from rabbit_quiz.shared.telemetry import Telemetry, measure_time


class DatabaseManager:
    """
    Responsible for:
    1. Managing the SQLite connection lifecycle.
    2. Initializing the database schema (DDL).
    3. Handling migrations.
    4. Ensuring pickle-safety for Streamlit Session State.
    """

    def __init__(self, db_path: str = "data/rabbit_quiz.db") -> None:
        self.db_path = db_path
        self.telemetry = Telemetry("DatabaseManager")
        self._shared_connection: sqlite3.Connection | None = None

        self._ensure_db_exists()

        # In-memory DBs live only as long as their connection
        if self.db_path == ":memory:":
            self._shared_connection = sqlite3.connect(
                ":memory:", check_same_thread=False
            )

        self._init_schema()
        self._migrate_schema()

    # --- Pickle Safety ---
    def __getstate__(self) -> dict[str, Any]:
        state = self.__dict__.copy()
        state.pop("_shared_connection", None)
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        # Lazily reconnected by get_connection(); ":memory:" data does not survive.
        self.__dict__.update(state)
        self._shared_connection = None

    def get_connection(self) -> sqlite3.Connection:
        """Returns a usable database connection, reconnecting if necessary."""
        if self._shared_connection:
            try:
                self._shared_connection.execute("SELECT 1")
                return self._shared_connection
            except sqlite3.ProgrammingError:
                # Closed externally
                self._shared_connection = None

        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        if self.db_path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")

        self._shared_connection = conn
        return conn

    def close(self) -> None:
        if self._shared_connection:
            self._shared_connection.close()
            self._shared_connection = None

    def _ensure_db_exists(self) -> None:
        if self.db_path == ":memory:":
            return
        dir_name = os.path.dirname(self.db_path)
        if dir_name:
            os.makedirs(dir_name, exist_ok=True)

    @measure_time("db_init_schema")
    def _init_schema(self) -> None:
        conn = self.get_connection()
        try:
            # seq keeps first-seen order for leaderboard tie-breaking
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS user_profiles
                (
                    seq                    INTEGER PRIMARY KEY AUTOINCREMENT,
                    record_id              TEXT NOT NULL UNIQUE,
                    user_id                TEXT NOT NULL UNIQUE,
                    display_name           TEXT DEFAULT '',
                    email                  TEXT DEFAULT '',
                    currency               INTEGER DEFAULT 12,
                    unlocked_units         TEXT DEFAULT '[1]',
                    completed_units        TEXT DEFAULT '[]',
                    active_unit            INTEGER DEFAULT 1,
                    total_quizzes_taken    INTEGER DEFAULT 0,
                    total_questions        INTEGER DEFAULT 0,
                    total_correct          INTEGER DEFAULT 0,
                    total_incorrect        INTEGER DEFAULT 0,
                    total_score            INTEGER DEFAULT 0,
                    average_score          REAL DEFAULT 0.0
                )
                """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS quiz_attempts
                (
                    attempt_id        TEXT PRIMARY KEY,
                    user_id           TEXT NOT NULL,
                    display_name      TEXT DEFAULT '',
                    unit_id           INTEGER NOT NULL,
                    mode              TEXT NOT NULL,
                    total_questions   INTEGER NOT NULL,
                    correct_answers   INTEGER NOT NULL,
                    incorrect_answers INTEGER NOT NULL,
                    score             INTEGER NOT NULL,
                    score_percentage  REAL NOT NULL,
                    time_taken        INTEGER,
                    completed_at      TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_attempts_user "
                "ON quiz_attempts (user_id, completed_at)"
            )
            conn.commit()
        except sqlite3.Error as e:
            self.telemetry.log_error("Schema Init Failed", e)

    def _migrate_schema(self) -> None:
        conn = self.get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("PRAGMA table_info(user_profiles)")
            columns = [info[1] for info in cursor.fetchall()]

            # Promotional grant arrived after the first release
            if "promo_started_at" not in columns:
                self.telemetry.log_info(
                    "Migrating: Adding promo_started_at to user_profiles"
                )
                cursor.execute(
                    "ALTER TABLE user_profiles ADD COLUMN promo_started_at TEXT"
                )

            conn.commit()
        except sqlite3.Error as e:
            self.telemetry.log_error("Schema migration failed", e)
