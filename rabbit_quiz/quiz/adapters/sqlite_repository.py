import json
import sqlite3
import threading
import uuid
from datetime import datetime
from typing import Any

from rabbit_quiz.quiz.adapters.db_manager import DatabaseManager
from rabbit_quiz.quiz.domain.models import (
    AttemptRecord,
    ProfileRecord,
    ProgressionState,
    QuizMode,
    SessionResult,
    UserStats,
)
from rabbit_quiz.quiz.domain.ports import IAttemptStore, IProfileStore
from rabbit_quiz.shared.telemetry import Telemetry, measure_time

# Profile columns that update() may touch, with their encoders.
_UPDATABLE: dict[str, Any] = {
    "display_name": str,
    "email": str,
    "currency": int,
    "unlocked_units": json.dumps,
    "completed_units": json.dumps,
    "active_unit": int,
    "promo_started_at": lambda v: v.isoformat() if isinstance(v, datetime) else v,
}


class SQLiteGameRepository(IProfileStore, IAttemptStore):
    """Local/dev backend: profiles, progression and attempts in one SQLite file."""

    def __init__(self, db_manager: DatabaseManager) -> None:
        self.telemetry = Telemetry("SQLiteRepository")
        self.db_manager = db_manager
        # One shared connection: transactions from different threads must not interleave
        self._write_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        return self.db_manager.get_connection()

    @staticmethod
    def _rows(cursor: sqlite3.Cursor) -> list[dict[str, Any]]:
        columns = [desc[0] for desc in cursor.description]
        return [dict(zip(columns, row, strict=False)) for row in cursor.fetchall()]

    @staticmethod
    def _to_profile(row: dict[str, Any]) -> ProfileRecord:
        return ProfileRecord(
            record_id=row["record_id"],
            user_id=row["user_id"],
            display_name=row["display_name"] or "",
            email=row["email"] or "",
            progression=ProgressionState(
                currency=row["currency"],
                unlocked_units=json.loads(row["unlocked_units"] or "[1]"),
                completed_units=json.loads(row["completed_units"] or "[]"),
                active_unit=row["active_unit"],
                promo_started_at=row.get("promo_started_at"),
            ),
            stats=UserStats(
                total_quizzes_taken=row["total_quizzes_taken"],
                total_questions_answered=row["total_questions"],
                total_correct=row["total_correct"],
                total_incorrect=row["total_incorrect"],
                total_score=row["total_score"],
                average_score=row["average_score"],
            ),
        )

    @staticmethod
    def _to_attempt(row: dict[str, Any]) -> AttemptRecord:
        return AttemptRecord(
            attempt_id=row["attempt_id"],
            user_id=row["user_id"],
            display_name=row["display_name"] or "",
            result=SessionResult(
                unit_id=row["unit_id"],
                mode=QuizMode(row["mode"]),
                total_questions=row["total_questions"],
                correct_count=row["correct_answers"],
                incorrect_count=row["incorrect_answers"],
                elapsed_seconds=row["time_taken"] or 0,
            ),
            completed_at=datetime.fromisoformat(row["completed_at"]),
        )

    def _find(self, column: str, value: str) -> ProfileRecord | None:
        conn = self._get_connection()
        cursor = conn.execute(
            f"SELECT * FROM user_profiles WHERE {column} = ?", (value,)
        )
        rows = self._rows(cursor)
        return self._to_profile(rows[0]) if rows else None

    # --- IProfileStore ---

    @measure_time("db_get_or_create_profile")
    def get_or_create(
        self, user_id: str, display_name: str, email: str = ""
    ) -> ProfileRecord:
        existing = self._find("user_id", user_id)
        if existing:
            return existing

        profile = ProfileRecord(
            record_id=uuid.uuid4().hex,
            user_id=user_id,
            display_name=display_name,
            email=email,
        )
        state = profile.progression
        conn = self._get_connection()
        with self._write_lock:
            try:
                conn.execute(
                    """
                    INSERT INTO user_profiles (record_id, user_id, display_name, email,
                                               currency, unlocked_units, completed_units,
                                               active_unit)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        profile.record_id,
                        user_id,
                        display_name,
                        email,
                        state.currency,
                        json.dumps(state.unlocked_units),
                        json.dumps(state.completed_units),
                        state.active_unit,
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError:
                # Lost a creation race: the other writer's record wins.
                conn.rollback()
                winner = self._find("user_id", user_id)
                if winner is None:
                    raise
                self.telemetry.log_info("Profile created concurrently, reusing", user_id=user_id)
                return winner

        self.telemetry.log_info("Profile created", user_id=user_id)
        return profile

    def update(self, record_id: str, fields: dict[str, Any]) -> ProfileRecord:
        assignments = []
        values: list[Any] = []
        for name, value in fields.items():
            if name not in _UPDATABLE:
                self.telemetry.log_warning("Ignoring unknown profile field", field=name)
                continue
            assignments.append(f"{name} = ?")
            values.append(None if value is None else _UPDATABLE[name](value))

        conn = self._get_connection()
        if assignments:
            with self._write_lock:
                conn.execute(
                    f"UPDATE user_profiles SET {', '.join(assignments)} WHERE record_id = ?",
                    (*values, record_id),
                )
                conn.commit()

        record = self._find("record_id", record_id)
        if record is None:
            raise LookupError(f"No profile with record id {record_id}")
        return record

    def list_profiles(self) -> list[ProfileRecord]:
        cursor = self._get_connection().execute(
            "SELECT * FROM user_profiles ORDER BY seq"
        )
        return [self._to_profile(row) for row in self._rows(cursor)]

    # --- IAttemptStore ---

    def _insert_attempt(self, conn: sqlite3.Connection, attempt: AttemptRecord) -> str:
        attempt_id = attempt.attempt_id or uuid.uuid4().hex
        result = attempt.result
        conn.execute(
            """
            INSERT INTO quiz_attempts (attempt_id, user_id, display_name, unit_id, mode,
                                       total_questions, correct_answers, incorrect_answers,
                                       score, score_percentage, time_taken, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                attempt_id,
                attempt.user_id,
                attempt.display_name,
                result.unit_id,
                result.mode.value,
                result.total_questions,
                result.correct_count,
                result.incorrect_count,
                result.score,
                result.score_percentage,
                result.elapsed_seconds,
                attempt.completed_at.isoformat(),
            ),
        )
        return attempt_id

    @measure_time("db_create_attempt")
    def create(self, attempt: AttemptRecord) -> str:
        conn = self._get_connection()
        with self._write_lock:
            try:
                attempt_id = self._insert_attempt(conn, attempt)
                conn.commit()
                return attempt_id
            except sqlite3.Error:
                conn.rollback()
                raise

    @measure_time("db_commit_result")
    def commit(self, attempt: AttemptRecord, record_id: str) -> UserStats:
        conn = self._get_connection()
        with self._write_lock:
            try:
                # Write lock first: the fold must see totals no other writer can change.
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.execute(
                    "SELECT * FROM user_profiles WHERE record_id = ?", (record_id,)
                )
                rows = self._rows(cursor)
                if not rows:
                    raise LookupError(f"No profile with record id {record_id}")
                stats = self._to_profile(rows[0]).stats.fold(attempt.result)

                self._insert_attempt(conn, attempt)
                conn.execute(
                    """
                    UPDATE user_profiles
                    SET total_quizzes_taken = ?,
                        total_questions     = ?,
                        total_correct       = ?,
                        total_incorrect     = ?,
                        total_score         = ?,
                        average_score       = ?
                    WHERE record_id = ?
                    """,
                    (
                        stats.total_quizzes_taken,
                        stats.total_questions_answered,
                        stats.total_correct,
                        stats.total_incorrect,
                        stats.total_score,
                        stats.average_score,
                        record_id,
                    ),
                )
                conn.commit()
            except Exception:
                conn.rollback()
                raise
        return stats

    def list_for_user(self, user_id: str, limit: int) -> list[AttemptRecord]:
        cursor = self._get_connection().execute(
            """
            SELECT * FROM quiz_attempts
            WHERE user_id = ?
            ORDER BY completed_at DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        return [self._to_attempt(row) for row in self._rows(cursor)]
