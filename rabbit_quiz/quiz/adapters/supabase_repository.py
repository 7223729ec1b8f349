from datetime import datetime
from typing import Any, cast

from postgrest.exceptions import APIError

from rabbit_quiz.quiz.domain.models import (
    AttemptRecord,
    ProfileRecord,
    ProgressionState,
    QuizMode,
    SessionResult,
    UserIdentity,
    UserStats,
)
from rabbit_quiz.quiz.domain.ports import IAttemptStore, IAuthProvider, IProfileStore
from rabbit_quiz.shared.telemetry import Telemetry, measure_time
from supabase import Client, create_client

PROFILES = "user_profiles"
ATTEMPTS = "quiz_attempts"
UNIQUE_VIOLATION = "23505"

_PROGRESSION_FIELDS = {
    "currency",
    "unlocked_units",
    "completed_units",
    "active_unit",
    "promo_started_at",
    "display_name",
    "email",
}


def _to_profile(row: dict[str, Any]) -> ProfileRecord:
    return ProfileRecord(
        record_id=str(row["record_id"]),
        user_id=str(row["user_id"]),
        display_name=row.get("display_name") or "",
        email=row.get("email") or "",
        progression=ProgressionState(
            currency=int(row["currency"]),
            unlocked_units=row.get("unlocked_units") or [1],
            completed_units=row.get("completed_units") or [],
            active_unit=int(row.get("active_unit") or 1),
            promo_started_at=row.get("promo_started_at"),
        ),
        stats=UserStats(
            total_quizzes_taken=int(row.get("total_quizzes_taken") or 0),
            total_questions_answered=int(row.get("total_questions_answered") or 0),
            total_correct=int(row.get("total_correct") or 0),
            total_incorrect=int(row.get("total_incorrect") or 0),
            total_score=int(row.get("total_score") or 0),
            average_score=float(row.get("average_score") or 0.0),
        ),
    )


def _attempt_payload(attempt: AttemptRecord) -> dict[str, Any]:
    result = attempt.result
    return {
        "user_id": attempt.user_id,
        "display_name": attempt.display_name,
        "unit_id": result.unit_id,
        "mode": result.mode.value,
        "total_questions": result.total_questions,
        "correct_answers": result.correct_count,
        "incorrect_answers": result.incorrect_count,
        "score": result.score,
        "score_percentage": result.score_percentage,
        "time_taken": result.elapsed_seconds,
        "completed_at": attempt.completed_at.isoformat(),
    }


def _to_attempt(row: dict[str, Any]) -> AttemptRecord:
    return AttemptRecord(
        attempt_id=str(row["attempt_id"]),
        user_id=str(row["user_id"]),
        display_name=row.get("display_name") or "",
        result=SessionResult(
            unit_id=int(row["unit_id"]),
            mode=QuizMode(row["mode"]),
            total_questions=int(row["total_questions"]),
            correct_count=int(row["correct_answers"]),
            incorrect_count=int(row["incorrect_answers"]),
            elapsed_seconds=int(row.get("time_taken") or 0),
        ),
        completed_at=datetime.fromisoformat(str(row["completed_at"])),
    )


class SupabaseGameRepository(IProfileStore, IAttemptStore):
    """
    Hosted backend. Profiles and attempts live in two tables; the atomic
    result commit is the `commit_quiz_result` database function, which
    inserts the attempt and updates the profile in one transaction.
    """

    def __init__(self, client: Client) -> None:
        self.telemetry = Telemetry("SupabaseRepository")
        self.client = client

    @classmethod
    def connect(cls, url: str, key: str) -> "SupabaseGameRepository":
        telemetry = Telemetry("SupabaseRepository")
        try:
            return cls(create_client(url, key))
        except Exception as e:
            telemetry.log_error("Failed to initialize Supabase client", e)
            raise

    def _select_profile(self, user_id: str) -> ProfileRecord | None:
        response = (
            self.client.table(PROFILES).select("*").eq("user_id", user_id).execute()
        )
        data = cast(list[dict[str, Any]], response.data)
        return _to_profile(data[0]) if data else None

    # --- IProfileStore ---

    @measure_time("sb_get_or_create_profile")
    def get_or_create(
        self, user_id: str, display_name: str, email: str = ""
    ) -> ProfileRecord:
        existing = self._select_profile(user_id)
        if existing:
            return existing

        state = ProgressionState()
        payload = {
            "user_id": user_id,
            "display_name": display_name,
            "email": email,
            **state.model_dump(mode="json"),
        }
        try:
            response = self.client.table(PROFILES).insert(payload).execute()
        except APIError as e:
            if e.code != UNIQUE_VIOLATION:
                raise
            # Two tabs raced to create the profile; use the one that won.
            winner = self._select_profile(user_id)
            if winner is None:
                raise
            self.telemetry.log_info("Profile created concurrently, reusing", user_id=user_id)
            return winner

        data = cast(list[dict[str, Any]], response.data)
        self.telemetry.log_info("Profile created", user_id=user_id)
        return _to_profile(data[0])

    @measure_time("sb_update_profile")
    def update(self, record_id: str, fields: dict[str, Any]) -> ProfileRecord:
        payload = {k: v for k, v in fields.items() if k in _PROGRESSION_FIELDS}
        response = (
            self.client.table(PROFILES)
            .update(payload)
            .eq("record_id", record_id)
            .execute()
        )
        data = cast(list[dict[str, Any]], response.data)
        if not data:
            raise LookupError(f"No profile with record id {record_id}")
        return _to_profile(data[0])

    @measure_time("sb_list_profiles")
    def list_profiles(self) -> list[ProfileRecord]:
        response = (
            self.client.table(PROFILES)
            .select("*")
            .order("created_at")
            .execute()
        )
        return [_to_profile(row) for row in cast(list[dict[str, Any]], response.data)]

    # --- IAttemptStore ---

    @measure_time("sb_create_attempt")
    def create(self, attempt: AttemptRecord) -> str:
        response = self.client.table(ATTEMPTS).insert(_attempt_payload(attempt)).execute()
        data = cast(list[dict[str, Any]], response.data)
        return str(data[0]["attempt_id"])

    @measure_time("sb_commit_result")
    def commit(self, attempt: AttemptRecord, record_id: str) -> UserStats:
        params = {f"p_{k}": v for k, v in _attempt_payload(attempt).items()}
        params["p_record_id"] = record_id
        try:
            response = self.client.rpc("commit_quiz_result", params).execute()
        except Exception as e:
            self.telemetry.log_error(f"commit_quiz_result failed for {attempt.user_id}", e)
            raise
        # The function returns the profile row after the increment
        data = response.data
        row = data[0] if isinstance(data, list) else data
        return _to_profile(cast(dict[str, Any], row)).stats

    def list_for_user(self, user_id: str, limit: int) -> list[AttemptRecord]:
        response = (
            self.client.table(ATTEMPTS)
            .select("*")
            .eq("user_id", user_id)
            .order("completed_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [_to_attempt(row) for row in cast(list[dict[str, Any]], response.data)]


class SupabaseAuthProvider(IAuthProvider):
    def __init__(self, client: Client) -> None:
        self.client = client
        self.telemetry = Telemetry("SupabaseAuth")

    def current_user(self) -> UserIdentity | None:
        try:
            response = self.client.auth.get_user()
        except Exception as e:
            self.telemetry.log_error("Error getting current user", e)
            return None

        user = getattr(response, "user", None)
        if user is None:
            return None
        metadata = user.user_metadata or {}
        return UserIdentity(
            user_id=str(user.id),
            display_name=str(metadata.get("name") or ""),
            email=user.email or "",
        )
