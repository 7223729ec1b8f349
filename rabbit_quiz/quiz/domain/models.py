from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rabbit_quiz.config import GameConfig


# --- Enums ---
class QuizMode(str, Enum):
    LEARN = "learn"
    PRACTICE = "practice"
    SHUFFLE = "shuffle"

    @property
    def is_scored(self) -> bool:
        return self is not QuizMode.LEARN


class UnitStatus(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    COMPLETED = "completed"


def parse_answer_letters(answer: str) -> frozenset[str]:
    """'A, c' -> {'a', 'c'}. Raises ValueError on anything but single letters."""
    letters = [part.strip().lower() for part in answer.split(",")]
    if not letters or any(len(x) != 1 or not x.isalpha() for x in letters):
        raise ValueError(f"Unparseable answer specification: {answer!r}")
    return frozenset(letters)


# --- Catalogue Entities ---
class Option(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    text: str

    @field_validator("label")
    @classmethod
    def _single_letter(cls, value: str) -> str:
        if len(value) != 1 or not value.isalpha():
            raise ValueError(f"Option label must be one letter, got {value!r}")
        return value.lower()

    @classmethod
    def from_text(cls, text: str) -> "Option":
        """Options are stored as 'a) ...'; the first character is the label."""
        stripped = text.strip()
        if not stripped:
            raise ValueError("Empty option text")
        return cls(label=stripped[0], text=stripped)


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    options: list[Option] = Field(min_length=1)
    answer: str
    solution: str | None = None

    @field_validator("answer")
    @classmethod
    def _parseable_answer(cls, value: str) -> str:
        parse_answer_letters(value)
        return value

    @property
    def answer_letters(self) -> frozenset[str]:
        return parse_answer_letters(self.answer)

    @property
    def is_multi_answer(self) -> bool:
        return len(self.answer_letters) > 1

    @property
    def option_labels(self) -> list[str]:
        return [o.label for o in self.options]

    def unmatched_answer_letters(self) -> set[str]:
        return set(self.answer_letters) - set(self.option_labels)

    @classmethod
    def from_document(cls, raw: dict[str, Any]) -> "Question":
        """Builds a Question from the catalogue's JSON shape."""
        options = raw.get("options")
        if not isinstance(options, list):
            raise ValueError("Question has no options list")
        return cls(
            prompt=str(raw["question"]),
            options=[Option.from_text(str(o)) for o in options],
            answer=str(raw["answer"]),
            solution=raw.get("solution"),
        )


class QuizUnit(BaseModel):
    model_config = ConfigDict(frozen=True)

    unit_id: int
    questions: list[Question] = []


# --- Progression ---
class ProgressionState(BaseModel):
    """
    Per-user roadmap state. Sets are kept as ordered, duplicate-free lists
    so they serialize the same way to SQLite, Supabase and local JSON.
    """

    currency: int = Field(default=GameConfig.INITIAL_CURRENCY, ge=0)
    unlocked_units: list[int] = Field(default_factory=lambda: [GameConfig.FIRST_UNIT])
    completed_units: list[int] = []
    active_unit: int = GameConfig.FIRST_UNIT
    promo_started_at: datetime | None = None

    @field_validator("unlocked_units", "completed_units")
    @classmethod
    def _unique(cls, value: list[int]) -> list[int]:
        return list(dict.fromkeys(value))


# --- Results ---
class SessionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    unit_id: int
    mode: QuizMode
    total_questions: int = Field(ge=0)
    correct_count: int = Field(ge=0)
    incorrect_count: int = Field(ge=0)
    elapsed_seconds: int = Field(default=0, ge=0)

    @property
    def score(self) -> int:
        return self.correct_count

    @property
    def score_percentage(self) -> float:
        if self.total_questions == 0:
            return 0.0
        return self.correct_count / self.total_questions * 100


class UserStats(BaseModel):
    total_quizzes_taken: int = 0
    total_questions_answered: int = 0
    total_correct: int = 0
    total_incorrect: int = 0
    total_score: int = 0
    average_score: float = 0.0

    def fold(self, result: SessionResult) -> "UserStats":
        """Returns the stats with one more finished session counted in."""
        answered = self.total_questions_answered + result.total_questions
        correct = self.total_correct + result.correct_count
        return UserStats(
            total_quizzes_taken=self.total_quizzes_taken + 1,
            total_questions_answered=answered,
            total_correct=correct,
            total_incorrect=self.total_incorrect + result.incorrect_count,
            total_score=self.total_score + result.score,
            average_score=(correct / answered * 100) if answered > 0 else 0.0,
        )


# --- Identities & Records ---
class UserIdentity(BaseModel):
    user_id: str
    display_name: str = ""
    email: str = ""

    @property
    def username(self) -> str:
        if self.display_name:
            return self.display_name
        return self.email.split("@")[0] if self.email else self.user_id


class ProfileRecord(BaseModel):
    record_id: str
    user_id: str
    display_name: str = ""
    email: str = ""
    progression: ProgressionState = Field(default_factory=ProgressionState)
    stats: UserStats = Field(default_factory=UserStats)


class AttemptRecord(BaseModel):
    attempt_id: str = ""
    user_id: str
    display_name: str = ""
    result: SessionResult
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LeaderboardEntry(BaseModel):
    user_id: str
    display_name: str
    stats: UserStats
    rank: int
