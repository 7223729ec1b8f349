import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from rabbit_quiz.config import GameConfig
from rabbit_quiz.fsm import SessionAction, SessionPhase, SessionStateMachine
from rabbit_quiz.quiz.domain.errors import DataIntegrityError
from rabbit_quiz.quiz.domain.models import Question, QuizMode, SessionResult
from rabbit_quiz.shared.telemetry import SESSIONS_FINISHED_TOTAL, Telemetry


class QuestionLookup(Protocol):
    def questions_for(self, unit_id: int) -> list[Question]: ...

    def all_questions(self) -> list[Question]: ...


@dataclass(frozen=True)
class SessionEnd:
    """Emitted once, when advancing past the last question. Learn mode has no result."""

    unit_id: int
    mode: QuizMode
    result: SessionResult | None


def shuffled_copy(questions: list[Question], rng: random.Random) -> list[Question]:
    """Uniform permutation of the questions, and independently of each one's options."""
    order = list(questions)
    rng.shuffle(order)
    result = []
    for question in order:
        options = list(question.options)
        rng.shuffle(options)
        result.append(question.model_copy(update={"options": options}))
    return result


class QuizSessionEvaluator:
    """
    Runs one quiz session: option selection, confirmation, scoring.

    Phases per question are IN_PROGRESS -> CONFIRMED -> next question, and
    FINISHED after the last one. Learn mode skips confirmation entirely and
    is never scored.
    """

    def __init__(
        self,
        unit_id: int,
        mode: QuizMode,
        questions: list[Question],
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        ultimate_unit: int = GameConfig.ULTIMATE_UNIT,
    ) -> None:
        self.telemetry = Telemetry("QuizSessionEvaluator")
        self.unit_id = unit_id
        self.mode = QuizMode(mode)
        self.clock = clock
        self._ensure_scorable(questions)

        if self.mode is QuizMode.SHUFFLE or unit_id == ultimate_unit:
            questions = shuffled_copy(questions, rng or random.Random())
        self.questions: list[Question] = list(questions)

        self.current_index = 0
        self.correct_count = 0
        self.incorrect_count = 0
        self._selected: list[str] = []
        self._last_correct: bool | None = None
        self._started_at = clock()
        self._finished_at: float | None = None

        initial = SessionPhase.IN_PROGRESS if self.questions else SessionPhase.FINISHED
        self.fsm = SessionStateMachine(initial, learn_mode=self.mode is QuizMode.LEARN)

        self.telemetry.log_info(
            "Session started",
            unit_id=unit_id,
            mode=self.mode.value,
            questions=len(self.questions),
        )

    @classmethod
    def for_unit(
        cls,
        unit_id: int,
        mode: QuizMode,
        repository: QuestionLookup,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> "QuizSessionEvaluator":
        if GameConfig.is_ultimate(unit_id):
            questions = repository.all_questions()
        else:
            questions = repository.questions_for(unit_id)
        return cls(unit_id, mode, questions, rng=rng, clock=clock)

    @staticmethod
    def _ensure_scorable(questions: list[Question]) -> None:
        for index, question in enumerate(questions):
            missing = question.unmatched_answer_letters()
            if missing:
                raise DataIntegrityError(index, question.prompt, missing)

    # --- Properties ---

    @property
    def phase(self) -> SessionPhase:
        return self.fsm.current_state

    @property
    def is_finished(self) -> bool:
        return self.phase is SessionPhase.FINISHED

    @property
    def is_confirmed(self) -> bool:
        return self.phase is SessionPhase.CONFIRMED

    @property
    def current_question(self) -> Question | None:
        if self.is_finished or not self.questions:
            return None
        return self.questions[self.current_index]

    @property
    def selected(self) -> frozenset[str]:
        return frozenset(self._selected)

    @property
    def last_answer_correct(self) -> bool | None:
        """Correctness of the confirmed answer; None before confirmation."""
        return self._last_correct if self.is_confirmed else None

    @property
    def progress(self) -> float:
        if not self.questions:
            return 1.0
        return min(self.current_index + 1, len(self.questions)) / len(self.questions)

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= len(self.questions) - 1

    @property
    def elapsed_seconds(self) -> int:
        end = self._finished_at if self._finished_at is not None else self.clock()
        return max(0, int(end - self._started_at))

    # --- Actions ---

    def is_option_correct(self, letter: str) -> bool:
        question = self.current_question
        return question is not None and letter.lower() in question.answer_letters

    def select_option(self, letter: str) -> None:
        question = self.current_question
        if self.mode is QuizMode.LEARN or question is None:
            return
        if self.phase is not SessionPhase.IN_PROGRESS:
            return

        letter = letter.lower()
        if question.is_multi_answer:
            if letter in self._selected:
                self._selected.remove(letter)
            else:
                self._selected.append(letter)
        else:
            self._selected = [letter]

    def confirm(self) -> bool | None:
        """Locks the selection and scores it. Returns None if nothing was scored."""
        question = self.current_question
        if question is None or not self._selected:
            return None
        if not self.fsm.transition(SessionAction.CONFIRM):
            return None

        is_correct = set(self._selected) == set(question.answer_letters)
        if is_correct:
            self.correct_count += 1
        else:
            self.incorrect_count += 1
        self._last_correct = is_correct
        return is_correct

    def advance(self) -> SessionEnd | None:
        """Moves to the next question; past the last one, finishes the session."""
        if self.is_finished:
            return None

        if not self.is_last_question:
            if self.fsm.transition(SessionAction.NEXT_QUESTION):
                self.current_index += 1
                self._selected = []
                self._last_correct = None
            return None

        if not self.fsm.transition(SessionAction.FINISH):
            return None
        return self._finalize()

    def _finalize(self) -> SessionEnd:
        self._finished_at = self.clock()
        SESSIONS_FINISHED_TOTAL.labels(mode=self.mode.value).inc()

        result = None
        if self.mode.is_scored:
            result = SessionResult(
                unit_id=self.unit_id,
                mode=self.mode,
                total_questions=len(self.questions),
                correct_count=self.correct_count,
                incorrect_count=self.incorrect_count,
                elapsed_seconds=self.elapsed_seconds,
            )

        self.telemetry.log_info(
            "Session finished",
            unit_id=self.unit_id,
            mode=self.mode.value,
            correct=self.correct_count,
            incorrect=self.incorrect_count,
            scored=result is not None,
        )
        return SessionEnd(unit_id=self.unit_id, mode=self.mode, result=result)
