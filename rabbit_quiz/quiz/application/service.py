import random
import time
from collections.abc import Callable
from dataclasses import dataclass

from rabbit_quiz.quiz.application.progress_tracker import ProgressTracker
from rabbit_quiz.quiz.application.question_repository import QuestionRepository
from rabbit_quiz.quiz.application.result_aggregator import ResultAggregator
from rabbit_quiz.quiz.domain.evaluator import QuizSessionEvaluator, SessionEnd
from rabbit_quiz.quiz.domain.models import QuizMode, UnitStatus, UserStats
from rabbit_quiz.shared.telemetry import Telemetry, measure_time


@dataclass(frozen=True)
class SessionOutcome:
    end: SessionEnd
    stats: UserStats | None = None  # None: learn mode or anonymous player
    unit_completed: bool = False


class QuizService:
    """
    Wires a quiz session to the rest of the game.

    Ordering on the last question of a scored session: commit the result
    first, complete the unit only once the commit went through. A failed
    commit raises ResultCommitError and leaves the unit uncompleted.
    """

    def __init__(
        self,
        questions: QuestionRepository,
        progress: ProgressTracker,
        aggregator: ResultAggregator,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.questions = questions
        self.progress = progress
        self.aggregator = aggregator
        self.rng = rng
        self.clock = clock
        self.telemetry = Telemetry("QuizService")

    @measure_time("start_session")
    def start_session(self, unit_id: int, mode: QuizMode) -> QuizSessionEvaluator | None:
        """Returns None when the unit is still locked for this player."""
        if self.progress.status(unit_id) is UnitStatus.LOCKED:
            self.telemetry.log_info("Session refused, unit locked", unit_id=unit_id)
            return None

        session = QuizSessionEvaluator.for_unit(
            unit_id, QuizMode(mode), self.questions, rng=self.rng, clock=self.clock
        )
        if not session.questions:
            self.telemetry.log_info("No questions available", unit_id=unit_id)
        return session

    def advance(self, session: QuizSessionEvaluator) -> SessionOutcome | None:
        end = session.advance()
        if end is None:
            return None
        return self.finalize(end)

    @measure_time("finalize_session")
    def finalize(self, end: SessionEnd) -> SessionOutcome:
        if end.result is None:
            return SessionOutcome(end=end)

        stats = None
        user = self.progress.user
        if user is not None:
            stats = self.aggregator.commit(end.result, user)
        else:
            self.telemetry.log_info(
                "Anonymous session, result not recorded", unit_id=end.unit_id
            )

        completed = self.progress.complete(end.unit_id)
        self.progress.flush()
        return SessionOutcome(end=end, stats=stats, unit_completed=completed)
