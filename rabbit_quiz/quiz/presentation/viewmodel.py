from dataclasses import dataclass

from rabbit_quiz.config import GameConfig
from rabbit_quiz.quiz.application.progress_tracker import ProgressTracker
from rabbit_quiz.quiz.application.service import QuizService, SessionOutcome
from rabbit_quiz.quiz.domain.errors import DataIntegrityError, ResultCommitError
from rabbit_quiz.quiz.domain.evaluator import QuizSessionEvaluator
from rabbit_quiz.quiz.domain.models import QuizMode, UnitStatus
from rabbit_quiz.quiz.domain.progression import UnlockOutcome
from rabbit_quiz.quiz.presentation.state_provider import IStateProvider
from rabbit_quiz.shared.telemetry import Telemetry


@dataclass(frozen=True)
class UnitTile:
    unit_id: int
    label: str
    status: UnitStatus
    is_active: bool


@dataclass(frozen=True)
class UnlockPrompt:
    """What the roadmap shows after a click on a unit."""

    kind: str  # 'open' | 'confirm' | 'locked'
    unit_id: int
    cost: int = 0
    message: str = ""
    target_unit: int | None = None


class RoadmapViewModel:
    def __init__(self, progress: ProgressTracker) -> None:
        self.progress = progress
        self.telemetry = Telemetry("RoadmapViewModel")

    @property
    def currency(self) -> int:
        return self.progress.state.currency

    def tiles(self) -> list[UnitTile]:
        units = [*GameConfig.regular_units(), GameConfig.ULTIMATE_UNIT]
        active = self.progress.state.active_unit
        return [
            UnitTile(
                unit_id=u,
                label="🏆 Ultimate" if GameConfig.is_ultimate(u) else f"Week {u}",
                status=self.progress.status(u),
                is_active=u == active,
            )
            for u in units
        ]

    def click(self, unit_id: int) -> UnlockPrompt:
        if self.progress.status(unit_id) is not UnitStatus.LOCKED:
            self.progress.set_active_unit(unit_id)
            return UnlockPrompt(kind="open", unit_id=unit_id)

        if self.progress.can_unlock(unit_id):
            return UnlockPrompt(
                kind="confirm", unit_id=unit_id, cost=self.progress.unlock_cost(unit_id)
            )

        target = self.progress.next_locked_unit()
        message = (
            f"Unlock week {target} first!" if target else "Unlock every week first!"
        )
        return UnlockPrompt(kind="locked", unit_id=unit_id, message=message, target_unit=target)

    def confirm_unlock(self, unit_id: int) -> str | None:
        """Returns a user-facing message when the unlock did not happen."""
        outcome = self.progress.unlock(unit_id)
        if outcome is UnlockOutcome.INSUFFICIENT_FUNDS:
            return f"Not enough carrots! {GameConfig.CURRENCY_ICON}"
        if outcome is UnlockOutcome.LOCKED:
            return self.click(unit_id).message
        return None


class QuizViewModel:
    SESSION_KEY = "quiz_session"
    OUTCOME_KEY = "quiz_outcome"
    ERROR_KEY = "quiz_error"

    def __init__(self, service: QuizService, state_provider: IStateProvider) -> None:
        self.service = service
        self.state = state_provider
        self.telemetry = Telemetry("QuizViewModel")

    @property
    def session(self) -> QuizSessionEvaluator | None:
        return self.state.get(self.SESSION_KEY)

    @property
    def outcome(self) -> SessionOutcome | None:
        return self.state.get(self.OUTCOME_KEY)

    @property
    def error(self) -> str | None:
        return self.state.get(self.ERROR_KEY)

    def start(self, unit_id: int, mode: QuizMode) -> bool:
        mode = QuizMode(mode)
        Telemetry.start_trace()
        self.telemetry.log_info("Action: Start Quiz", unit_id=unit_id, mode=mode.value)
        self.state.pop(self.OUTCOME_KEY)
        self.state.pop(self.ERROR_KEY)

        try:
            session = self.service.start_session(unit_id, mode)
        except DataIntegrityError as e:
            self.telemetry.log_error("Unit has unscorable questions", e, unit_id=unit_id)
            self.state.set(
                self.ERROR_KEY, "This quiz contains a broken question and cannot be started."
            )
            return False
        if session is None:
            return False
        self.state.set(self.SESSION_KEY, session)
        return True

    def select(self, letter: str) -> None:
        if self.session:
            self.session.select_option(letter)

    def confirm(self) -> bool | None:
        return self.session.confirm() if self.session else None

    def next(self) -> None:
        session = self.session
        if session is None:
            return
        try:
            outcome = self.service.advance(session)
        except ResultCommitError as e:
            # The player may still leave; the result just is not counted.
            self.telemetry.log_error("Result not saved", e)
            self.state.set(self.ERROR_KEY, "Your result could not be saved.")
            self.state.pop(self.SESSION_KEY)
            return
        if outcome is not None:
            self.state.set(self.OUTCOME_KEY, outcome)
            self.state.pop(self.SESSION_KEY)

    def close(self) -> None:
        self.state.pop(self.SESSION_KEY)
