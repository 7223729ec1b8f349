# ==============================================================================
# ARCHITECTURE: UNIT TEST (PRESENTATION)
# ------------------------------------------------------------------------------
# GOAL: Roadmap click/unlock flow and quiz screen state handling.
# CONSTRAINTS: real application layer on in-memory SQLite, manual timers.
# ==============================================================================
import random
from unittest.mock import Mock

import pytest

from rabbit_quiz.quiz.adapters.local_store import StateProviderStore, StaticAuthProvider
from rabbit_quiz.quiz.application.progress_tracker import ProgressTracker
from rabbit_quiz.quiz.application.question_repository import QuestionRepository
from rabbit_quiz.quiz.application.result_aggregator import ResultAggregator
from rabbit_quiz.quiz.application.service import QuizService
from rabbit_quiz.quiz.domain.errors import ResultCommitError
from rabbit_quiz.quiz.domain.models import ProgressionState, QuizMode, UnitStatus, UserIdentity
from rabbit_quiz.quiz.presentation.state_provider import InMemoryStateProvider
from rabbit_quiz.quiz.presentation.viewmodel import QuizViewModel, RoadmapViewModel
from tests.helpers import StaticSource


@pytest.fixture
def progress(sqlite_repo, manual_timers):
    tracker = ProgressTracker(
        StaticAuthProvider(UserIdentity(user_id="u1", display_name="Bunny")),
        sqlite_repo,
        StateProviderStore(InMemoryStateProvider()),
        timer_factory=manual_timers,
    )
    tracker.load()
    return tracker


@pytest.fixture
def service(static_source, progress, sqlite_repo):
    return QuizService(
        QuestionRepository(static_source),
        progress,
        ResultAggregator(sqlite_repo, sqlite_repo),
        rng=random.Random(0),
    )


class TestRoadmapViewModel:
    def test_tiles_cover_roadmap(self, progress):
        tiles = RoadmapViewModel(progress).tiles()

        assert len(tiles) == 13
        assert tiles[0].label == "Week 1"
        assert tiles[0].status is UnitStatus.UNLOCKED
        assert tiles[0].is_active
        assert tiles[-1].label == "🏆 Ultimate"
        assert tiles[-1].status is UnitStatus.LOCKED

    def test_click_unlocked_unit_opens_it(self, progress):
        prompt = RoadmapViewModel(progress).click(1)
        assert prompt.kind == "open"

    def test_click_next_unit_asks_for_confirmation(self, progress):
        prompt = RoadmapViewModel(progress).click(2)

        assert prompt.kind == "confirm"
        assert prompt.cost == 1

    def test_click_far_unit_points_at_next_locked(self, progress):
        prompt = RoadmapViewModel(progress).click(5)

        assert prompt.kind == "locked"
        assert prompt.target_unit == 2
        assert prompt.message == "Unlock week 2 first!"

    def test_confirm_unlock_spends_carrot(self, progress):
        vm = RoadmapViewModel(progress)

        assert vm.confirm_unlock(2) is None
        assert vm.currency == 11
        assert progress.status(2) is UnitStatus.UNLOCKED
        assert progress.state.active_unit == 2

    def test_confirm_unlock_without_funds(self, progress):
        progress._replace_state(ProgressionState(currency=0))

        message = RoadmapViewModel(progress).confirm_unlock(2)

        assert message == "Not enough carrots! 🥕"
        assert progress.status(2) is UnitStatus.LOCKED


class TestQuizViewModel:
    def test_locked_unit_does_not_start(self, service):
        vm = QuizViewModel(service, InMemoryStateProvider())

        assert vm.start(2, QuizMode.PRACTICE) is False
        assert vm.session is None

    def test_full_session_records_outcome(self, service, sqlite_repo):
        vm = QuizViewModel(service, InMemoryStateProvider())
        assert vm.start(1, QuizMode.PRACTICE) is True

        vm.select("b")
        assert vm.confirm() is True
        vm.next()
        vm.select("a")
        vm.select("c")
        assert vm.confirm() is True
        vm.next()

        assert vm.session is None
        assert vm.outcome.end.result.correct_count == 2
        assert vm.outcome.unit_completed is True
        assert sqlite_repo.get_or_create("u1", "Bunny").stats.total_quizzes_taken == 1

    def test_commit_failure_surfaces_error(self, progress):
        service = Mock(spec=QuizService)
        service.start_session.return_value = Mock()
        service.advance.side_effect = ResultCommitError("u1", 1, "offline")
        vm = QuizViewModel(service, InMemoryStateProvider())
        vm.start(1, QuizMode.PRACTICE)

        vm.next()

        assert vm.error == "Your result could not be saved."
        assert vm.session is None
        assert vm.outcome is None

    def test_start_clears_previous_outcome(self, service):
        state = InMemoryStateProvider()
        state.set(QuizViewModel.OUTCOME_KEY, "old")
        state.set(QuizViewModel.ERROR_KEY, "old")

        QuizViewModel(service, state).start(1, QuizMode.LEARN)

        assert state.get(QuizViewModel.OUTCOME_KEY) is None
        assert state.get(QuizViewModel.ERROR_KEY) is None

    def test_close_drops_session(self, service):
        vm = QuizViewModel(service, InMemoryStateProvider())
        vm.start(1, QuizMode.LEARN)

        vm.close()

        assert vm.session is None

    def test_unscorable_catalogue_reported_not_raised(self, progress, sqlite_repo):
        broken = StaticSource(
            {
                "weeks": [
                    {
                        "week_number": 1,
                        "questions": [
                            {"question": "q", "options": ["a) x", "b) y"], "answer": "c"}
                        ],
                    }
                ]
            }
        )
        service = QuizService(
            QuestionRepository(broken), progress, ResultAggregator(sqlite_repo, sqlite_repo)
        )
        vm = QuizViewModel(service, InMemoryStateProvider())

        assert vm.start(1, QuizMode.PRACTICE) is False

        assert vm.session is None
        assert vm.error == "This quiz contains a broken question and cannot be started."

    def test_start_logs_mode_value(self, service, caplog):
        vm = QuizViewModel(service, InMemoryStateProvider())

        with caplog.at_level("INFO"):
            vm.start(1, QuizMode.PRACTICE)

        assert "'mode': 'practice'" in caplog.text
        assert "QuizMode." not in caplog.text
