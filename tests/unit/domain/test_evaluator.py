# ==============================================================================
# ARCHITECTURE: UNIT TEST (CORE LOGIC)
# ------------------------------------------------------------------------------
# GOAL: Session scoring, mode rules, shuffle, integrity checks.
# CONSTRAINTS: no I/O; rng and clock are injected.
# ==============================================================================
import random

import pytest

from rabbit_quiz.config import GameConfig
from rabbit_quiz.fsm import SessionPhase
from rabbit_quiz.quiz.domain.errors import DataIntegrityError
from rabbit_quiz.quiz.domain.evaluator import QuizSessionEvaluator, shuffled_copy
from rabbit_quiz.quiz.domain.models import QuizMode
from tests.helpers import FakeClock, make_question


def answer_all(session, letters):
    end = None
    for picks in letters:
        for letter in picks:
            session.select_option(letter)
        session.confirm()
        end = session.advance()
    return end


class TestSingleAnswer:
    def test_selection_replaces_previous(self):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question("b")])

        session.select_option("a")
        session.select_option("B")

        assert session.selected == frozenset({"b"})

    def test_confirm_correct(self):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question("b")])
        session.select_option("b")

        assert session.confirm() is True
        assert session.is_confirmed
        assert session.last_answer_correct is True
        assert session.correct_count == 1

    def test_confirm_without_selection_is_noop(self):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question("b")])

        assert session.confirm() is None
        assert session.phase is SessionPhase.IN_PROGRESS
        assert session.correct_count == session.incorrect_count == 0

    def test_selection_frozen_after_confirm(self):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question("b")])
        session.select_option("a")
        session.confirm()
        session.select_option("b")

        assert session.selected == frozenset({"a"})

    def test_double_confirm_scores_once(self):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question("b")])
        session.select_option("a")
        session.confirm()

        assert session.confirm() is None
        assert session.incorrect_count == 1


class TestMultiAnswer:
    @pytest.mark.parametrize(
        "picks, expected",
        [
            ("a", False),
            ("abc", False),
            ("ac", True),
            ("ca", True),
        ],
    )
    def test_set_equality(self, picks, expected):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question("a,c")])
        for letter in picks:
            session.select_option(letter)

        assert session.confirm() is expected

    def test_selection_toggles(self):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question("a,c")])
        session.select_option("a")
        session.select_option("c")
        session.select_option("a")

        assert session.selected == frozenset({"c"})


class TestSessionFlow:
    def test_practice_result(self):
        questions = [make_question("b", prompt=f"Q{i}") for i in range(10)]
        clock = FakeClock()
        session = QuizSessionEvaluator(4, QuizMode.PRACTICE, questions, clock=clock)
        clock.advance(42.7)

        end = answer_all(session, ["b"] * 7 + ["a"] * 3)

        assert session.is_finished
        assert end.unit_id == 4
        assert end.result.correct_count == 7
        assert end.result.incorrect_count == 3
        assert end.result.total_questions == 10
        assert end.result.score_percentage == pytest.approx(70.0)
        assert end.result.elapsed_seconds == 42

    def test_order_preserved_in_practice(self):
        questions = [make_question(prompt=f"Q{i}") for i in range(5)]
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, questions)

        assert [q.prompt for q in session.questions] == [q.prompt for q in questions]

    def test_advance_requires_confirmation(self):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question(), make_question()])

        assert session.advance() is None
        assert session.current_index == 0

    def test_advance_resets_selection(self):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question(), make_question()])
        session.select_option("b")
        session.confirm()
        session.advance()

        assert session.current_index == 1
        assert session.selected == frozenset()
        assert session.last_answer_correct is None
        assert session.is_last_question

    def test_advance_after_finish_is_noop(self):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question()])
        answer_all(session, ["b"])

        assert session.advance() is None
        assert session.current_question is None

    def test_elapsed_frozen_at_finish(self):
        clock = FakeClock()
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question()], clock=clock)
        clock.advance(10)
        answer_all(session, ["b"])
        clock.advance(100)

        assert session.elapsed_seconds == 10

    def test_progress(self):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question(), make_question()])
        assert session.progress == pytest.approx(0.5)

    def test_is_option_correct(self):
        session = QuizSessionEvaluator(1, QuizMode.LEARN, [make_question("a,c")])

        assert session.is_option_correct("A") is True
        assert session.is_option_correct("b") is False


class TestLearnMode:
    def test_selection_ignored(self):
        session = QuizSessionEvaluator(1, QuizMode.LEARN, [make_question()])
        session.select_option("b")

        assert session.selected == frozenset()
        assert session.confirm() is None

    def test_advances_without_confirmation_and_has_no_result(self):
        session = QuizSessionEvaluator(2, QuizMode.LEARN, [make_question(), make_question()])

        assert session.advance() is None
        end = session.advance()

        assert session.is_finished
        assert end.unit_id == 2
        assert end.mode is QuizMode.LEARN
        assert end.result is None


class TestShuffle:
    def test_shuffle_mode_is_seeded_permutation(self):
        questions = [make_question(prompt=f"Q{i}") for i in range(8)]
        first = QuizSessionEvaluator(1, QuizMode.SHUFFLE, questions, rng=random.Random(7))
        second = QuizSessionEvaluator(1, QuizMode.SHUFFLE, questions, rng=random.Random(7))

        prompts = [q.prompt for q in first.questions]
        assert prompts == [q.prompt for q in second.questions]
        assert sorted(prompts) == sorted(q.prompt for q in questions)

    def test_shuffle_keeps_option_set_and_answer(self):
        question = make_question("b", labels="abcdef")
        (shuffled,) = shuffled_copy([question], random.Random(3))

        assert sorted(shuffled.option_labels) == list("abcdef")
        assert shuffled.answer_letters == frozenset({"b"})
        # the source question is untouched
        assert question.option_labels == list("abcdef")

    def test_ultimate_unit_always_shuffled(self):
        questions = [make_question(prompt=f"Q{i}") for i in range(20)]
        session = QuizSessionEvaluator(
            GameConfig.ULTIMATE_UNIT, QuizMode.PRACTICE, questions, rng=random.Random(1)
        )

        assert [q.prompt for q in session.questions] != [q.prompt for q in questions]

    def test_shuffle_result_is_scored(self):
        session = QuizSessionEvaluator(1, QuizMode.SHUFFLE, [make_question("b")])
        end = answer_all(session, ["b"])

        assert end.result.mode is QuizMode.SHUFFLE
        assert end.result.correct_count == 1


class TestEdgeCases:
    def test_empty_session_is_finished(self):
        session = QuizSessionEvaluator(1, QuizMode.PRACTICE, [])

        assert session.is_finished
        assert session.current_question is None
        assert session.advance() is None
        assert session.progress == 1.0

    def test_unmatched_answer_letter_raises(self):
        broken = make_question("a,e", labels="abcd", prompt="Broken")

        with pytest.raises(DataIntegrityError) as exc_info:
            QuizSessionEvaluator(1, QuizMode.PRACTICE, [make_question(), broken])

        assert exc_info.value.question_index == 1
        assert exc_info.value.missing == {"e"}


class TestForUnit:
    class Repo:
        def __init__(self):
            self.calls = []

        def questions_for(self, unit_id):
            self.calls.append(("unit", unit_id))
            return [make_question()]

        def all_questions(self):
            self.calls.append(("all", None))
            return [make_question(), make_question()]

    def test_regular_unit_uses_its_questions(self):
        repo = self.Repo()
        session = QuizSessionEvaluator.for_unit(3, QuizMode.PRACTICE, repo)

        assert repo.calls == [("unit", 3)]
        assert len(session.questions) == 1

    def test_ultimate_unit_uses_whole_catalogue(self):
        repo = self.Repo()
        session = QuizSessionEvaluator.for_unit(GameConfig.ULTIMATE_UNIT, QuizMode.PRACTICE, repo)

        assert repo.calls == [("all", None)]
        assert len(session.questions) == 2
