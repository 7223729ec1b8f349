import json

import pytest

from rabbit_quiz.config import BackendConfig, GameConfig
from rabbit_quiz.quiz.adapters.question_source import FileQuestionSource, HttpQuestionSource
from rabbit_quiz.quiz.application.context import build_context, build_question_source
from rabbit_quiz.quiz.domain.models import QuizMode, UnitStatus, UserIdentity
from rabbit_quiz.quiz.presentation.state_provider import InMemoryStateProvider


@pytest.fixture
def config(tmp_path, catalogue_document):
    questions = tmp_path / "questions.json"
    questions.write_text(json.dumps(catalogue_document), encoding="utf-8")
    return BackendConfig(
        questions_file=str(questions),
        db_path=str(tmp_path / "quiz.db"),
        local_state_file=str(tmp_path / "local_state.json"),
        use_sqlite=True,
    )


def test_question_source_selection(config):
    assert isinstance(build_question_source(config), FileQuestionSource)

    config.questions_url = "https://example.com/questions.json"
    assert isinstance(build_question_source(config), HttpQuestionSource)


def test_signed_in_player_progress_survives_restart(config):
    """Unlock, finish a unit, close; a fresh context sees the same state."""
    player = UserIdentity(user_id="u1", display_name="Bunny")
    context = build_context(config, player)
    context.progress.load()

    context.progress.unlock(2)
    session = context.service.start_session(2, QuizMode.PRACTICE)
    session.select_option("a")
    session.confirm()
    outcome = context.service.advance(session)
    context.close()

    assert outcome.stats.total_correct == 1
    assert outcome.unit_completed is True

    reopened = build_context(config, player)
    state = reopened.progress.load()
    try:
        assert state.unlocked_units == [1, 2]
        assert state.completed_units == [2]
        assert state.currency == GameConfig.INITIAL_CURRENCY - 1
        assert reopened.aggregator.rank("u1") == 1
        assert [a.result.unit_id for a in reopened.aggregator.history("u1")] == [2]
    finally:
        reopened.close()


def test_anonymous_player_saves_to_local_file(config, tmp_path):
    context = build_context(config)
    context.progress.load()

    context.progress.unlock(2)
    context.close()

    saved = json.loads((tmp_path / "local_state.json").read_text(encoding="utf-8"))
    assert saved[GameConfig.LOCAL_STATE_KEY]["unlocked_units"] == [1, 2]

    reopened = build_context(config)
    try:
        assert reopened.progress.load().currency == GameConfig.INITIAL_CURRENCY - 1
        assert reopened.progress.status(2) is UnitStatus.UNLOCKED
    finally:
        reopened.close()


def test_ui_session_state_holds_anonymous_progress(config, tmp_path):
    provider = InMemoryStateProvider()
    context = build_context(config, state_provider=provider)
    context.progress.load()

    context.progress.unlock(2)
    context.close()

    saved = provider.get("local:" + GameConfig.LOCAL_STATE_KEY)
    assert saved["unlocked_units"] == [1, 2]
    assert not (tmp_path / "local_state.json").exists()

    reopened = build_context(config, state_provider=provider)
    try:
        assert reopened.progress.load().currency == GameConfig.INITIAL_CURRENCY - 1
    finally:
        reopened.close()
