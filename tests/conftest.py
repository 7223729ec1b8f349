import pytest
import streamlit as st

from rabbit_quiz.quiz.adapters.db_manager import DatabaseManager
from rabbit_quiz.quiz.adapters.sqlite_repository import SQLiteGameRepository
from tests.helpers import ManualTimer, StaticSource


class MockSessionState(dict):
    """
    Mock for st.session_state that behaves like both a dict and an object.
    """

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError as err:
            raise AttributeError(
                f"'MockSessionState' object has no attribute '{name}'"
            ) from err

    def __setattr__(self, name, value):
        self[name] = value

    def __delattr__(self, name):
        try:
            del self[name]
        except KeyError as err:
            raise AttributeError(
                f"'MockSessionState' object has no attribute '{name}'"
            ) from err


@pytest.fixture(autouse=True)
def mock_streamlit_session():
    """Every test gets a fresh st.session_state."""
    original_session_state = getattr(st, "session_state", None)
    st.session_state = MockSessionState()

    yield st.session_state

    st.session_state.clear()
    if original_session_state is not None:
        st.session_state = original_session_state


@pytest.fixture
def manual_timers():
    ManualTimer.created = []
    return ManualTimer


@pytest.fixture
def catalogue_document():
    return {
        "weeks": [
            {
                "week_number": 1,
                "questions": [
                    {
                        "question": "Q1.1",
                        "options": ["a) one", "b) two", "c) three"],
                        "answer": "b",
                        "solution": "Because.",
                    },
                    {
                        "question": "Q1.2",
                        "options": ["a) one", "b) two", "c) three"],
                        "answer": "a, c",
                    },
                ],
            },
            {
                "week_number": 2,
                "questions": [
                    {
                        "question": "Q2.1",
                        "options": ["A) yes", "B) no"],
                        "answer": "A",
                    }
                ],
            },
        ]
    }


@pytest.fixture
def static_source(catalogue_document):
    return StaticSource(catalogue_document)


@pytest.fixture
def db_manager():
    db = DatabaseManager(":memory:")
    yield db
    db.close()


@pytest.fixture
def sqlite_repo(db_manager):
    return SQLiteGameRepository(db_manager)
