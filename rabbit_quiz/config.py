import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Final


class GameConfig:
    # --- App Identity ---
    APP_TITLE = "Rabbit Quiz"
    CURRENCY_ICON = "🥕"

    # --- Roadmap ---
    FIRST_UNIT: Final[int] = 1
    MAX_REGULAR_UNIT: Final[int] = 12
    ULTIMATE_UNIT: Final[int] = 13

    # --- Economy ---
    INITIAL_CURRENCY: Final[int] = 12
    REGULAR_UNLOCK_COST: Final[int] = 1
    ULTIMATE_UNLOCK_COST: Final[int] = 5
    PROMO_DURATION: Final[timedelta] = timedelta(hours=5)

    # --- Persistence ---
    SAVE_DEBOUNCE_SECONDS: Final[float] = 0.5
    LOCAL_STATE_KEY: Final[str] = "rabbitQuizState"

    # --- Results ---
    LEADERBOARD_LIMIT: Final[int] = 100
    HISTORY_LIMIT: Final[int] = 10

    @classmethod
    def regular_units(cls) -> list[int]:
        return list(range(cls.FIRST_UNIT, cls.MAX_REGULAR_UNIT + 1))

    @classmethod
    def is_ultimate(cls, unit_id: int) -> bool:
        return unit_id == cls.ULTIMATE_UNIT


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class BackendConfig:
    """
    Infrastructure settings, read from the environment.
    Empty Supabase credentials switch the app to the local SQLite backend.
    """

    supabase_url: str = ""
    supabase_key: str = ""
    questions_url: str = ""
    questions_file: str = "data/questions.json"
    db_path: str = "data/rabbit_quiz.db"
    local_state_file: str = "data/local_state.json"
    use_sqlite: bool = True

    @classmethod
    def from_env(cls) -> "BackendConfig":
        url = os.getenv("SUPABASE_URL", "")
        key = os.getenv("SUPABASE_KEY", "")
        return cls(
            supabase_url=url,
            supabase_key=key,
            questions_url=os.getenv("QUESTIONS_URL", ""),
            questions_file=os.getenv("QUESTIONS_FILE", cls.questions_file),
            db_path=os.getenv("RABBIT_QUIZ_DB", cls.db_path),
            local_state_file=os.getenv("LOCAL_STATE_FILE", cls.local_state_file),
            use_sqlite=_env_flag("USE_SQLITE", not (url and key)),
        )
