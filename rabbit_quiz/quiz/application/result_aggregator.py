from rabbit_quiz.config import GameConfig
from rabbit_quiz.quiz.domain.errors import ResultCommitError
from rabbit_quiz.quiz.domain.models import (
    AttemptRecord,
    LeaderboardEntry,
    SessionResult,
    UserIdentity,
    UserStats,
)
from rabbit_quiz.quiz.domain.ports import IAttemptStore, IProfileStore
from rabbit_quiz.quiz.domain.ranking import Ranking
from rabbit_quiz.shared.telemetry import Telemetry, measure_time


class ResultAggregator:
    """
    Folds finished sessions into cumulative user stats and answers
    leaderboard queries. The stores own the data; this class owns the rules.
    """

    def __init__(self, profiles: IProfileStore, attempts: IAttemptStore) -> None:
        self.profiles = profiles
        self.attempts = attempts
        self.telemetry = Telemetry("ResultAggregator")

    @measure_time("commit_result")
    def commit(self, result: SessionResult, identity: UserIdentity) -> UserStats:
        """
        Records the attempt and folds it into the stored stats in one step.
        Raises ResultCommitError if either cannot be persisted.
        """
        if not result.mode.is_scored:
            raise ValueError("Learn sessions are never scored")

        try:
            profile = self.profiles.get_or_create(
                identity.user_id, identity.username, identity.email
            )
            attempt = AttemptRecord(
                user_id=identity.user_id,
                display_name=identity.username,
                result=result,
            )
            updated = self.attempts.commit(attempt, profile.record_id)
        except Exception as e:
            raise ResultCommitError(identity.user_id, result.unit_id, str(e)) from e

        self.telemetry.log_info(
            "Result committed",
            user_id=identity.user_id,
            unit_id=result.unit_id,
            total_score=updated.total_score,
            average=round(updated.average_score, 2),
        )
        return updated

    def rank(self, user_id: str) -> int | None:
        return Ranking.rank_of(self.profiles.list_profiles(), user_id)

    def leaderboard(self, limit: int = GameConfig.LEADERBOARD_LIMIT) -> list[LeaderboardEntry]:
        return Ranking.top(self.profiles.list_profiles(), limit)

    def history(self, user_id: str, limit: int = GameConfig.HISTORY_LIMIT) -> list[AttemptRecord]:
        return self.attempts.list_for_user(user_id, limit)
