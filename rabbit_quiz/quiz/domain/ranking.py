from rabbit_quiz.quiz.domain.models import LeaderboardEntry, ProfileRecord


class Ranking:
    """
    Pure domain logic for leaderboard ordering.
    Descending by total score; ties keep the order the profiles came in.
    """

    @staticmethod
    def order(profiles: list[ProfileRecord]) -> list[ProfileRecord]:
        # sorted() is stable, so equal scores keep their first-seen order
        return sorted(profiles, key=lambda p: p.stats.total_score, reverse=True)

    @staticmethod
    def rank_of(profiles: list[ProfileRecord], user_id: str) -> int | None:
        for position, profile in enumerate(Ranking.order(profiles), start=1):
            if profile.user_id == user_id:
                return position
        return None

    @staticmethod
    def top(profiles: list[ProfileRecord], limit: int) -> list[LeaderboardEntry]:
        if limit <= 0:
            return []
        return [
            LeaderboardEntry(
                user_id=p.user_id,
                display_name=p.display_name,
                stats=p.stats,
                rank=position,
            )
            for position, p in enumerate(Ranking.order(profiles)[:limit], start=1)
        ]
