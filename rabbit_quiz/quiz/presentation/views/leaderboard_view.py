import streamlit as st

from rabbit_quiz.quiz.application.result_aggregator import ResultAggregator
from rabbit_quiz.quiz.domain.models import UserIdentity


def _rank_icon(rank: int) -> str:
    return {1: "👑", 2: "🥈", 3: "🥉"}.get(rank, str(rank))


def render_leaderboard(aggregator: ResultAggregator, user: UserIdentity | None) -> None:
    st.title("🏆 Leaderboard")

    if user:
        rank = aggregator.rank(user.user_id)
        st.metric("Your Rank", f"#{rank}" if rank else "—")

    entries = aggregator.leaderboard()
    if not entries:
        st.info("No scores yet. Finish a practice quiz to get on the board!")
        return

    for entry in entries:
        col1, col2, col3 = st.columns([1, 4, 2])
        col1.markdown(f"**{_rank_icon(entry.rank)}**")
        you = " (you)" if user and entry.user_id == user.user_id else ""
        col2.markdown(f"{entry.display_name or entry.user_id}{you}")
        col3.markdown(
            f"{entry.stats.total_score} pts · {entry.stats.average_score:.0f}%"
        )
