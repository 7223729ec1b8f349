import streamlit as st

from rabbit_quiz.config import GameConfig
from rabbit_quiz.quiz.domain.models import QuizMode, UnitStatus
from rabbit_quiz.quiz.presentation.viewmodel import (
    QuizViewModel,
    RoadmapViewModel,
    UnlockPrompt,
)

_STATUS_ICON = {
    UnitStatus.LOCKED: "🔒",
    UnitStatus.UNLOCKED: "🕳️",
    UnitStatus.COMPLETED: "✅",
}


def render_roadmap(roadmap: RoadmapViewModel, quiz: QuizViewModel) -> None:
    st.title(f"🐇 {GameConfig.APP_TITLE}")
    st.metric("Carrots", f"{roadmap.currency} {GameConfig.CURRENCY_ICON}")
    if quiz.error:
        st.warning(quiz.error)

    pending = st.session_state.get("unlock_prompt")
    for tile in roadmap.tiles():
        marker = " 🐇" if tile.is_active else ""
        label = f"{_STATUS_ICON[tile.status]} {tile.label}{marker}"
        if st.button(label, key=f"unit_{tile.unit_id}", use_container_width=True):
            st.session_state.unlock_prompt = roadmap.click(tile.unit_id)
            st.rerun()

        if pending and pending.unit_id == tile.unit_id:
            _render_prompt(roadmap, quiz, pending)


def _render_prompt(
    roadmap: RoadmapViewModel, quiz: QuizViewModel, prompt: UnlockPrompt
) -> None:
    if prompt.kind == "locked":
        # In-place tooltip, never a page-level error
        st.caption(f"🔒 {prompt.message}")
        return

    if prompt.kind == "confirm":
        name = "the Ultimate quiz" if GameConfig.is_ultimate(prompt.unit_id) else f"week {prompt.unit_id}"
        st.info(f"Unlock {name}? This will cost {prompt.cost} {GameConfig.CURRENCY_ICON}")
        col_a, col_b = st.columns(2)
        if col_a.button("Cancel", key=f"cancel_{prompt.unit_id}"):
            st.session_state.unlock_prompt = None
            st.rerun()
        if col_b.button("Unlock", type="primary", key=f"unlock_{prompt.unit_id}"):
            message = roadmap.confirm_unlock(prompt.unit_id)
            if message:
                st.warning(message)
            else:
                st.session_state.unlock_prompt = None
                st.rerun()
        return

    cols = st.columns(len(QuizMode))
    for col, mode in zip(cols, QuizMode, strict=True):
        if col.button(mode.value.title(), key=f"mode_{prompt.unit_id}_{mode.value}"):
            st.session_state.unlock_prompt = None
            if quiz.start(prompt.unit_id, mode):
                st.session_state.screen = "quiz"
            st.rerun()
