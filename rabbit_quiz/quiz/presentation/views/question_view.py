import streamlit as st

from rabbit_quiz.quiz.domain.models import QuizMode
from rabbit_quiz.quiz.presentation.viewmodel import QuizViewModel


def render_quiz_screen(vm: QuizViewModel) -> None:
    """Active question, or the end-of-session summary once the session is gone."""
    if vm.error:
        st.warning(vm.error)

    session = vm.session
    if session is None:
        _render_summary(vm)
        return

    question = session.current_question
    if question is None:
        st.info("No questions available for this unit.")
        if st.button("Back"):
            vm.close()
            st.session_state.screen = "roadmap"
            st.rerun()
        return

    st.progress(session.progress)
    if question.is_multi_answer:
        st.caption("Multiple Choice")
    # st.markdown renders $...$ LaTeX in prompts
    st.markdown(question.prompt)

    learn = session.mode is QuizMode.LEARN
    for option in question.options:
        mark = ""
        if learn or session.is_confirmed:
            mark = "✅ " if session.is_option_correct(option.label) else ""
        if option.label in session.selected:
            mark += "👉 "
        disabled = learn or session.is_confirmed
        if st.button(
            f"{mark}{option.text}",
            key=f"opt_{session.current_index}_{option.label}",
            disabled=disabled,
            use_container_width=True,
        ):
            vm.select(option.label)
            st.rerun()

    if question.solution and (learn or session.is_confirmed):
        st.info(question.solution)

    if not learn and not session.is_confirmed:
        if st.button("Confirm Answer", type="primary", disabled=not session.selected):
            vm.confirm()
            st.rerun()
        return

    if session.is_confirmed:
        if session.last_answer_correct:
            st.success("✓ Correct!")
        else:
            st.error("✗ Incorrect")

    label = "Finish Quiz" if session.is_last_question else "Next Question"
    if st.button(label, type="primary"):
        with st.spinner("Saving Results..."):
            vm.next()
        if vm.session is None and vm.outcome is not None and vm.outcome.end.result is None:
            st.session_state.screen = "roadmap"
        st.rerun()


def _render_summary(vm: QuizViewModel) -> None:
    outcome = vm.outcome
    if outcome and outcome.end.result:
        result = outcome.end.result
        st.title("🏁 Quiz Complete")
        col1, col2, col3 = st.columns(3)
        col1.metric("Score", f"{result.correct_count} / {result.total_questions}")
        col2.metric("Accuracy", f"{int(result.score_percentage)}%")
        col3.metric("Time", f"{result.elapsed_seconds}s")
        if outcome.stats:
            st.caption(f"Lifetime average: {outcome.stats.average_score:.2f}%")

    if st.button("🔄 Back to Roadmap"):
        st.session_state.screen = "roadmap"
        st.rerun()
