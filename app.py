import logging
import os

import streamlit as st

# --- OTel & Observability Imports ---
from opentelemetry import trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

# --- Prometheus Import ---
from prometheus_client import start_http_server

# --- Application Imports ---
from rabbit_quiz.config import BackendConfig, GameConfig
from rabbit_quiz.quiz.application.context import GameContext, build_context
from rabbit_quiz.quiz.domain.models import UserIdentity
from rabbit_quiz.quiz.presentation.state_provider import StreamlitStateProvider
from rabbit_quiz.quiz.presentation.viewmodel import QuizViewModel, RoadmapViewModel
from rabbit_quiz.quiz.presentation.views.leaderboard_view import render_leaderboard
from rabbit_quiz.quiz.presentation.views.question_view import render_quiz_screen
from rabbit_quiz.quiz.presentation.views.roadmap_view import render_roadmap


# --- 1. Observability ---
def configure_observability() -> None:
    """
    Sends traces and logs via OTLP when the OTEL env vars are present,
    and exposes Prometheus metrics on :8000.
    """
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    headers = os.getenv("OTEL_EXPORTER_OTLP_HEADERS")

    if endpoint and headers:
        resource = Resource.create({"service.name": "rabbit-quiz"})

        trace_provider = TracerProvider(resource=resource)
        trace_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, headers=headers))
        )
        trace.set_tracer_provider(trace_provider)

        logger_provider = LoggerProvider(resource=resource)
        logger_provider.add_log_record_processor(
            BatchLogRecordProcessor(OTLPLogExporter(endpoint=endpoint, headers=headers))
        )
        set_logger_provider(logger_provider)
        logging.getLogger().addHandler(
            LoggingHandler(level=logging.INFO, logger_provider=logger_provider)
        )
    else:
        logging.getLogger(__name__).warning(
            "OTEL env vars not set. Telemetry will not be sent to Cloud."
        )

    try:
        start_http_server(8000)
    except OSError:
        logging.getLogger(__name__).warning(
            "Prometheus port 8000 already in use (likely Streamlit reload). Skipping."
        )


if "observability_configured" not in st.session_state:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    configure_observability()
    st.session_state.observability_configured = True


# --- 2. Composition Root (one context per browser session) ---
def get_context(identity: UserIdentity | None) -> GameContext:
    key = f"game_context:{identity.user_id if identity else 'anonymous'}"
    if key not in st.session_state:
        context = build_context(BackendConfig.from_env(), identity, StreamlitStateProvider())
        context.progress.load()
        st.session_state[key] = context
    return st.session_state[key]


def main() -> None:
    st.set_page_config(page_title=GameConfig.APP_TITLE, layout="centered")

    # Dev login: with SQLite the sidebar name is the identity
    with st.sidebar:
        name = st.text_input("Player name", value=st.session_state.get("player", ""))
        st.session_state.player = name
        screen = st.radio("Go to", ["Roadmap", "Leaderboard"], horizontal=True)

    identity = UserIdentity(user_id=name.lower(), display_name=name) if name else None
    context = get_context(identity)
    user = context.progress.user

    state_provider = StreamlitStateProvider()
    quiz_vm = QuizViewModel(context.service, state_provider)
    roadmap_vm = RoadmapViewModel(context.progress)

    if screen == "Leaderboard":
        render_leaderboard(context.aggregator, user)
        return

    if st.session_state.get("screen") == "quiz":
        render_quiz_screen(quiz_vm)
    else:
        render_roadmap(roadmap_vm, quiz_vm)


if __name__ == "__main__":
    main()
