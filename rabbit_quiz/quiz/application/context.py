from collections.abc import Callable
from dataclasses import dataclass, field

from rabbit_quiz.config import BackendConfig
from rabbit_quiz.quiz.adapters.db_manager import DatabaseManager
from rabbit_quiz.quiz.adapters.local_store import (
    JsonFileStore,
    StateProviderStore,
    StaticAuthProvider,
)
from rabbit_quiz.quiz.adapters.question_source import FileQuestionSource, HttpQuestionSource
from rabbit_quiz.quiz.adapters.sqlite_repository import SQLiteGameRepository
from rabbit_quiz.quiz.adapters.supabase_repository import (
    SupabaseAuthProvider,
    SupabaseGameRepository,
)
from rabbit_quiz.quiz.application.progress_tracker import ProgressTracker
from rabbit_quiz.quiz.application.question_repository import QuestionRepository
from rabbit_quiz.quiz.application.result_aggregator import ResultAggregator
from rabbit_quiz.quiz.application.service import QuizService
from rabbit_quiz.quiz.domain.models import UserIdentity
from rabbit_quiz.quiz.domain.ports import (
    IAttemptStore,
    IAuthProvider,
    ILocalFallbackStore,
    IProfileStore,
    IQuestionSource,
)
from rabbit_quiz.quiz.presentation.state_provider import IStateProvider


@dataclass
class GameContext:
    """
    Everything one player session needs, built once and passed around.
    Holds the question cache and store clients that would otherwise be
    module-level globals.
    """

    auth: IAuthProvider
    profiles: IProfileStore
    attempts: IAttemptStore
    fallback: ILocalFallbackStore
    questions: QuestionRepository
    progress: ProgressTracker
    aggregator: ResultAggregator
    service: QuizService
    closers: list[Callable[[], None]] = field(default_factory=list)

    @classmethod
    def assemble(
        cls,
        auth: IAuthProvider,
        profiles: IProfileStore,
        attempts: IAttemptStore,
        fallback: ILocalFallbackStore,
        source: IQuestionSource,
    ) -> "GameContext":
        questions = QuestionRepository(source)
        progress = ProgressTracker(auth, profiles, fallback)
        aggregator = ResultAggregator(profiles, attempts)
        return cls(
            auth=auth,
            profiles=profiles,
            attempts=attempts,
            fallback=fallback,
            questions=questions,
            progress=progress,
            aggregator=aggregator,
            service=QuizService(questions, progress, aggregator),
        )

    def close(self) -> None:
        self.progress.close()
        for closer in self.closers:
            closer()


def build_question_source(config: BackendConfig) -> IQuestionSource:
    if config.questions_url:
        return HttpQuestionSource(config.questions_url)
    return FileQuestionSource(config.questions_file)


def build_context(
    config: BackendConfig,
    identity: UserIdentity | None = None,
    state_provider: IStateProvider | None = None,
) -> GameContext:
    """
    Composition root. SQLite (dev) uses the given identity; Supabase reads
    the signed-in user from its auth session.

    With a state_provider, local fallback state lives in that UI session
    (one per browser tab); without one it goes to the local state file.
    """
    fallback: ILocalFallbackStore
    if state_provider is not None:
        fallback = StateProviderStore(state_provider)
    else:
        fallback = JsonFileStore(config.local_state_file)
    source = build_question_source(config)

    if config.use_sqlite:
        db = DatabaseManager(config.db_path)
        repo = SQLiteGameRepository(db)
        context = GameContext.assemble(
            StaticAuthProvider(identity), repo, repo, fallback, source
        )
        context.closers.append(db.close)
        return context

    sb_repo = SupabaseGameRepository.connect(config.supabase_url, config.supabase_key)
    auth = SupabaseAuthProvider(sb_repo.client)
    return GameContext.assemble(auth, sb_repo, sb_repo, fallback, source)
