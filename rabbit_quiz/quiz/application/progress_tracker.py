import threading
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from pydantic import ValidationError

from rabbit_quiz.config import GameConfig
from rabbit_quiz.quiz.domain.models import ProgressionState, UnitStatus, UserIdentity
from rabbit_quiz.quiz.domain.ports import IAuthProvider, ILocalFallbackStore, IProfileStore
from rabbit_quiz.quiz.domain.progression import ProgressionEngine, UnlockOutcome, utc_now
from rabbit_quiz.shared.telemetry import Telemetry, measure_time


class Cancellable(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Cancellable]


def _daemon_timer(interval: float, callback: Callable[[], None]) -> Cancellable:
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    return timer


class ProgressTracker:
    """
    Keeps the player's ProgressionState in memory and in durable storage.

    Every mutation goes through the ProgressionEngine first (optimistic local
    update), then a debounced write: the remote profile when a user is signed
    in, the local fallback store otherwise or when the remote write fails.
    The remote store's answer replaces the local copy.
    """

    def __init__(
        self,
        auth: IAuthProvider,
        profiles: IProfileStore | None,
        fallback: ILocalFallbackStore,
        quiet_window: float = GameConfig.SAVE_DEBOUNCE_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        timer_factory: TimerFactory = _daemon_timer,
    ) -> None:
        self.auth = auth
        self.profiles = profiles
        self.fallback = fallback
        self.quiet_window = quiet_window
        self.clock = clock
        self.timer_factory = timer_factory
        self.telemetry = Telemetry("ProgressTracker")

        self.user: UserIdentity | None = None
        self.record_id: str | None = None
        self.state = ProgressionState()
        self.engine = ProgressionEngine(self.state, clock=clock)

        self._lock = threading.RLock()
        # Serializes writes so an older snapshot never lands after a newer one
        self._save_lock = threading.Lock()
        self._dirty = False
        self._timer: Cancellable | None = None

    # --- Loading ---

    @measure_time("load_progression")
    def load(self) -> ProgressionState:
        try:
            self.user = self.auth.current_user()
        except Exception as e:
            self.telemetry.log_error("Auth lookup failed", e)
            self.user = None

        state: ProgressionState | None = None
        if self.user and self.profiles:
            try:
                record = self.profiles.get_or_create(
                    self.user.user_id, self.user.username, self.user.email
                )
                self.record_id = record.record_id
                state = record.progression
            except Exception as e:
                self.telemetry.log_error(
                    "Remote profile unavailable, using local state", e, user_id=self.user.user_id
                )
                self.record_id = None

        if state is None:
            state = self._load_local()

        self._replace_state(state)
        self.telemetry.log_info(
            "Progression loaded",
            remote=self.record_id is not None,
            currency=state.currency,
            unlocked=state.unlocked_units,
        )
        return state

    def _load_local(self) -> ProgressionState:
        try:
            saved = self.fallback.get(GameConfig.LOCAL_STATE_KEY)
        except Exception as e:
            self.telemetry.log_error("Local state unreadable", e)
            return ProgressionState()
        if not saved:
            return ProgressionState()
        try:
            return ProgressionState.model_validate(saved)
        except ValidationError as e:
            self.telemetry.log_error("Local state invalid, using defaults", e)
            return ProgressionState()

    def _replace_state(self, state: ProgressionState) -> None:
        with self._lock:
            self.state = state
            self.engine.state = state

    # --- Queries (delegated) ---

    @property
    def is_remote(self) -> bool:
        return self.record_id is not None

    def status(self, unit_id: int) -> UnitStatus:
        return self.engine.status(unit_id)

    def can_unlock(self, unit_id: int) -> bool:
        return self.engine.can_unlock(unit_id)

    def next_locked_unit(self) -> int | None:
        return self.engine.next_locked_unit()

    def unlock_cost(self, unit_id: int) -> int:
        return self.engine.default_cost(unit_id)

    # --- Mutations ---

    def unlock(self, unit_id: int, cost: int | None = None) -> UnlockOutcome:
        with self._lock:
            outcome = self.engine.unlock(unit_id, cost)
            if outcome is UnlockOutcome.UNLOCKED:
                self._mark_dirty()
        return outcome

    def complete(self, unit_id: int) -> bool:
        with self._lock:
            changed = self.engine.complete(unit_id)
            if changed:
                self._mark_dirty()
        return changed

    def add_currency(self, amount: int) -> None:
        with self._lock:
            self.engine.add_currency(amount)
            self._mark_dirty()

    def set_active_unit(self, unit_id: int) -> None:
        with self._lock:
            if self.state.active_unit != unit_id:
                self.engine.set_active_unit(unit_id)
                self._mark_dirty()

    def start_promotion(self) -> None:
        with self._lock:
            self.engine.start_promotion()
            self._mark_dirty()

    # --- Persistence ---

    def _mark_dirty(self) -> None:
        """Restarts the quiet-window timer; the write happens when it expires."""
        self._dirty = True
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self.timer_factory(self.quiet_window, self.flush)
        self._timer.start()

    @property
    def has_pending_changes(self) -> bool:
        return self._dirty

    def flush(self) -> None:
        """
        Writes pending changes now. Never raises: remote failures fall back to local.

        The store is written from a snapshot outside the state lock, so
        mutations made during a slow remote call are not blocked. Those
        leave the tracker dirty and win over the store's answer.
        """
        with self._save_lock:
            with self._lock:
                if self._timer is not None:
                    self._timer.cancel()
                    self._timer = None
                if not self._dirty:
                    return
                self._dirty = False
                snapshot = self.state.model_copy(deep=True)
                record_id = self.record_id if self.profiles else None

            if record_id is not None:
                stored = self._save_remote(record_id, snapshot)
                if stored is not None:
                    self._reconcile(snapshot, stored)
                    return
            self._save_local(snapshot)

    def _save_remote(
        self, record_id: str, snapshot: ProgressionState
    ) -> ProgressionState | None:
        try:
            record = self.profiles.update(  # type: ignore[union-attr]
                record_id, snapshot.model_dump(mode="json")
            )
        except Exception as e:
            self.telemetry.log_error(
                "Remote save failed, falling back to local", e, record_id=record_id
            )
            return None
        return record.progression

    def _reconcile(self, snapshot: ProgressionState, stored: ProgressionState) -> None:
        with self._lock:
            if self._dirty:
                # Newer local changes are queued; the next save settles them.
                return
            if stored != snapshot:
                self.telemetry.log_warning(
                    "Store disagrees with local state, keeping store values",
                    local=snapshot.model_dump(mode="json"),
                    remote=stored.model_dump(mode="json"),
                )
                self._replace_state(stored)

    def _save_local(self, snapshot: ProgressionState) -> None:
        try:
            self.fallback.set(GameConfig.LOCAL_STATE_KEY, snapshot.model_dump(mode="json"))
        except Exception as e:
            self.telemetry.log_warning("Local save failed", error=str(e))

    def close(self) -> None:
        self.flush()
