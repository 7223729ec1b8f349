from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum

from rabbit_quiz.config import GameConfig
from rabbit_quiz.quiz.domain.models import ProgressionState, UnitStatus
from rabbit_quiz.shared.telemetry import UNLOCKS_TOTAL, Telemetry


class UnlockOutcome(str, Enum):
    UNLOCKED = "unlocked"
    ALREADY_UNLOCKED = "already_unlocked"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    LOCKED = "locked"  # predecessor (or, for ultimate, some regular unit) still locked

    @property
    def ok(self) -> bool:
        return self in (UnlockOutcome.UNLOCKED, UnlockOutcome.ALREADY_UNLOCKED)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class ProgressionEngine:
    """
    Pure Domain Logic.
    Owns the unit state machine (locked -> unlocked -> completed) and the
    currency ledger of one ProgressionState. Nothing here ever removes a unit
    from unlocked or completed.
    """

    def __init__(
        self,
        state: ProgressionState,
        clock: Callable[[], datetime] = utc_now,
        max_regular_unit: int = GameConfig.MAX_REGULAR_UNIT,
        ultimate_unit: int = GameConfig.ULTIMATE_UNIT,
        ultimate_cost: int = GameConfig.ULTIMATE_UNLOCK_COST,
    ) -> None:
        self.state = state
        self.clock = clock
        self.max_regular_unit = max_regular_unit
        self.ultimate_unit = ultimate_unit
        self.ultimate_cost = ultimate_cost
        self.telemetry = Telemetry("ProgressionEngine")

    @property
    def regular_units(self) -> range:
        return range(GameConfig.FIRST_UNIT, self.max_regular_unit + 1)

    def is_regular(self, unit_id: int) -> bool:
        return unit_id in self.regular_units

    # --- Queries ---

    def status(self, unit_id: int) -> UnitStatus:
        if unit_id in self.state.completed_units:
            return UnitStatus.COMPLETED
        if unit_id in self.state.unlocked_units:
            return UnitStatus.UNLOCKED
        return UnitStatus.LOCKED

    def can_unlock(self, unit_id: int) -> bool:
        unlocked = self.state.unlocked_units
        if unit_id == self.ultimate_unit:
            return all(u in unlocked for u in self.regular_units)
        if unit_id == GameConfig.FIRST_UNIT:
            return True
        if not self.is_regular(unit_id):
            return False
        return (unit_id - 1) in unlocked

    def next_locked_unit(self) -> int | None:
        for unit_id in self.regular_units:
            if unit_id not in self.state.unlocked_units:
                return unit_id
        return None

    def default_cost(self, unit_id: int, now: datetime | None = None) -> int:
        if unit_id == self.ultimate_unit:
            return 0 if self.is_promotion_active(now) else self.ultimate_cost
        return GameConfig.REGULAR_UNLOCK_COST

    # --- Promotional grant ---

    def start_promotion(self, now: datetime | None = None) -> None:
        self.state.promo_started_at = _as_utc(now or self.clock())
        self.telemetry.log_info(
            "Promotion started", started_at=self.state.promo_started_at.isoformat()
        )

    def is_promotion_active(self, now: datetime | None = None) -> bool:
        started = self.state.promo_started_at
        if started is None:
            return False
        elapsed = _as_utc(now or self.clock()) - _as_utc(started)
        return elapsed < GameConfig.PROMO_DURATION

    # --- Transitions ---

    def unlock(self, unit_id: int, cost: int | None = None) -> UnlockOutcome:
        outcome = self._unlock(unit_id, cost)
        UNLOCKS_TOTAL.labels(outcome=outcome.value).inc()
        self.telemetry.log_info(
            "Unlock", unit_id=unit_id, outcome=outcome.value, currency=self.state.currency
        )
        return outcome

    def _unlock(self, unit_id: int, cost: int | None) -> UnlockOutcome:
        if unit_id in self.state.unlocked_units:
            return UnlockOutcome.ALREADY_UNLOCKED
        if not self.can_unlock(unit_id):
            return UnlockOutcome.LOCKED

        price = self.default_cost(unit_id) if cost is None else cost
        if price < 0:
            raise ValueError(f"Unlock cost cannot be negative: {price}")
        if self.state.currency < price:
            return UnlockOutcome.INSUFFICIENT_FUNDS

        self.state.currency -= price
        self.state.unlocked_units = [*self.state.unlocked_units, unit_id]
        self.state.active_unit = unit_id
        return UnlockOutcome.UNLOCKED

    def complete(self, unit_id: int) -> bool:
        """Marks a unit completed. Returns False when it already was."""
        if unit_id in self.state.completed_units:
            return False

        self.state.completed_units = [*self.state.completed_units, unit_id]
        # Cursor only: the next unit still has to be bought.
        if self.is_regular(unit_id) and unit_id < self.max_regular_unit:
            self.state.active_unit = unit_id + 1

        self.telemetry.log_info(
            "Unit completed", unit_id=unit_id, active_unit=self.state.active_unit
        )
        return True

    def add_currency(self, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Currency grants must be positive, got {amount}")
        self.state.currency += amount

    def set_active_unit(self, unit_id: int) -> None:
        self.state.active_unit = unit_id
