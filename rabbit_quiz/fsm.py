import logging
from enum import Enum, auto

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    IN_PROGRESS = auto()  # Question shown, selection open
    CONFIRMED = auto()  # Answer locked in, correctness revealed
    FINISHED = auto()  # Past the last question


class SessionAction(Enum):
    CONFIRM = auto()
    NEXT_QUESTION = auto()
    FINISH = auto()


class SessionStateMachine:
    """
    Pure FSM Logic.
    Only knows which phase may follow which; scoring lives in the evaluator.
    """

    def __init__(
        self, initial_state: SessionPhase = SessionPhase.IN_PROGRESS, learn_mode: bool = False
    ) -> None:
        self._state = initial_state
        self._learn_mode = learn_mode

    @property
    def current_state(self) -> SessionPhase:
        return self._state

    def can(self, action: SessionAction) -> bool:
        return self._next(action) is not None

    def transition(self, action: SessionAction) -> bool:
        """Applies the action. Invalid transitions are logged and ignored."""
        target = self._next(action)
        if target is None:
            logger.error(f"⛔ INVALID TRANSITION: {self._state.name} + {action.name}")
            return False

        previous = self._state
        self._state = target
        logger.debug(f"🔄 FSM: {previous.name} --[{action.name}]--> {target.name}")
        return True

    def _next(self, action: SessionAction) -> SessionPhase | None:
        match (self._state, action):
            # Learn mode shows the answer up front and is never confirmed
            case (SessionPhase.IN_PROGRESS, SessionAction.CONFIRM) if not self._learn_mode:
                return SessionPhase.CONFIRMED

            case (SessionPhase.CONFIRMED, SessionAction.NEXT_QUESTION):
                return SessionPhase.IN_PROGRESS
            case (SessionPhase.CONFIRMED, SessionAction.FINISH):
                return SessionPhase.FINISHED

            case (SessionPhase.IN_PROGRESS, SessionAction.NEXT_QUESTION) if self._learn_mode:
                return SessionPhase.IN_PROGRESS
            case (SessionPhase.IN_PROGRESS, SessionAction.FINISH) if self._learn_mode:
                return SessionPhase.FINISHED

            case _:
                return None
