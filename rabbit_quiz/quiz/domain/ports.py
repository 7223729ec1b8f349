from abc import ABC, abstractmethod
from typing import Any

from rabbit_quiz.quiz.domain.models import (
    AttemptRecord,
    ProfileRecord,
    UserIdentity,
    UserStats,
)


class IAuthProvider(ABC):
    @abstractmethod
    def current_user(self) -> UserIdentity | None:
        pass


class IProfileStore(ABC):
    @abstractmethod
    def get_or_create(
        self, user_id: str, display_name: str, email: str = ""
    ) -> ProfileRecord:
        """
        Idempotent: a concurrent creation that loses the race must return
        the record the winner created.
        """
        pass

    @abstractmethod
    def update(self, record_id: str, fields: dict[str, Any]) -> ProfileRecord:
        """Partial update. Returns the store's authoritative record."""
        pass

    @abstractmethod
    def list_profiles(self) -> list[ProfileRecord]:
        """All profiles in first-seen (creation) order."""
        pass


class IAttemptStore(ABC):
    @abstractmethod
    def create(self, attempt: AttemptRecord) -> str:
        pass

    @abstractmethod
    def commit(self, attempt: AttemptRecord, record_id: str) -> UserStats:
        """
        Writes the attempt and folds its result into the profile's stats as
        one unit: readers see both or neither. The fold reads the stats inside
        the same transaction, so concurrent commits never lose a session.
        Returns the stats as stored.
        """
        pass

    @abstractmethod
    def list_for_user(self, user_id: str, limit: int) -> list[AttemptRecord]:
        pass


class ILocalFallbackStore(ABC):
    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        pass

    @abstractmethod
    def set(self, key: str, value: dict[str, Any]) -> None:
        pass


class IQuestionSource(ABC):
    @abstractmethod
    def fetch(self) -> dict[str, Any]:
        """Returns the raw catalogue document. May raise on transport errors."""
        pass
