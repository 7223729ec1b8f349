import json
import os
import threading
from typing import Any

from rabbit_quiz.quiz.domain.models import UserIdentity
from rabbit_quiz.quiz.domain.ports import IAuthProvider, ILocalFallbackStore
from rabbit_quiz.quiz.presentation.state_provider import IStateProvider


class JsonFileStore(ILocalFallbackStore):
    """Key-value store backed by one JSON file. Used when nobody is signed in."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: dict[str, Any]) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            dir_name = os.path.dirname(self.path)
            if dir_name:
                os.makedirs(dir_name, exist_ok=True)
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)


class StateProviderStore(ILocalFallbackStore):
    """Keeps fallback state in the UI session (browser-tab lifetime)."""

    def __init__(self, state: IStateProvider, prefix: str = "local:") -> None:
        self.state = state
        self.prefix = prefix

    def get(self, key: str) -> dict[str, Any] | None:
        value = self.state.get(self.prefix + key)
        return dict(value) if value is not None else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        self.state.set(self.prefix + key, dict(value))


class StaticAuthProvider(IAuthProvider):
    """Identity chosen up front (dev mode, tests). None means anonymous."""

    def __init__(self, identity: UserIdentity | None = None) -> None:
        self.identity = identity

    def current_user(self) -> UserIdentity | None:
        return self.identity
