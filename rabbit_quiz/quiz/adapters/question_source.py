import json
from typing import Any

import requests

from rabbit_quiz.quiz.domain.ports import IQuestionSource


class HttpQuestionSource(IQuestionSource):
    """Fetches the static questions.json published next to the app."""

    def __init__(self, url: str, timeout: float = 10.0) -> None:
        self.url = url
        self.timeout = timeout

    def fetch(self) -> dict[str, Any]:
        response = requests.get(self.url, timeout=self.timeout)
        response.raise_for_status()
        return response.json()


class FileQuestionSource(IQuestionSource):
    def __init__(self, path: str) -> None:
        self.path = path

    def fetch(self) -> dict[str, Any]:
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)
