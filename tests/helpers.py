from rabbit_quiz.quiz.domain.models import Option, Question
from rabbit_quiz.quiz.domain.ports import IQuestionSource


class StaticSource(IQuestionSource):
    """Question source serving a fixed document; counts fetches."""

    def __init__(self, document=None, error: Exception | None = None):
        self.document = document
        self.error = error
        self.calls = 0

    def fetch(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.document


class ManualTimer:
    """Stands in for threading.Timer: fires only when the test says so."""

    created: list["ManualTimer"] = []

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False
        ManualTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.callback()


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_question(answer="b", labels="abcd", prompt="What is $1+1$?", solution=None):
    return Question(
        prompt=prompt,
        options=[Option.from_text(f"{label}) option {label}") for label in labels],
        answer=answer,
        solution=solution,
    )
