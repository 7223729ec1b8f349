class RabbitQuizError(Exception):
    """Base class for all errors raised by the quiz core."""


class DataIntegrityError(RabbitQuizError):
    """
    A question cannot be scored: its answer names a letter that no option carries.
    Raised when a session is built, before the first question is shown.
    """

    def __init__(self, question_index: int, prompt: str, missing: set[str]) -> None:
        self.question_index = question_index
        self.prompt = prompt
        self.missing = frozenset(missing)
        letters = ", ".join(sorted(missing))
        super().__init__(
            f"Question #{question_index + 1} ({prompt[:40]!r}) answers with "
            f"unknown option letter(s): {letters}"
        )


class ResultCommitError(RabbitQuizError):
    """The attempt and the updated stats could not be persisted."""

    def __init__(self, user_id: str, unit_id: int, reason: str) -> None:
        self.user_id = user_id
        self.unit_id = unit_id
        super().__init__(
            f"Could not commit result of unit {unit_id} for {user_id}: {reason}"
        )
