from typing import Any

from pydantic import ValidationError

from rabbit_quiz.quiz.domain.models import Question, QuizUnit
from rabbit_quiz.quiz.domain.ports import IQuestionSource
from rabbit_quiz.shared.telemetry import Telemetry, measure_time


class QuestionRepository:
    """
    Read-only access to the quiz catalogue.

    The document is fetched once and kept for the lifetime of this object.
    One repository belongs to one GameContext; nothing is shared at module level.
    """

    def __init__(self, source: IQuestionSource) -> None:
        self.source = source
        self.telemetry = Telemetry("QuestionRepository")
        self._units: list[QuizUnit] | None = None

    @measure_time("load_catalogue")
    def load_catalogue(self) -> list[QuizUnit]:
        """Returns [] when the source is unreachable; empty means 'no content'."""
        if self._units is not None:
            return self._units

        try:
            document = self.source.fetch()
        except Exception as e:
            # Not cached: the next call retries the fetch.
            self.telemetry.log_error("Catalogue fetch failed", e)
            return []

        self._units = self._parse(document)
        self.telemetry.log_info(
            "Catalogue loaded",
            units=len(self._units),
            questions=sum(len(u.questions) for u in self._units),
        )
        return self._units

    def reload(self) -> list[QuizUnit]:
        self._units = None
        return self.load_catalogue()

    def unit_ids(self) -> list[int]:
        return [u.unit_id for u in self.load_catalogue()]

    def questions_for(self, unit_id: int) -> list[Question]:
        units = self.load_catalogue()
        for unit in units:
            if unit.unit_id == unit_id:
                return list(unit.questions)

        if not units:
            return []

        # Unknown ids serve the first unit instead of nothing.
        fallback = units[0]
        self.telemetry.log_warning(
            "Unknown unit, serving first unit instead",
            requested=unit_id,
            served=fallback.unit_id,
        )
        return list(fallback.questions)

    def all_questions(self) -> list[Question]:
        return [q for unit in self.load_catalogue() for q in unit.questions]

    # --- Parsing ---

    def _parse(self, document: Any) -> list[QuizUnit]:
        weeks = document.get("weeks") if isinstance(document, dict) else None
        if not isinstance(weeks, list):
            self.telemetry.log_warning("Catalogue has no 'weeks' list")
            return []

        units: list[QuizUnit] = []
        for raw_week in weeks:
            try:
                unit_id = int(raw_week["week_number"])
                raw_questions = raw_week.get("questions") or []
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                self.telemetry.log_error("Rejected malformed week", e, week=raw_week)
                continue
            units.append(
                QuizUnit(unit_id=unit_id, questions=self._parse_questions(unit_id, raw_questions))
            )
        return units

    def _parse_questions(self, unit_id: int, raw_questions: list[Any]) -> list[Question]:
        questions: list[Question] = []
        for position, raw in enumerate(raw_questions):
            try:
                questions.append(Question.from_document(raw))
            except (KeyError, TypeError, AttributeError, ValueError, ValidationError) as e:
                self.telemetry.log_error(
                    "Rejected malformed question", e, unit_id=unit_id, position=position
                )
        return questions
