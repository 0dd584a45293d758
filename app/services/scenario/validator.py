"""Structural validation of scenario graphs."""
import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from app.core.exceptions import ScenarioDefect
from app.services.scenario.conditions import ConditionEvaluator
from app.services.scenario.graph import ScenarioGraph
from app.services.scenario.models import QuestionType

logger = logging.getLogger(__name__)


class DefectKind(str, Enum):
    """Kinds of structural defects a scenario can have."""

    EMPTY_SCENARIO = "EmptyScenario"
    DUPLICATE_QUESTION_ID = "DuplicateQuestionId"
    UNKNOWN_SOURCE_QUESTION = "UnknownSourceQuestion"
    UNKNOWN_TARGET_QUESTION = "UnknownTargetQuestion"
    MISSING_OPTIONS = "MissingOptions"
    UNKNOWN_START_QUESTION = "UnknownStartQuestion"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Defect:
    """A structural violation found in a scenario."""

    kind: DefectKind
    description: str
    question_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "description": self.description,
            "question_id": self.question_id,
        }


class ScenarioValidator:
    """Checks a scenario graph before it may be activated or executed."""

    def __init__(self, condition_evaluator: Optional[ConditionEvaluator] = None):
        self.condition_evaluator = condition_evaluator or ConditionEvaluator()

    def validate(self, graph: ScenarioGraph) -> List[Defect]:
        """Return every defect of the graph; an empty list means valid."""
        defects: List[Defect] = []

        if not graph.questions:
            defects.append(
                Defect(DefectKind.EMPTY_SCENARIO, "At least one question is required")
            )
            return defects

        counts = Counter(question.id for question in graph.questions)
        for question_id in graph.question_ids:
            if counts[question_id] > 1:
                defects.append(
                    Defect(
                        DefectKind.DUPLICATE_QUESTION_ID,
                        f"Duplicate question id: {question_id}",
                        question_id,
                    )
                )

        for transition in graph.transitions:
            if not graph.has_question(transition.from_question_id):
                defects.append(
                    Defect(
                        DefectKind.UNKNOWN_SOURCE_QUESTION,
                        f"Transition from unknown question id: {transition.from_question_id}",
                        transition.from_question_id,
                    )
                )
            if transition.to_question_id is not None and not graph.has_question(
                transition.to_question_id
            ):
                defects.append(
                    Defect(
                        DefectKind.UNKNOWN_TARGET_QUESTION,
                        f"Transition to unknown question id: {transition.to_question_id}",
                        transition.to_question_id,
                    )
                )

        for question in graph.questions:
            if question.type == QuestionType.DTMF and not question.options:
                defects.append(
                    Defect(
                        DefectKind.MISSING_OPTIONS,
                        f"DTMF question '{question.text}' requires options",
                        question.id,
                    )
                )

        if graph.start_question_id is not None and not graph.has_question(
            graph.start_question_id
        ):
            defects.append(
                Defect(
                    DefectKind.UNKNOWN_START_QUESTION,
                    f"Start question id does not exist: {graph.start_question_id}",
                    graph.start_question_id,
                )
            )

        if defects:
            logger.info(
                f"[VALIDATOR] Scenario {graph.id or graph.name!r} has {len(defects)} defect(s): "
                f"{[d.kind.value for d in defects]}"
            )
        return defects

    def ensure_activatable(self, graph: ScenarioGraph) -> None:
        """Raise ScenarioDefect when the graph must not be activated."""
        defects = self.validate(graph)
        if defects:
            raise ScenarioDefect(defects)

    def activation_notes(self, graph: ScenarioGraph) -> List[str]:
        """Describe the runtime policy that applies to this graph.

        Activation reports these so the author knows where the fallback
        ordering, rather than an authored transition, decides the next step.
        """
        notes: List[str] = []
        for question_id in graph.question_ids:
            question = graph.get_question(question_id)
            outgoing = graph.outgoing(question_id)
            following = graph.next_in_order(question_id)
            fallback = f"'{following.id}'" if following else "the end of the call"

            if not question.required:
                notes.append(
                    f"Question '{question_id}' is optional: when no transition matches "
                    f"(or it is left unanswered) the call continues with {fallback}."
                )
            elif not outgoing:
                notes.append(
                    f"Question '{question_id}' has no transitions: any answer continues "
                    f"with {fallback}."
                )

            for transition in outgoing:
                if not self.condition_evaluator.is_well_formed(transition.condition):
                    notes.append(
                        f"Condition {transition.condition!r} on question '{question_id}' "
                        f"cannot be parsed and will never match."
                    )
        return notes
