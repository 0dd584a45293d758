"""Immutable scenario graph."""
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from pydantic import ValidationError

from app.core.exceptions import MalformedScenario
from app.services.scenario.models import (
    Question,
    ScenarioData,
    ScenarioDocument,
    Transition,
)

logger = logging.getLogger(__name__)


def _format_errors(error: ValidationError) -> List[str]:
    """Render pydantic errors as ``path: message`` strings."""
    return [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors()
    ]


class ScenarioGraph:
    """Read-only view over a scenario's questions and transitions.

    Questions are indexed by id once at construction. When ids are duplicated
    the first authored question wins the lookup; the duplicate is still kept in
    ``questions`` so the validator can report it.
    """

    def __init__(self, document: ScenarioDocument):
        self._document = document
        data = document.scenario_data

        self._questions: Tuple[Question, ...] = tuple(data.questions)
        self._transitions: Tuple[Transition, ...] = tuple(data.transitions)

        self._index: Dict[str, Question] = {}
        self._order: List[str] = []
        for question in self._questions:
            if question.id not in self._index:
                self._index[question.id] = question
                self._order.append(question.id)

        outgoing: Dict[str, List[Transition]] = {}
        for transition in self._transitions:
            outgoing.setdefault(transition.from_question_id, []).append(transition)
        self._outgoing: Dict[str, Tuple[Transition, ...]] = {
            qid: tuple(items) for qid, items in outgoing.items()
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ScenarioGraph":
        """Build a graph from authored data.

        Raises:
            MalformedScenario: on schema-level violations only.
        """
        if not isinstance(raw, Mapping):
            raise MalformedScenario(["scenario: expected an object"])
        try:
            document = ScenarioDocument.model_validate(raw)
        except ValidationError as e:
            errors = _format_errors(e)
            logger.warning(f"[SCENARIO] Malformed scenario data: {errors}")
            raise MalformedScenario(errors) from e
        return cls(document)

    @classmethod
    def from_yaml(cls, path) -> "ScenarioGraph":
        """Build a graph from a YAML file."""
        with open(Path(path), "r", encoding="utf-8") as f:
            try:
                raw = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise MalformedScenario([f"yaml: {e}"]) from e
        return cls.from_dict(raw or {})

    def to_dict(self) -> Dict[str, Any]:
        """Serialize in the authored wire format, preserving order."""
        return self._document.model_dump(mode="json")

    def with_activation(self, is_active: bool) -> "ScenarioGraph":
        """Return a copy with a different activation flag."""
        return ScenarioGraph(self._document.model_copy(update={"is_active": is_active}))

    def with_identity(
        self,
        scenario_id: str,
        version: int,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> "ScenarioGraph":
        """Return a copy carrying storage identity and version."""
        return ScenarioGraph(
            self._document.model_copy(
                update={
                    "id": scenario_id,
                    "version": version,
                    "created_at": created_at,
                    "updated_at": updated_at,
                }
            )
        )

    @property
    def id(self) -> Optional[str]:
        return self._document.id

    @property
    def name(self) -> str:
        return self._document.name

    @property
    def description(self) -> Optional[str]:
        return self._document.description

    @property
    def is_active(self) -> bool:
        return self._document.is_active

    @property
    def version(self) -> int:
        return self._document.version

    @property
    def created_at(self) -> Optional[datetime]:
        return self._document.created_at

    @property
    def updated_at(self) -> Optional[datetime]:
        return self._document.updated_at

    @property
    def data(self) -> ScenarioData:
        return self._document.scenario_data

    @property
    def start_question_id(self) -> Optional[str]:
        return self._document.scenario_data.start_question_id

    @property
    def questions(self) -> Tuple[Question, ...]:
        """Questions in authored order, duplicates included."""
        return self._questions

    @property
    def question_ids(self) -> List[str]:
        """Distinct question ids in authored order."""
        return list(self._order)

    @property
    def transitions(self) -> Tuple[Transition, ...]:
        return self._transitions

    def has_question(self, question_id: Optional[str]) -> bool:
        return question_id is not None and question_id in self._index

    def get_question(self, question_id: str) -> Optional[Question]:
        return self._index.get(question_id)

    def outgoing(self, question_id: str) -> Tuple[Transition, ...]:
        """Transitions leaving a question, in authored order."""
        return self._outgoing.get(question_id, ())

    def next_in_order(self, question_id: str) -> Optional[Question]:
        """Question authored right after the given one (fallback ordering)."""
        try:
            position = self._order.index(question_id)
        except ValueError:
            return None
        if position + 1 < len(self._order):
            return self._index[self._order[position + 1]]
        return None

    def start_question(self) -> Optional[Question]:
        """Question a call starts with.

        The declared ``start_question_id`` wins. Otherwise the first authored
        question that no transition from an existing question points to, and
        failing that (every question is a target) the first authored question.
        """
        if self.start_question_id is not None:
            return self._index.get(self.start_question_id)
        if not self._order:
            return None

        targets = {
            t.to_question_id
            for t in self._transitions
            if t.to_question_id is not None and t.from_question_id in self._index
        }
        for question_id in self._order:
            if question_id not in targets:
                return self._index[question_id]
        return self._index[self._order[0]]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScenarioGraph):
            return NotImplemented
        return self._document == other._document

    def __hash__(self) -> int:
        return hash((self.id, self.version))

    def __repr__(self) -> str:
        return (
            f"ScenarioGraph(id={self.id!r}, name={self.name!r}, "
            f"version={self.version}, questions={len(self._order)})"
        )
