"""Scenario schema models."""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QuestionType(str, Enum):
    """How a question collects its answer."""

    DTMF = "dtmf"  # touch-tone key presses
    VOICE_RECORDING = "voice_recording"

    def __str__(self) -> str:
        return self.value


class QuestionOption(BaseModel):
    """A selectable option of a DTMF question."""

    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    value: str


class Question(BaseModel):
    """A single prompt in a scenario."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    text: str = Field(min_length=1)
    type: QuestionType
    options: List[QuestionOption] = []
    required: bool = True
    max_length: Optional[int] = Field(default=None, gt=0)

    def find_option(self, entry: str) -> Optional[QuestionOption]:
        """Return the option whose key or value matches the entry."""
        entry = entry.strip()
        for option in self.options:
            if option.key == entry:
                return option
        for option in self.options:
            if option.value == entry:
                return option
        return None


class Transition(BaseModel):
    """A guarded edge from one question to the next (or to the end of the call)."""

    model_config = ConfigDict(frozen=True)

    from_question_id: str
    condition: str
    to_question_id: Optional[str] = None  # None ends the call


class ScenarioData(BaseModel):
    """Questions and transitions of a scenario."""

    model_config = ConfigDict(frozen=True)

    start_question_id: Optional[str] = None
    questions: List[Question]
    transitions: List[Transition] = []


class ScenarioDocument(BaseModel):
    """Authored scenario as stored and exchanged over the API."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str = Field(min_length=1)
    description: Optional[str] = None
    scenario_data: ScenarioData
    is_active: bool = False
    version: int = Field(default=1, ge=1)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
