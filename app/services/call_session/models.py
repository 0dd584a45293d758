"""Call session models."""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from app.core.exceptions import SessionAlreadyTerminal


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallStatus(str, Enum):
    """Lifecycle status of a call."""

    INITIATED = "initiated"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    NO_ANSWER = "no_answer"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({CallStatus.COMPLETED, CallStatus.FAILED, CallStatus.NO_ANSWER})


class AnswerType(str, Enum):
    """How an answer was given."""

    DTMF = "dtmf"
    VOICE = "voice"

    def __str__(self) -> str:
        return self.value


class RawAnswer(BaseModel):
    """Answer input as received from the telephony provider, shape-checked."""

    model_config = ConfigDict(frozen=True)

    answer_type: AnswerType
    value: str = ""  # empty means the caller gave no input before the timeout
    audio_url: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.value.strip()


class Answer(BaseModel):
    """An answer collected for one question."""

    model_config = ConfigDict(frozen=True)

    question_id: str
    question_text: str = ""
    answer_type: AnswerType
    value: str = ""
    label: Optional[str] = None
    option_value: Optional[str] = None
    audio_url: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class CallSessionSnapshot(BaseModel):
    """Immutable copy of a call session for persistence and notification."""

    model_config = ConfigDict(frozen=True)

    id: str
    call_sid: str
    scenario_id: Optional[str] = None
    scenario_version: int = 1
    phone_number: Optional[str] = None
    status: CallStatus
    current_question_id: Optional[str] = None
    answers: List[Answer] = []
    started_at: datetime
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_seconds(self) -> Optional[int]:
        if self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds())


class CallSession:
    """Execution context of one call.

    Only the execution engine mutates a session. Once the status is terminal
    every mutation raises SessionAlreadyTerminal.
    """

    def __init__(
        self,
        call_sid: str,
        scenario_id: Optional[str],
        scenario_version: int = 1,
        phone_number: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or str(uuid4())
        self.call_sid = call_sid
        self.scenario_id = scenario_id
        self.scenario_version = scenario_version
        self.phone_number = phone_number
        self.status = CallStatus.INITIATED
        self.current_question_id: Optional[str] = None
        self.answers: List[Answer] = []
        self.retry_counts: Dict[str, int] = {}
        self.started_at = utcnow()
        self.completed_at: Optional[datetime] = None
        self.error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_started(self) -> bool:
        return self.status != CallStatus.INITIATED

    def _ensure_mutable(self) -> None:
        if self.is_terminal:
            raise SessionAlreadyTerminal(self.id, self.status)

    def begin(self, question_id: str) -> None:
        """Move from initiated to in progress on the given question."""
        self._ensure_mutable()
        self.status = CallStatus.IN_PROGRESS
        self.current_question_id = question_id

    def record_answer(self, answer: Answer, next_question_id: Optional[str]) -> None:
        """Append an answer and move to the next question."""
        self._ensure_mutable()
        self.answers.append(answer)
        self.current_question_id = next_question_id

    def skip_to(self, question_id: Optional[str]) -> None:
        """Move to another question without recording an answer."""
        self._ensure_mutable()
        self.current_question_id = question_id

    def register_retry(self, question_id: str) -> int:
        """Count a re-prompt of a question and return the running total."""
        self._ensure_mutable()
        self.retry_counts[question_id] = self.retry_counts.get(question_id, 0) + 1
        return self.retry_counts[question_id]

    def finalize(self, status: CallStatus, reason: Optional[str] = None) -> None:
        """Set a terminal status; the session is frozen afterwards."""
        self._ensure_mutable()
        if not status.is_terminal:
            raise ValueError(f"{status} is not a terminal status")
        self.status = status
        self.completed_at = utcnow()
        self.current_question_id = None
        self.error_message = reason

    def get_answer(self, question_id: str) -> Optional[Answer]:
        """Latest answer recorded for a question."""
        for answer in reversed(self.answers):
            if answer.question_id == question_id:
                return answer
        return None

    def snapshot(self) -> CallSessionSnapshot:
        return CallSessionSnapshot(
            id=self.id,
            call_sid=self.call_sid,
            scenario_id=self.scenario_id,
            scenario_version=self.scenario_version,
            phone_number=self.phone_number,
            status=self.status,
            current_question_id=self.current_question_id,
            answers=list(self.answers),
            started_at=self.started_at,
            completed_at=self.completed_at,
            error_message=self.error_message,
        )

    def __repr__(self) -> str:
        return (
            f"CallSession(call_sid={self.call_sid!r}, status={self.status.value}, "
            f"current_question_id={self.current_question_id!r}, answers={len(self.answers)})"
        )
