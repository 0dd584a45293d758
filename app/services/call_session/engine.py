"""Execution engine driving a call session through a scenario graph."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from app.core.exceptions import (
    InactiveScenario,
    OutOfOrderAnswer,
    ScenarioDefect,
    SessionAlreadyTerminal,
)
from app.services.call_session.models import (
    Answer,
    CallSession,
    CallStatus,
    RawAnswer,
)
from app.services.scenario.conditions import ConditionEvaluator
from app.services.scenario.graph import ScenarioGraph
from app.services.scenario.models import Question
from app.services.scenario.validator import ScenarioValidator

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2


class DirectiveType(str, Enum):
    """What the telephony adapter must do next."""

    PLAY_PROMPT = "play_prompt"
    HANG_UP = "hang_up"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Directive:
    """Instruction returned to the telephony adapter for one event."""

    type: DirectiveType
    question: Optional[Question] = None
    status: Optional[CallStatus] = None
    reprompt: bool = False
    reason: Optional[str] = None

    @classmethod
    def play_prompt(cls, question: Question, reprompt: bool = False) -> "Directive":
        return cls(type=DirectiveType.PLAY_PROMPT, question=question, reprompt=reprompt)

    @classmethod
    def hang_up(cls, status: CallStatus, reason: Optional[str] = None) -> "Directive":
        return cls(type=DirectiveType.HANG_UP, status=status, reason=reason)

    @property
    def is_hang_up(self) -> bool:
        return self.type == DirectiveType.HANG_UP


class ExecutionEngine:
    """State machine for a single call.

    States are NotStarted (status initiated), AwaitingAnswer(question) (status
    in progress, ``current_question_id`` set) and Terminal (completed, failed,
    no answer). Each event handler takes one event and returns exactly one
    Directive. The engine does no I/O; callers persist and notify after it
    returns.
    """

    def __init__(
        self,
        validator: Optional[ScenarioValidator] = None,
        condition_evaluator: Optional[ConditionEvaluator] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.condition_evaluator = condition_evaluator or ConditionEvaluator()
        self.validator = validator or ScenarioValidator(self.condition_evaluator)
        self.max_retries = max_retries

    def create_session(
        self,
        graph: ScenarioGraph,
        call_sid: str,
        phone_number: Optional[str] = None,
    ) -> CallSession:
        """Bind a new session to an active, valid graph."""
        if not graph.is_active:
            raise InactiveScenario(f"Scenario {graph.id or graph.name!r} is not active")
        self.validator.ensure_activatable(graph)

        session = CallSession(
            call_sid=call_sid,
            scenario_id=graph.id,
            scenario_version=graph.version,
            phone_number=phone_number,
        )
        logger.info(
            f"[ENGINE] Session created - CallSid: {call_sid}, "
            f"Scenario: {graph.id} v{graph.version}"
        )
        return session

    def on_call_connected(self, graph: ScenarioGraph, session: CallSession) -> Directive:
        """Start the scenario, or repeat the current prompt if already started."""
        if session.is_terminal:
            raise SessionAlreadyTerminal(session.id, session.status)

        if session.is_started:
            question = graph.get_question(session.current_question_id)
            logger.info(
                f"[ENGINE] Call connected again, repeating {session.current_question_id} - "
                f"CallSid: {session.call_sid}"
            )
            return Directive.play_prompt(question)

        start = graph.start_question()
        if start is None:
            # Only reachable with a graph that bypassed create_session
            raise ScenarioDefect(self.validator.validate(graph))
        session.begin(start.id)
        logger.info(f"[ENGINE] Call started at {start.id} - CallSid: {session.call_sid}")
        return Directive.play_prompt(start)

    def on_answer(
        self,
        graph: ScenarioGraph,
        session: CallSession,
        question_id: str,
        raw_answer: RawAnswer,
    ) -> Directive:
        """Advance the session with an answer to its current question.

        Raises:
            SessionAlreadyTerminal: the session already ended.
            OutOfOrderAnswer: the answer is not for the current question; the
                session is left untouched.
        """
        if session.is_terminal:
            raise SessionAlreadyTerminal(session.id, session.status)
        if not session.is_started or question_id != session.current_question_id:
            raise OutOfOrderAnswer(question_id, session.current_question_id)

        question = graph.get_question(question_id)
        answer = self._build_answer(question, raw_answer)

        for transition in graph.outgoing(question_id):
            if not self.condition_evaluator.evaluate(transition.condition, answer):
                continue

            logger.info(
                f"[ENGINE] {question_id} matched {transition.condition!r} -> "
                f"{transition.to_question_id or 'end'} - CallSid: {session.call_sid}"
            )
            session.record_answer(answer, transition.to_question_id)
            if transition.to_question_id is None:
                return self._finish(session, CallStatus.COMPLETED)
            return Directive.play_prompt(graph.get_question(transition.to_question_id))

        has_transitions = bool(graph.outgoing(question_id))
        if question.required and (has_transitions or raw_answer.is_empty):
            attempts = session.register_retry(question_id)
            if attempts > self.max_retries:
                logger.warning(
                    f"[ENGINE] {question_id} unanswered after {self.max_retries} re-prompts - "
                    f"CallSid: {session.call_sid}"
                )
                return self._finish(
                    session,
                    CallStatus.FAILED,
                    f"No valid answer for required question {question_id}",
                )
            logger.info(
                f"[ENGINE] No transition matched for required {question_id}, "
                f"re-prompt {attempts}/{self.max_retries} - CallSid: {session.call_sid}"
            )
            return Directive.play_prompt(question, reprompt=True)

        following = graph.next_in_order(question_id)
        next_question_id = following.id if following else None
        logger.info(
            f"[ENGINE] No transition matched for {question_id}, falling back to "
            f"{next_question_id or 'end'} - CallSid: {session.call_sid}"
        )
        if raw_answer.is_empty:
            session.skip_to(next_question_id)
        else:
            session.record_answer(answer, next_question_id)

        if following is None:
            return self._finish(session, CallStatus.COMPLETED)
        return Directive.play_prompt(following)

    def on_no_answer(self, session: CallSession) -> Directive:
        """The callee never answered. No-op once terminal."""
        if session.is_terminal:
            return Directive.hang_up(session.status, session.error_message)
        return self._finish(session, CallStatus.NO_ANSWER)

    def on_provider_failure(self, session: CallSession, reason: Optional[str] = None) -> Directive:
        """The provider reported a failure or the call was aborted. No-op once terminal."""
        if session.is_terminal:
            return Directive.hang_up(session.status, session.error_message)
        return self._finish(session, CallStatus.FAILED, reason or "Provider failure")

    def _finish(
        self, session: CallSession, status: CallStatus, reason: Optional[str] = None
    ) -> Directive:
        session.finalize(status, reason)
        logger.info(
            f"[ENGINE] Session finished with {status.value} "
            f"({len(session.answers)} answers) - CallSid: {session.call_sid}"
        )
        return Directive.hang_up(status, reason)

    @staticmethod
    def _build_answer(question: Question, raw_answer: RawAnswer) -> Answer:
        option = question.find_option(raw_answer.value) if raw_answer.value else None
        return Answer(
            question_id=question.id,
            question_text=question.text,
            answer_type=raw_answer.answer_type,
            value=raw_answer.value,
            label=option.label if option else None,
            option_value=option.value if option else None,
            audio_url=raw_answer.audio_url,
        )
