"""Call session manager."""
import asyncio
import logging
from typing import Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    InvalidAnswerShape,
    OutOfOrderAnswer,
    ScenarioNotFound,
    SessionAlreadyTerminal,
)
from app.services.call_session.answers import AnswerShapeValidator
from app.services.call_session.engine import Directive, ExecutionEngine
from app.services.call_session.models import CallSession, CallStatus, RawAnswer
from app.services.notifications.dispatcher import NotificationDispatcher
from app.services.persistence.calls import CallPersistenceService
from app.services.scenario.graph import ScenarioGraph
from app.services.scenario.models import Question
from app.services.scenario.repository import ScenarioRepository

logger = logging.getLogger(__name__)

# Twilio CallStatus values reported by the status callback
NO_ANSWER_STATUSES = {"no-answer", "busy"}
FAILURE_STATUSES = {"failed", "canceled"}
ENDED_STATUS = "completed"


class ActiveCall:
    """A running session with the graph it is bound to and its event lock."""

    def __init__(self, session: CallSession, graph: ScenarioGraph):
        self.session = session
        self.graph = graph
        self.lock = asyncio.Lock()


# Module-level call registry (persists across requests)
# In production, use sticky routing or a shared store
_calls: Dict[str, ActiveCall] = {}
# Serializes session creation per CallSid until the call is registered
_start_locks: Dict[str, asyncio.Lock] = {}


class CallSessionManager:
    """Correlates provider events with sessions and runs them through the engine.

    Events of one call are processed one at a time under that call's lock.
    Persistence and notification happen here, after the engine returns a
    terminal directive.
    """

    def __init__(
        self,
        db: AsyncSession,
        engine: ExecutionEngine,
        scenario_repository: ScenarioRepository,
        notification_dispatcher: NotificationDispatcher,
        answer_validator: Optional[AnswerShapeValidator] = None,
    ):
        self.db = db
        self.engine = engine
        self.scenario_repository = scenario_repository
        self.notification_dispatcher = notification_dispatcher
        self.answer_validator = answer_validator or AnswerShapeValidator()
        self.call_persistence = CallPersistenceService(db)

    async def start_call(
        self, call_sid: str, scenario_id: str, phone_number: Optional[str] = None
    ) -> CallSession:
        """Create a session bound to the active version of a scenario.

        Concurrent starts for one CallSid (the API after dialing and the
        connect webhook) share a single session.
        """
        active = _calls.get(call_sid)
        if active:
            return active.session

        start_lock = _start_locks.setdefault(call_sid, asyncio.Lock())
        try:
            async with start_lock:
                active = _calls.get(call_sid)
                if active:
                    return active.session

                graph = await self.scenario_repository.load_active_scenario(scenario_id)
                session = self.engine.create_session(graph, call_sid, phone_number)
                await self.call_persistence.create_call(
                    call_sid,
                    scenario_id=graph.id,
                    scenario_version=graph.version,
                    phone_number=phone_number,
                )
                _calls[call_sid] = ActiveCall(session, graph)
                logger.info(
                    f"[SESSION MANAGER] Call registered - CallSid: {call_sid}, "
                    f"Scenario: {scenario_id}"
                )
                return session
        finally:
            if call_sid not in _calls and not start_lock.locked():
                _start_locks.pop(call_sid, None)

    def get_session(self, call_sid: str) -> Optional[CallSession]:
        active = _calls.get(call_sid)
        return active.session if active else None

    async def handle_call_connected(
        self,
        call_sid: str,
        scenario_id: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> Directive:
        """The callee picked up."""
        if call_sid not in _calls:
            if not scenario_id:
                raise ScenarioNotFound("<none>")
            await self.start_call(call_sid, scenario_id, phone_number)

        active = _calls[call_sid]
        async with active.lock:
            try:
                return await self._connect(active)
            except SessionAlreadyTerminal as e:
                logger.warning(f"[SESSION MANAGER] {e} - CallSid: {call_sid}")
                return Directive.hang_up(active.session.status)

    async def handle_digits(
        self, call_sid: str, question_id: str, digits: Optional[str]
    ) -> Directive:
        """Key presses (or a gather timeout) for a question."""
        return await self._handle_answer(
            call_sid,
            question_id,
            lambda question: self.answer_validator.validate_digits(question, digits),
        )

    async def handle_recording(
        self, call_sid: str, question_id: str, recording_url: Optional[str]
    ) -> Directive:
        """A voice recording (or a record timeout) for a question."""
        return await self._handle_answer(
            call_sid,
            question_id,
            lambda question: self.answer_validator.validate_recording(question, recording_url),
        )

    async def handle_call_status(
        self, call_sid: str, call_status: str, error_message: Optional[str] = None
    ) -> Optional[Directive]:
        """Provider status callback. Returns None when nothing changes."""
        active = _calls.get(call_sid)
        if active is None:
            logger.debug(
                f"[SESSION MANAGER] Status {call_status} for unknown or finished call - "
                f"CallSid: {call_sid}"
            )
            return None

        async with active.lock:
            if call_status in NO_ANSWER_STATUSES:
                directive = self.engine.on_no_answer(active.session)
            elif call_status in FAILURE_STATUSES:
                directive = self.engine.on_provider_failure(
                    active.session, error_message or f"Provider reported {call_status}"
                )
            elif call_status == ENDED_STATUS:
                directive = self.engine.on_provider_failure(
                    active.session, "Caller hung up before the scenario finished"
                )
            else:
                return None
            return await self._after_event(active, directive)

    async def abort_call(self, call_sid: str, reason: str) -> Optional[Directive]:
        """Cancel a call from our side; safe in any state."""
        active = _calls.get(call_sid)
        if active is None:
            return None
        async with active.lock:
            directive = self.engine.on_provider_failure(active.session, reason)
            return await self._after_event(active, directive)

    async def _handle_answer(
        self,
        call_sid: str,
        question_id: str,
        shape: Callable[[Question], RawAnswer],
    ) -> Directive:
        active = _calls.get(call_sid)
        if active is None:
            logger.warning(f"[SESSION MANAGER] Answer for unknown call - CallSid: {call_sid}")
            return Directive.hang_up(CallStatus.FAILED, "Unknown call")

        async with active.lock:
            session, graph = active.session, active.graph
            if session.is_terminal:
                return Directive.hang_up(session.status, session.error_message)

            question = graph.get_question(question_id)
            if question is None:
                logger.warning(
                    f"[SESSION MANAGER] Answer for unknown question {question_id!r} - "
                    f"CallSid: {call_sid}"
                )
                return await self._current_prompt(active)

            try:
                raw_answer = shape(question)
            except InvalidAnswerShape as e:
                logger.info(f"[SESSION MANAGER] Rejected answer: {e} - CallSid: {call_sid}")
                return await self._current_prompt(active, reprompt=True)

            try:
                directive = self.engine.on_answer(graph, session, question_id, raw_answer)
            except OutOfOrderAnswer as e:
                logger.warning(f"[SESSION MANAGER] {e} - CallSid: {call_sid}")
                return await self._current_prompt(active)
            except SessionAlreadyTerminal as e:
                logger.warning(f"[SESSION MANAGER] {e} - CallSid: {call_sid}")
                return Directive.hang_up(session.status, session.error_message)

            return await self._after_event(active, directive)

    async def _current_prompt(self, active: ActiveCall, reprompt: bool = False) -> Directive:
        """Ask the current question again, starting the call if needed."""
        session = active.session
        if not session.is_started:
            return await self._connect(active)
        question = active.graph.get_question(session.current_question_id)
        return Directive.play_prompt(question, reprompt=reprompt)

    async def _connect(self, active: ActiveCall) -> Directive:
        session = active.session
        was_started = session.is_started
        directive = self.engine.on_call_connected(active.graph, session)
        if not was_started:
            await self.call_persistence.update_call_status(session.call_sid, session.status)
        return await self._after_event(active, directive)

    async def _after_event(self, active: ActiveCall, directive: Directive) -> Directive:
        if active.session.is_terminal:
            await self._finalize(active)
        return directive

    async def _finalize(self, active: ActiveCall) -> None:
        """Store and announce a finished session, then forget it.

        The call leaves the registry only after the write and the
        notifications. A failed write is logged with the full snapshot.
        """
        session = active.session
        snapshot = session.snapshot()
        try:
            try:
                await self.call_persistence.save_session(snapshot)
            except SQLAlchemyError as e:
                logger.error(
                    f"[SESSION MANAGER] Failed to store finalized call - CallSid: {session.call_sid}, "
                    f"Error: {type(e).__name__}: {str(e)}, Snapshot: {snapshot.model_dump_json()}",
                    exc_info=True
                )
                await self.db.rollback()

            await self.notification_dispatcher.dispatch(snapshot)
            logger.info(
                f"[SESSION MANAGER] Call finalized with {snapshot.status.value}, "
                f"{len(snapshot.answers)} answers - CallSid: {session.call_sid}"
            )
        finally:
            _calls.pop(session.call_sid, None)
            _start_locks.pop(session.call_sid, None)
