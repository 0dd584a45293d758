"""Unit tests for call session state."""
import pytest

from app.core.exceptions import SessionAlreadyTerminal
from app.services.call_session.models import (
    Answer,
    AnswerType,
    CallSession,
    CallStatus,
    RawAnswer,
)


@pytest.fixture
def session():
    return CallSession(call_sid="CA123", scenario_id="s1", scenario_version=2, phone_number="+819012345678")


def make_answer(question_id="q1", value="1"):
    return Answer(question_id=question_id, answer_type=AnswerType.DTMF, value=value)


class TestCallStatus:
    """Test status helpers."""

    @pytest.mark.parametrize(
        "status,terminal",
        [
            (CallStatus.INITIATED, False),
            (CallStatus.IN_PROGRESS, False),
            (CallStatus.COMPLETED, True),
            (CallStatus.FAILED, True),
            (CallStatus.NO_ANSWER, True),
        ],
    )
    def test_is_terminal(self, status, terminal):
        assert status.is_terminal is terminal


class TestRawAnswer:
    def test_whitespace_is_empty(self):
        """Test blank input counts as no input."""
        assert RawAnswer(answer_type=AnswerType.DTMF, value="  ").is_empty is True
        assert RawAnswer(answer_type=AnswerType.DTMF).is_empty is True
        assert RawAnswer(answer_type=AnswerType.DTMF, value="1").is_empty is False


class TestCallSession:
    """Test session lifecycle."""

    def test_initial_state(self, session):
        """Test a new session is initiated and not started."""
        assert session.status == CallStatus.INITIATED
        assert session.is_started is False
        assert session.current_question_id is None
        assert session.answers == []
        assert session.id

    def test_begin(self, session):
        """Test begin moves the session to its first question."""
        session.begin("q1")

        assert session.status == CallStatus.IN_PROGRESS
        assert session.current_question_id == "q1"
        assert session.is_started is True

    def test_record_answer_advances(self, session):
        """Test answers are appended in order and the cursor moves."""
        session.begin("q1")
        session.record_answer(make_answer("q1"), "q2")
        session.record_answer(make_answer("q2", "https://example.com/a.wav"), None)

        assert [a.question_id for a in session.answers] == ["q1", "q2"]
        assert session.current_question_id is None

    def test_get_answer_returns_latest(self, session):
        """Test the most recent answer for a question wins."""
        session.begin("q1")
        session.record_answer(make_answer("q1", "1"), "q1")
        session.record_answer(make_answer("q1", "2"), "q2")

        assert session.get_answer("q1").value == "2"
        assert session.get_answer("q2") is None

    def test_register_retry_counts_per_question(self, session):
        """Test retries are counted per question."""
        session.begin("q1")

        assert session.register_retry("q1") == 1
        assert session.register_retry("q1") == 2
        assert session.register_retry("q2") == 1

    def test_finalize(self, session):
        """Test finalizing sets status, completion time and clears the cursor."""
        session.begin("q1")

        session.finalize(CallStatus.FAILED, "Provider failure")

        assert session.status == CallStatus.FAILED
        assert session.is_terminal is True
        assert session.current_question_id is None
        assert session.completed_at is not None
        assert session.error_message == "Provider failure"

    def test_finalize_requires_terminal_status(self, session):
        """Test non-terminal statuses are rejected."""
        with pytest.raises(ValueError):
            session.finalize(CallStatus.IN_PROGRESS)

    def test_terminal_session_is_frozen(self, session):
        """Test every mutation raises once the session is terminal."""
        session.begin("q1")
        session.finalize(CallStatus.COMPLETED)

        with pytest.raises(SessionAlreadyTerminal):
            session.record_answer(make_answer(), None)
        with pytest.raises(SessionAlreadyTerminal):
            session.skip_to("q2")
        with pytest.raises(SessionAlreadyTerminal):
            session.register_retry("q1")
        with pytest.raises(SessionAlreadyTerminal):
            session.finalize(CallStatus.FAILED)
        with pytest.raises(SessionAlreadyTerminal):
            session.begin("q1")

        assert session.status == CallStatus.COMPLETED


class TestCallSessionSnapshot:
    """Test immutable snapshots."""

    def test_snapshot_copies_state(self, session):
        """Test the snapshot carries identity, answers and status."""
        session.begin("q1")
        session.record_answer(make_answer(), None)
        session.finalize(CallStatus.COMPLETED)

        snapshot = session.snapshot()

        assert snapshot.id == session.id
        assert snapshot.call_sid == "CA123"
        assert snapshot.scenario_version == 2
        assert snapshot.status == CallStatus.COMPLETED
        assert snapshot.is_terminal is True
        assert len(snapshot.answers) == 1
        assert snapshot.duration_seconds >= 0

    def test_snapshot_is_detached(self, session):
        """Test later session changes do not leak into a snapshot."""
        session.begin("q1")
        snapshot = session.snapshot()

        session.record_answer(make_answer(), "q2")

        assert snapshot.answers == []
        assert snapshot.current_question_id == "q1"
        assert snapshot.duration_seconds is None
