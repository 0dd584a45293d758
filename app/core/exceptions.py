"""Error taxonomy for scenario authoring and call execution."""
from typing import List, Sequence


def format_validation_errors(errors: Sequence[str]) -> str:
    """Join validation messages into a single newline-separated string."""
    return "\n".join(errors)


class IVRError(Exception):
    """Base class for all IVR errors."""


class MalformedScenario(IVRError):
    """Raised when authored scenario data violates the schema."""

    def __init__(self, errors: Sequence[str]):
        self.errors: List[str] = list(errors)
        super().__init__(format_validation_errors(self.errors) or "Malformed scenario")


class ScenarioDefect(IVRError):
    """Raised when a scenario with semantic defects is activated or executed."""

    def __init__(self, defects):
        self.defects = list(defects)
        super().__init__(
            format_validation_errors([d.description for d in self.defects])
            or "Scenario has defects"
        )


class ScenarioNotFound(IVRError):
    """Raised when a scenario does not exist or is not active."""

    def __init__(self, scenario_id: str):
        self.scenario_id = scenario_id
        super().__init__(f"Scenario not found: {scenario_id}")


class InactiveScenario(IVRError):
    """Raised when a call is started against a scenario that is not active."""


class InvalidAnswerShape(IVRError):
    """Raised when an inbound answer does not fit its question's type."""

    def __init__(self, question_id: str, message: str):
        self.question_id = question_id
        super().__init__(f"{question_id}: {message}")


class OutOfOrderAnswer(IVRError):
    """Raised when an answer targets a question other than the current one."""

    def __init__(self, question_id: str, current_question_id):
        self.question_id = question_id
        self.current_question_id = current_question_id
        super().__init__(
            f"Answer for {question_id} received while awaiting {current_question_id}"
        )


class SessionAlreadyTerminal(IVRError):
    """Raised when a terminal call session is mutated."""

    def __init__(self, session_id: str, status):
        self.session_id = session_id
        self.status = status
        super().__init__(f"Session {session_id} is already terminal ({status})")


class DialerError(IVRError):
    """Raised when the telephony provider rejects an outbound call."""
