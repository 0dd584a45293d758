"""Boundary validation of inbound answers."""
from typing import Optional
from urllib.parse import urlparse

from app.core.exceptions import InvalidAnswerShape
from app.services.call_session.models import AnswerType, RawAnswer
from app.services.scenario.models import Question, QuestionType


class AnswerShapeValidator:
    """Checks raw telephony input against the owning question's type.

    Empty input is a provider timeout and passes through as an empty answer;
    the engine decides whether to re-prompt or fall back.
    """

    def validate_digits(self, question: Question, digits: Optional[str]) -> RawAnswer:
        """Validate key presses for a question."""
        if question.type != QuestionType.DTMF:
            raise InvalidAnswerShape(
                question.id, "key presses received for a voice recording question"
            )

        entry = (digits or "").strip()
        if entry and question.find_option(entry) is None:
            raise InvalidAnswerShape(
                question.id,
                f"'{entry}' is not one of the options "
                f"{[option.key for option in question.options]}",
            )
        return RawAnswer(answer_type=AnswerType.DTMF, value=entry)

    def validate_recording(self, question: Question, recording_url: Optional[str]) -> RawAnswer:
        """Validate a recording reference for a question."""
        if question.type != QuestionType.VOICE_RECORDING:
            raise InvalidAnswerShape(question.id, "recording received for a DTMF question")

        url = (recording_url or "").strip()
        if not url:
            return RawAnswer(answer_type=AnswerType.VOICE, value="")

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidAnswerShape(question.id, f"recording URL is not resolvable: {url!r}")
        return RawAnswer(answer_type=AnswerType.VOICE, value=url, audio_url=url)
