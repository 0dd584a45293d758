"""Render engine directives as Twilio TwiML."""
from typing import Optional
from urllib.parse import urlencode

from app.core.config import settings
from app.services.call_session.engine import Directive
from app.services.call_session.models import CallStatus
from app.services.scenario.models import Question, QuestionType


def escape_xml(text: str) -> str:
    """Escape XML special characters."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


class TwimlRenderer:
    """Turns directives into TwiML documents for one call."""

    def __init__(
        self,
        base_url: str = "",
        voice: Optional[str] = None,
        language: Optional[str] = None,
        gather_timeout: Optional[int] = None,
        recording_max_length: Optional[int] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.voice = voice or settings.ivr_voice
        self.language = language or settings.ivr_language
        self.gather_timeout = gather_timeout or settings.ivr_gather_timeout
        self.recording_max_length = recording_max_length or settings.ivr_recording_max_length

    def _url(self, path: str, call_sid: str, question_id: str) -> str:
        query = urlencode({"CallSid": call_sid, "QuestionId": question_id})
        return escape_xml(f"{self.base_url}/webhooks/voice/{path}?{query}")

    def _say(self, text: str) -> str:
        return (
            f'<Say voice="{escape_xml(self.voice)}" language="{escape_xml(self.language)}">'
            f"{escape_xml(text)}</Say>"
        )

    def render(self, directive: Directive, call_sid: str) -> str:
        if directive.is_hang_up:
            return self.hang_up(directive.status)
        return self.prompt(directive.question, call_sid, reprompt=directive.reprompt)

    def prompt(self, question: Question, call_sid: str, reprompt: bool = False) -> str:
        """TwiML asking a question and collecting its answer."""
        preamble = f"\n    {self._say(settings.reprompt_message)}" if reprompt else ""

        if question.type == QuestionType.DTMF:
            action_url = self._url("gather", call_sid, question.id)
            num_digits = max((len(option.key) for option in question.options), default=1)
            return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>{preamble}
    <Gather action="{action_url}" method="POST" input="dtmf" numDigits="{num_digits}" timeout="{self.gather_timeout}">
        {self._say(question.text)}
    </Gather>
    <Redirect method="POST">{action_url}</Redirect>
</Response>"""

        action_url = self._url("recording", call_sid, question.id)
        max_length = question.max_length or self.recording_max_length
        return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>{preamble}
    {self._say(question.text)}
    <Record action="{action_url}" method="POST" maxLength="{max_length}" timeout="{self.gather_timeout}" finishOnKey="#" playBeep="true"/>
    <Redirect method="POST">{action_url}</Redirect>
</Response>"""

    def hang_up(self, status: Optional[CallStatus]) -> str:
        """TwiML ending the call."""
        message = (
            settings.completed_message
            if status == CallStatus.COMPLETED
            else settings.failed_message
        )
        return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    {self._say(message)}
    <Hangup/>
</Response>"""
