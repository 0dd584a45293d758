"""Unit tests for TwiML rendering."""
import pytest

from app.core.config import settings
from app.services.call_session.engine import Directive
from app.services.call_session.models import CallStatus
from app.services.scenario.graph import ScenarioGraph
from app.services.telephony.twiml import TwimlRenderer, escape_xml


@pytest.fixture
def renderer():
    return TwimlRenderer(base_url="https://ivr.example.com/", voice="Polly.Mizuki", language="ja-JP")


class TestEscapeXml:
    def test_special_characters(self):
        """Test XML special characters are escaped."""
        assert escape_xml("<a & 'b'>\"") == "&lt;a &amp; &apos;b&apos;&gt;&quot;"


class TestTwimlRenderer:
    """Test TwiML generation from directives."""

    def test_dtmf_prompt(self, renderer, sample_graph):
        """Test a DTMF question becomes a Gather posting back to the gather webhook."""
        twiml = renderer.render(Directive.play_prompt(sample_graph.get_question("q1")), "CA1")

        assert twiml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert "<Gather" in twiml
        assert 'action="https://ivr.example.com/webhooks/voice/gather?CallSid=CA1&amp;QuestionId=q1"' in twiml
        assert 'numDigits="1"' in twiml
        assert "Are you interested? Press 1 for yes, 2 for no." in twiml
        assert '<Say voice="Polly.Mizuki" language="ja-JP">' in twiml
        assert "<Redirect" in twiml
        assert settings.reprompt_message not in twiml

    def test_voice_prompt(self, renderer, sample_graph):
        """Test a recording question becomes a Record with the question's max length."""
        twiml = renderer.render(Directive.play_prompt(sample_graph.get_question("q2")), "CA1")

        assert "<Record" in twiml
        assert "/webhooks/voice/recording?CallSid=CA1&amp;QuestionId=q2" in twiml
        assert 'maxLength="30"' in twiml
        assert "<Gather" not in twiml

    def test_voice_prompt_default_max_length(self, renderer, scenario_data):
        """Test the configured recording length applies when a question has none."""
        del scenario_data["scenario_data"]["questions"][1]["max_length"]
        question = ScenarioGraph.from_dict(scenario_data).get_question("q2")

        twiml = renderer.prompt(question, "CA1")

        assert f'maxLength="{settings.ivr_recording_max_length}"' in twiml

    def test_reprompt_prepends_message(self, renderer, sample_graph):
        """Test a re-prompt apologizes before asking again."""
        directive = Directive.play_prompt(sample_graph.get_question("q1"), reprompt=True)

        twiml = renderer.render(directive, "CA1")

        assert twiml.index(settings.reprompt_message) < twiml.index("<Gather")

    def test_question_text_is_escaped(self, renderer, scenario_data):
        """Test question text cannot break the document."""
        scenario_data["scenario_data"]["questions"][0]["text"] = "Press 1 <yes> & 2 <no>"
        question = ScenarioGraph.from_dict(scenario_data).get_question("q1")

        twiml = renderer.prompt(question, "CA1")

        assert "Press 1 &lt;yes&gt; &amp; 2 &lt;no&gt;" in twiml

    def test_hang_up_completed(self, renderer):
        """Test a completed call thanks the callee and hangs up."""
        twiml = renderer.render(Directive.hang_up(CallStatus.COMPLETED), "CA1")

        assert settings.completed_message in twiml
        assert "<Hangup/>" in twiml

    def test_hang_up_failed(self, renderer):
        """Test a failed call says goodbye with the failure message."""
        twiml = renderer.render(Directive.hang_up(CallStatus.FAILED, "boom"), "CA1")

        assert settings.failed_message in twiml
        assert "boom" not in twiml
        assert "<Hangup/>" in twiml
