"""Unit tests for scenario validation."""
import pytest

from app.core.exceptions import ScenarioDefect
from app.services.scenario.graph import ScenarioGraph
from app.services.scenario.validator import DefectKind


def build_graph(questions, transitions=None, **scenario_data):
    return ScenarioGraph.from_dict(
        {
            "name": "Test",
            "scenario_data": {
                "questions": questions,
                "transitions": transitions or [],
                **scenario_data,
            },
        }
    )


def kinds(defects):
    return [defect.kind for defect in defects]


class TestScenarioValidator:
    """Test structural defect detection."""

    def test_valid_graph_has_no_defects(self, validator, sample_graph):
        """Test the sample scenario is valid."""
        assert validator.validate(sample_graph) == []

    def test_empty_scenario(self, validator):
        """Test a graph without questions is reported as empty."""
        defects = validator.validate(build_graph([]))

        assert kinds(defects) == [DefectKind.EMPTY_SCENARIO]

    def test_duplicate_question_id_reported_once(self, validator):
        """Test each repeated id yields exactly one defect."""
        graph = build_graph(
            [
                {"id": "a", "text": "A", "type": "voice_recording"},
                {"id": "a", "text": "A again", "type": "voice_recording"},
                {"id": "a", "text": "A third", "type": "voice_recording"},
                {"id": "b", "text": "B", "type": "voice_recording"},
            ]
        )

        defects = validator.validate(graph)

        assert kinds(defects) == [DefectKind.DUPLICATE_QUESTION_ID]
        assert defects[0].question_id == "a"

    def test_unknown_target_question(self, validator):
        """Test a transition to a missing question yields one defect naming it."""
        graph = build_graph(
            [{"id": "a", "text": "A", "type": "voice_recording"}],
            [{"from_question_id": "a", "condition": "*", "to_question_id": "missing"}],
        )

        defects = validator.validate(graph)

        assert kinds(defects) == [DefectKind.UNKNOWN_TARGET_QUESTION]
        assert defects[0].question_id == "missing"

    def test_repeated_unknown_target_question(self, validator):
        """Test each transition to a missing question is reported on its own."""
        graph = build_graph(
            [
                {"id": "a", "text": "A", "type": "voice_recording"},
                {"id": "b", "text": "B", "type": "voice_recording"},
            ],
            [
                {"from_question_id": "a", "condition": "*", "to_question_id": "missing"},
                {"from_question_id": "b", "condition": "*", "to_question_id": "missing"},
            ],
        )

        defects = validator.validate(graph)

        assert kinds(defects) == [DefectKind.UNKNOWN_TARGET_QUESTION] * 2
        assert [defect.question_id for defect in defects] == ["missing", "missing"]

    def test_unknown_source_question(self, validator):
        """Test a transition from a missing question is reported."""
        graph = build_graph(
            [{"id": "a", "text": "A", "type": "voice_recording"}],
            [{"from_question_id": "ghost", "condition": "*", "to_question_id": None}],
        )

        defects = validator.validate(graph)

        assert kinds(defects) == [DefectKind.UNKNOWN_SOURCE_QUESTION]
        assert defects[0].question_id == "ghost"

    def test_end_transition_is_not_dangling(self, validator):
        """Test a transition without a target ends the call and is valid."""
        graph = build_graph(
            [{"id": "a", "text": "A", "type": "voice_recording"}],
            [{"from_question_id": "a", "condition": "*", "to_question_id": None}],
        )

        assert validator.validate(graph) == []

    def test_dtmf_question_without_options(self, validator):
        """Test DTMF questions need at least one option."""
        graph = build_graph([{"id": "menu", "text": "Press a key", "type": "dtmf"}])

        defects = validator.validate(graph)

        assert kinds(defects) == [DefectKind.MISSING_OPTIONS]
        assert defects[0].question_id == "menu"

    def test_unknown_start_question(self, validator):
        """Test a declared start id must exist."""
        graph = build_graph(
            [{"id": "a", "text": "A", "type": "voice_recording"}],
            start_question_id="nope",
        )

        assert kinds(validator.validate(graph)) == [DefectKind.UNKNOWN_START_QUESTION]

    def test_every_defect_reported(self, validator):
        """Test all defects are collected rather than stopping at the first."""
        graph = build_graph(
            [
                {"id": "a", "text": "A", "type": "dtmf"},
                {"id": "a", "text": "A", "type": "voice_recording"},
            ],
            [
                {"from_question_id": "x", "condition": "*", "to_question_id": "y"},
            ],
        )

        assert set(kinds(validator.validate(graph))) == {
            DefectKind.DUPLICATE_QUESTION_ID,
            DefectKind.UNKNOWN_SOURCE_QUESTION,
            DefectKind.UNKNOWN_TARGET_QUESTION,
            DefectKind.MISSING_OPTIONS,
        }

    def test_validation_is_pure(self, validator, sample_graph):
        """Test repeated validation gives the same result and leaves the graph alone."""
        before = sample_graph.to_dict()

        assert validator.validate(sample_graph) == validator.validate(sample_graph)
        assert sample_graph.to_dict() == before

    def test_defect_to_dict(self, validator):
        """Test defects serialize with their kind name."""
        defects = validator.validate(build_graph([]))

        assert defects[0].to_dict() == {
            "kind": "EmptyScenario",
            "description": "At least one question is required",
            "question_id": None,
        }


class TestEnsureActivatable:
    """Test activation gating."""

    def test_valid_graph_passes(self, validator, sample_graph):
        """Test no exception for a valid graph."""
        validator.ensure_activatable(sample_graph)

    def test_defective_graph_raises(self, validator):
        """Test ScenarioDefect carries the defect list."""
        with pytest.raises(ScenarioDefect) as exc_info:
            validator.ensure_activatable(build_graph([]))

        assert kinds(exc_info.value.defects) == [DefectKind.EMPTY_SCENARIO]


class TestActivationNotes:
    """Test runtime policy notes."""

    def test_optional_question_note(self, validator, sample_graph):
        """Test optional questions describe their fallback."""
        notes = validator.activation_notes(sample_graph)

        assert any("'q2' is optional" in note and "end of the call" in note for note in notes)

    def test_required_question_without_transitions(self, validator):
        """Test a required leaf names the question that follows it."""
        graph = build_graph(
            [
                {"id": "a", "text": "A", "type": "voice_recording"},
                {"id": "b", "text": "B", "type": "voice_recording"},
            ]
        )

        notes = validator.activation_notes(graph)

        assert "Question 'a' has no transitions: any answer continues with 'b'." in notes

    def test_unparseable_condition_note(self, validator):
        """Test conditions outside the grammar are flagged."""
        graph = build_graph(
            [{"id": "a", "text": "A", "type": "voice_recording"}],
            [{"from_question_id": "a", "condition": "answer >> 3", "to_question_id": None}],
        )

        notes = validator.activation_notes(graph)

        assert any("cannot be parsed" in note for note in notes)
        assert validator.validate(graph) == []
