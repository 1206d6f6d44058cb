"""
Tests for survey, condition and resume-state serialization.
"""

import pytest

from surveynav.condition_parser import parse_condition
from surveynav.examples import example_survey_dict
from surveynav.history import NavigationHistoryEntry, Trigger
from surveynav.model import ConditionRule, NavigationRule, SurveyMode
from surveynav.serialization import (
    ResumeState,
    SurveyLoadError,
    block_from_dict,
    condition_from_data,
    expr_from_dict,
    expr_to_dict,
    load_survey,
    resume_from_dict,
    resume_from_json,
    resume_to_dict,
    resume_to_json,
    survey_from_dict,
    survey_from_json,
    survey_from_yaml,
    survey_to_dict,
    survey_to_json,
    survey_to_yaml,
)


def test_example_survey_loads(example_survey):
    """Authored keys map onto the model."""
    assert example_survey.mode == SurveyMode.PAGED
    country = example_survey.get_block("q-country")
    assert country.field_name == "country"
    assert country.navigation_rules[0] == NavigationRule("country == 'US'", "page-us", is_page=True)
    assert country.navigation_rules[1].is_default
    assert example_survey.get_block("login").properties["skipIfLoggedIn"] is True
    assert example_survey.get_block("end").is_end_block
    feedback = example_survey.get_block("q-feedback")
    assert feedback.visible_if == ConditionRule("age", ">=", 18, "number")


def test_json_roundtrip(example_survey):
    """Survey -> JSON -> Survey is lossless."""
    assert survey_from_json(survey_to_json(example_survey)) == example_survey


def test_yaml_roundtrip(example_survey):
    """Survey -> YAML -> Survey is lossless."""
    assert survey_from_yaml(survey_to_yaml(example_survey)) == example_survey


def test_document_roundtrip_keeps_unknown_keys():
    """Keys the engine does not interpret survive a round trip."""
    data = example_survey_dict()
    data["rootNode"]["items"][0]["items"][0]["customWidget"] = {"color": "red"}
    survey = survey_from_dict(data)
    assert survey_to_dict(survey)["rootNode"]["items"][0]["items"][0]["customWidget"] == {"color": "red"}


def test_load_survey_from_files(tmp_path, example_survey):
    """.json and .yaml files are both accepted."""
    json_path = tmp_path / "survey.json"
    json_path.write_text(survey_to_json(example_survey))
    yaml_path = tmp_path / "survey.yml"
    yaml_path.write_text(survey_to_yaml(example_survey))
    assert load_survey(str(json_path)) == example_survey
    assert load_survey(str(yaml_path)) == example_survey


class TestLoadErrors:
    """Malformed documents."""

    def test_block_without_uuid(self):
        with pytest.raises(SurveyLoadError, match=r"rootNode\.items\[0\]"):
            block_from_dict({"uuid": "root", "type": "section", "items": [{"type": "set"}]})

    def test_unknown_mode(self):
        with pytest.raises(SurveyLoadError):
            survey_from_dict({"mode": "sideways", "rootNode": None})

    def test_invalid_json(self):
        with pytest.raises(SurveyLoadError):
            survey_from_json("{not json")

    def test_invalid_yaml(self):
        with pytest.raises(SurveyLoadError):
            survey_from_yaml("a: [unclosed")

    def test_document_not_an_object(self):
        with pytest.raises(SurveyLoadError):
            survey_from_json("[1, 2]")

    def test_missing_root_is_allowed(self):
        assert survey_from_dict({}).root is None

    def test_string_node_references_skipped(self):
        block = block_from_dict({"uuid": "root", "type": "section", "nodes": ["sec-1"]})
        assert block.nodes == []


class TestConditions:
    """Condition payloads."""

    def test_rule_dict_aliases(self):
        assert condition_from_data({"field": "a", "operator": "==", "value": 1, "type": "number"}) == \
            ConditionRule("a", "==", 1, "number")
        assert condition_from_data({"field": "a", "operator": "==", "value": 1}).value_type == "string"

    def test_rule_from_dict_on_model(self):
        assert ConditionRule.from_dict({"field": "a", "operator": ">", "value_type": "number"}) == \
            ConditionRule("a", ">", None, "number")
        with pytest.raises(KeyError):
            ConditionRule.from_dict({"operator": "=="})

    def test_rule_list(self):
        data = [{"field": "a", "operator": "==", "value": 1}, {"field": "b", "operator": "isEmpty"}]
        assert [r.field for r in condition_from_data(data)] == ["a", "b"]

    def test_unsupported_condition(self):
        with pytest.raises(SurveyLoadError):
            condition_from_data(3.5)

    def test_expression_tree_roundtrip(self):
        expr = parse_condition("!(age >= 18) || ['a', b].includes(x) && obj['k'].trim() == 'v'")
        assert expr_from_dict(expr_to_dict(expr)) == expr


class TestResumeState:
    """Answers + page + history."""

    def make_state(self):
        return ResumeState(
            answers={"age": 30, "tags": ["a"]},
            current_page_index=2,
            navigation_history=[
                NavigationHistoryEntry("p0", None, 1000.0, Trigger.INITIAL),
                NavigationHistoryEntry("p2", "q1", 2000.0, Trigger.JUMP),
            ],
        )

    def test_document_shape(self):
        data = resume_to_dict(self.make_state())
        assert set(data) == {"answers", "currentPageIndex", "navigationHistory"}
        assert data["navigationHistory"][0] == {"pageUuid": "p0", "timestamp": 1000.0, "trigger": "initial"}
        assert data["navigationHistory"][1]["blockUuid"] == "q1"

    def test_json_roundtrip(self):
        state = self.make_state()
        assert resume_from_json(resume_to_json(state)) == state

    def test_missing_keys_default(self):
        state = resume_from_dict({"navigationHistory": [{"pageUuid": "p0"}]})
        assert state.answers == {}
        assert state.current_page_index == 0
        assert state.navigation_history[0].trigger == Trigger.FORWARD

    def test_bad_payload(self):
        with pytest.raises(SurveyLoadError):
            resume_from_json("null")
