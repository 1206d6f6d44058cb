"""
Tests for SurveySession: one respondent walking the example survey.
"""

import pytest

from surveynav.config import EngineConfig
from surveynav.examples import example_survey_dict
from surveynav.graph import Position
from surveynav.history import EXHAUSTED, InMemoryHistorySink
from surveynav.model import Survey, SurveyMode
from surveynav.resolver import SUBMIT
from surveynav.serialization import ResumeState, resume_to_dict, survey_from_dict
from surveynav.session import SurveySession, default_skip_on_back


@pytest.fixture
def session(example_survey, scheduler):
    return SurveySession(example_survey, scheduler=scheduler)


def walk_to_about(session):
    session.go_to_next_block()   # intro -> login
    session.go_to_next_block()   # login -> age


def three_page_survey(branching=None):
    first = {"type": "textfield", "uuid": "b1", "fieldName": "skip"}
    if branching is not None:
        first["branchingLogic"] = branching
    return survey_from_dict({
        "rootNode": {
            "type": "section",
            "uuid": "root",
            "items": [
                {"type": "set", "uuid": "s1", "items": [first]},
                {"type": "set", "uuid": "s2", "items": [{"type": "textfield", "uuid": "b2"}]},
                {"type": "set", "uuid": "s3", "items": [{"type": "textfield", "uuid": "b3"}]},
            ],
        },
    })


class TestWalkingForward:
    """go_to_next_block."""

    def test_blocks_then_pages(self, session):
        assert session.current_block.uuid == "intro"
        assert session.go_to_next_block() == Position(0, 1)
        assert session.go_to_next_block() == Position(1, 0)
        assert session.current_block.uuid == "q-age"

    def test_international_route(self, session):
        walk_to_about(session)
        session.go_to_next_block({"age": 30})
        assert session.go_to_next_block({"country": "CA"}) == Position(3, 0)
        assert session.current_block.uuid == "q-region"
        assert session.go_to_next_block() == Position(4, 0)

    def test_us_route(self, session):
        walk_to_about(session)
        session.go_to_next_block({"age": 30})
        session.go_to_next_block({"country": "US"})
        assert session.current_block.uuid == "q-state"
        assert session.go_to_next_block({"state": "OR"}) == Position(4, 0)

    def test_end_block_submits(self, example_survey, scheduler):
        submitted = []
        session = SurveySession(example_survey, scheduler=scheduler, on_submit=submitted.append)
        session.go_to_page(4)
        session.go_to_next_block({"feedback": "none"})
        assert session.current_block.uuid == "end"
        assert session.go_to_next_block() == SUBMIT
        assert session.submitted
        assert submitted == [{"feedback": "none"}]

    def test_computed_values_reach_conditions(self, example_survey, scheduler):
        session = SurveySession(
            example_survey,
            answers={"age": 16},
            computed=lambda answers: {"adult": answers.get("age", 0) >= 18},
            scheduler=scheduler,
        )
        assert session.context() == {"age": 16, "adult": False}
        assert session.visible_blocks(2) == []
        session.set_value("age", 40)
        assert [b.uuid for b in session.visible_blocks(2)] == ["q-state"]
        assert session.visible_blocks(99) == []

    def test_empty_survey_submits(self, scheduler):
        session = SurveySession(Survey(), scheduler=scheduler)
        assert session.current_block is None
        assert session.go_to_next_block() == SUBMIT


class TestBranching:
    """Page-level branching logic on a page's first block."""

    def test_branch_taken(self, scheduler):
        session = SurveySession(three_page_survey({"condition": "skip == true", "targetPage": 2}),
                                scheduler=scheduler)
        assert session.go_to_next_block({"skip": True}) == Position(2, 0)

    def test_branch_not_taken(self, scheduler):
        session = SurveySession(three_page_survey({"condition": "skip == true", "targetPage": 2}),
                                scheduler=scheduler)
        assert session.go_to_next_block({"skip": False}) == Position(1, 0)

    def test_branch_to_submit(self, scheduler):
        session = SurveySession(three_page_survey({"condition": "true", "targetPage": "submit"}),
                                scheduler=scheduler)
        assert session.next_page_index() is None
        assert session.go_to_next_block() == SUBMIT

    def test_last_page_submits(self, scheduler):
        session = SurveySession(three_page_survey(), scheduler=scheduler)
        session.go_to_page(2)
        assert session.next_page_index() is None
        assert session.go_to_next_block() == SUBMIT


class TestGoingBack:
    """go_to_previous_block."""

    def test_back_retraces_route(self, session):
        walk_to_about(session)
        session.go_to_next_block({"age": 30})
        session.go_to_next_block({"country": "CA"})
        assert session.go_to_previous_block() == Position(1, 1)
        assert session.go_to_previous_block() == Position(1, 0)
        assert session.go_to_previous_block() == Position(0, 1)

    def test_signed_in_respondent_skips_login(self, example_survey, scheduler):
        session = SurveySession(example_survey, scheduler=scheduler, is_authenticated=lambda: True)
        walk_to_about(session)
        assert session.go_to_previous_block() == Position(0, 0)

    def test_exhausted_hands_over_to_host(self, example_survey, scheduler):
        sink = InMemoryHistorySink()
        session = SurveySession(example_survey, scheduler=scheduler, sink=sink)
        assert not session.can_go_back
        assert session.go_to_previous_block() == EXHAUSTED
        assert sink.back_requests == 1

    def test_default_skip_rule(self):
        skip = default_skip_on_back(lambda: False)
        blocks = survey_from_dict(example_survey_dict()).root
        login = blocks.find("login")
        assert not skip(login)
        assert default_skip_on_back(lambda: True)(login)
        login.properties["skipIfLoggedIn"] = False
        login.properties["skipOnBack"] = True
        assert skip(login)


class TestJumpAndCallbacks:
    """go_to_page and change notifications."""

    def test_go_to_page(self, session):
        assert session.go_to_page(3) is True
        assert session.current_block.uuid == "q-region"
        assert session.go_to_page(9) is False
        assert session.go_to_page(-1) is False
        assert session.current == Position(3, 0)

    def test_page_change_callback(self, example_survey, scheduler):
        pages = []
        session = SurveySession(example_survey, scheduler=scheduler,
                                on_page_change=lambda page, total: pages.append((page, total)))
        session.go_to_next_block()
        assert pages == []
        session.go_to_next_block()
        assert pages == [(1, 5)]
        session.go_to_previous_block()
        assert pages == [(1, 5), (0, 5)]

    def test_history_change_callback(self, example_survey, scheduler):
        snapshots = []
        session = SurveySession(example_survey, scheduler=scheduler, on_history_change=snapshots.append)
        session.go_to_next_block()
        assert [e.block_uuid for e in snapshots[-1]] == [None, "login"]


class TestProgress:
    """Progress over the visible blocks."""

    def test_progress_never_decreases(self, session):
        seen = [session.progress_percent()]
        for values in ({}, {}, {"age": 20}, {"country": "CA"}, {}, {}):
            session.go_to_next_block(values)
            seen.append(session.progress_percent())
        assert seen == sorted(seen)
        assert seen[-1] == 100.0

    def test_counts(self, example_survey, scheduler):
        session = SurveySession(example_survey, answers={"age": 20}, scheduler=scheduler)
        assert session.total_visible_steps() == 8
        session.go_to_page(1)
        assert session.current_step_position() == 2


class TestPersistence:
    """snapshot / resume / update_survey."""

    def test_snapshot_and_resume(self, session, example_survey, scheduler):
        walk_to_about(session)
        session.go_to_next_block({"age": 30})
        session.go_to_next_block({"country": "CA"})
        state = session.snapshot()
        assert state.current_page_index == 3
        assert state.answers == {"age": 30, "country": "CA"}

        resumed = SurveySession.resume(example_survey, resume_to_dict(state), scheduler=scheduler)
        assert resumed.current == Position(3, 0)
        assert resumed.answers == {"age": 30, "country": "CA"}
        assert resumed.go_to_previous_block() == Position(1, 1)

    def test_resume_after_back_over_skipped_block(self, scheduler):
        """Back leaves the skipped block in the log; resuming must not land on it."""
        survey = survey_from_dict({"rootNode": {"type": "section", "uuid": "root", "items": [
            {"type": "set", "uuid": "s1", "items": [
                {"type": "textfield", "uuid": "a"},
                {"type": "auth", "uuid": "login", "skipOnBack": True},
                {"type": "textfield", "uuid": "c"},
            ]},
            {"type": "set", "uuid": "s2", "items": [{"type": "textfield", "uuid": "d"}]},
        ]}})
        session = SurveySession(survey, scheduler=scheduler)
        session.go_to_next_block()
        session.go_to_next_block()
        assert session.go_to_previous_block() == Position(0, 0)

        resumed = SurveySession.resume(survey, resume_to_dict(session.snapshot()), scheduler=scheduler)
        assert resumed.current == Position(0, 0)
        assert resumed.current_block.uuid == "a"
        assert resumed.current_step_position() == session.current_step_position()
        assert resumed.progress_percent() == session.progress_percent()

    def test_resume_on_skipped_block_when_nothing_else(self, scheduler):
        survey = survey_from_dict({"rootNode": {"type": "section", "uuid": "root", "items": [
            {"type": "set", "uuid": "s1", "items": [{"type": "textfield", "uuid": "a"}]},
            {"type": "set", "uuid": "s2", "items": [{"type": "auth", "uuid": "login", "skipOnBack": True}]},
        ]}})
        session = SurveySession(survey, scheduler=scheduler)
        session.go_to_next_block()
        resumed = SurveySession.resume(survey, session.snapshot(), scheduler=scheduler)
        assert resumed.current == Position(1, 0)

    def test_resume_without_history(self, example_survey, scheduler):
        resumed = SurveySession.resume(example_survey, ResumeState(answers={}, current_page_index=2),
                                       scheduler=scheduler)
        assert resumed.current == Position(2, 0)
        assert len(resumed.history) == 3
        assert resumed.go_to_previous_block() == Position(1, 0)

    def test_update_survey_rekeys_history(self, session, scheduler):
        session.go_to_page(3)
        data = example_survey_dict()
        data["rootNode"]["items"] = [s for s in data["rootNode"]["items"] if s["uuid"] != "page-us"]
        session.update_survey(survey_from_dict(data))
        assert session.total_pages == 4
        assert session.current == Position(2, 0)
        assert session.current_block.uuid == "q-region"

    def test_default_mode_from_config(self, pageless_survey, scheduler):
        session = SurveySession(pageless_survey, config=EngineConfig(default_mode=SurveyMode.PAGED),
                                scheduler=scheduler)
        assert session.total_pages == 1
        assert len(session.current_page) == 3
