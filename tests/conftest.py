"""Shared fixtures: sample surveys and a hand-cranked scheduler."""

from typing import Callable, List

import pytest

from surveynav.examples import build_example_survey, build_pageless_example_survey
from surveynav.graph import build_page_graph
from surveynav.scheduling import ScheduledCall, Scheduler


class ManualCall(ScheduledCall):
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Runs callbacks only when the test advances its clock."""

    def __init__(self):
        self.now = 0.0
        self.calls: List[ManualCall] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualCall:
        call = ManualCall(self.now + delay, callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> List[ManualCall]:
        return [c for c in self.calls if not c.cancelled]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = [c for c in self.pending if c.due <= self.now]
        for call in due:
            self.calls.remove(call)
            call.callback()

    def run_all(self) -> None:
        while self.pending:
            self.advance(max(c.due for c in self.pending) - self.now)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def example_survey():
    return build_example_survey()


@pytest.fixture
def pageless_survey():
    return build_pageless_example_survey()


@pytest.fixture
def graph(example_survey):
    return build_page_graph(example_survey)
