from __future__ import annotations

import pytest

from rfprag.errors import IllegalTransitionError
from rfprag.models import ProcessingStatus
from rfprag.services.state import Outcome, ProcessingStateMachine, ProgressReporter, phase_start


def test_successful_run_visits_every_stage_in_order():
    machine = ProcessingStateMachine()
    visited = [machine.apply(Outcome.SUCCEEDED) for _ in range(7)]
    assert visited == [
        ProcessingStatus.UPLOADING,
        ProcessingStatus.EXTRACTING_TEXT,
        ProcessingStatus.DETECTING_QUESTIONS,
        ProcessingStatus.GENERATING_EMBEDDINGS,
        ProcessingStatus.RETRIEVING_RELEVANT_CONTENT,
        ProcessingStatus.GENERATING_ANSWERS,
        ProcessingStatus.COMPLETED,
    ]


@pytest.mark.parametrize(
    "state",
    [
        ProcessingStatus.NOT_STARTED,
        ProcessingStatus.EXTRACTING_TEXT,
        ProcessingStatus.GENERATING_ANSWERS,
    ],
)
def test_failure_moves_to_error(state):
    machine = ProcessingStateMachine(state)
    assert machine.fail() is ProcessingStatus.ERROR


@pytest.mark.parametrize("state", [ProcessingStatus.COMPLETED, ProcessingStatus.ERROR])
def test_terminal_states_have_no_transitions(state):
    machine = ProcessingStateMachine(state)
    with pytest.raises(IllegalTransitionError):
        machine.apply(Outcome.SUCCEEDED)
    with pytest.raises(IllegalTransitionError):
        machine.fail()


def test_advance_rejects_skipping_a_stage():
    machine = ProcessingStateMachine()
    machine.advance(ProcessingStatus.UPLOADING)
    with pytest.raises(IllegalTransitionError):
        machine.advance(ProcessingStatus.DETECTING_QUESTIONS)
    assert machine.state is ProcessingStatus.UPLOADING


def test_phase_start_percentages():
    assert phase_start(ProcessingStatus.UPLOADING) == 0
    assert phase_start(ProcessingStatus.EXTRACTING_TEXT) == 14
    assert phase_start(ProcessingStatus.DETECTING_QUESTIONS) == 28
    assert phase_start(ProcessingStatus.GENERATING_EMBEDDINGS) == 42
    assert phase_start(ProcessingStatus.RETRIEVING_RELEVANT_CONTENT) == 57
    assert phase_start(ProcessingStatus.GENERATING_ANSWERS) == 71
    assert phase_start(ProcessingStatus.COMPLETED) == 100


def test_reporter_never_goes_backwards():
    events = []
    reporter = ProgressReporter(events.append)
    reporter.emit(ProcessingStatus.UPLOADING, "a", 40)
    reporter.emit(ProcessingStatus.UPLOADING, "b", 10)
    reporter.emit(ProcessingStatus.UPLOADING, "c", 250)
    assert [event.percentage for event in events] == [40, 40, 100]
    assert reporter.last_percentage == 100
