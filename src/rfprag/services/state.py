"""Processing state machine and progress reporting."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Tuple

from rfprag.errors import IllegalTransitionError
from rfprag.models import ProcessingStatus, ProgressEvent

ProgressSink = Callable[[ProgressEvent], None]


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_PIPELINE_ORDER: Tuple[ProcessingStatus, ...] = (
    ProcessingStatus.NOT_STARTED,
    ProcessingStatus.UPLOADING,
    ProcessingStatus.EXTRACTING_TEXT,
    ProcessingStatus.DETECTING_QUESTIONS,
    ProcessingStatus.GENERATING_EMBEDDINGS,
    ProcessingStatus.RETRIEVING_RELEVANT_CONTENT,
    ProcessingStatus.GENERATING_ANSWERS,
    ProcessingStatus.COMPLETED,
)


def _build_transitions() -> Dict[Tuple[ProcessingStatus, Outcome], ProcessingStatus]:
    table: Dict[Tuple[ProcessingStatus, Outcome], ProcessingStatus] = {}
    for current, following in zip(_PIPELINE_ORDER, _PIPELINE_ORDER[1:]):
        table[(current, Outcome.SUCCEEDED)] = following
        table[(current, Outcome.FAILED)] = ProcessingStatus.ERROR
    return table


TRANSITIONS: Mapping[Tuple[ProcessingStatus, Outcome], ProcessingStatus] = _build_transitions()

# Progress phases: upload, extract, detect, embed, retrieve, answer, complete.
PHASE_COUNT = 7
_PHASE_INDEX: Mapping[ProcessingStatus, int] = {
    status: index for index, status in enumerate(_PIPELINE_ORDER[1:])
}


def phase_start(status: ProcessingStatus) -> int:
    """Percentage at which ``status`` begins; ``COMPLETED`` maps to 100."""

    if status is ProcessingStatus.COMPLETED:
        return 100
    if status not in _PHASE_INDEX:
        return 0
    return _PHASE_INDEX[status] * 100 // PHASE_COUNT


class ProcessingStateMachine:
    """Finite-state machine driven by stage outcomes via :data:`TRANSITIONS`."""

    def __init__(self, state: ProcessingStatus = ProcessingStatus.NOT_STARTED) -> None:
        self._state = state

    @property
    def state(self) -> ProcessingStatus:
        return self._state

    @staticmethod
    def next_state(state: ProcessingStatus, outcome: Outcome) -> ProcessingStatus:
        try:
            return TRANSITIONS[(state, outcome)]
        except KeyError:
            raise IllegalTransitionError(f"No transition from {state.value} on {outcome.value}") from None

    def apply(self, outcome: Outcome) -> ProcessingStatus:
        self._state = self.next_state(self._state, outcome)
        return self._state

    def advance(self, expected: ProcessingStatus) -> ProcessingStatus:
        """Succeed the current stage, asserting the stage entered is ``expected``."""

        following = self.next_state(self._state, Outcome.SUCCEEDED)
        if following is not expected:
            raise IllegalTransitionError(f"Cannot move from {self._state.value} to {expected.value}")
        self._state = following
        return following

    def fail(self) -> ProcessingStatus:
        return self.apply(Outcome.FAILED)


class ProgressReporter:
    """Forward progress events to a sink, never letting the percentage go backwards."""

    def __init__(self, sink: Optional[ProgressSink] = None) -> None:
        self._sink = sink
        self._last = 0

    @property
    def last_percentage(self) -> int:
        return self._last

    def emit(self, status: ProcessingStatus, message: str, percentage: int) -> ProgressEvent:
        self._last = max(self._last, min(100, max(0, int(percentage))))
        event = ProgressEvent(status=status, message=message, percentage=self._last)
        if self._sink is not None:
            self._sink(event)
        return event


__all__ = [
    "Outcome",
    "PHASE_COUNT",
    "ProcessingStateMachine",
    "ProgressReporter",
    "ProgressSink",
    "TRANSITIONS",
    "phase_start",
]
