"""Explicit state machines for the feature pipelines."""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Generic, Iterable, Mapping, TypeVar

StateT = TypeVar("StateT", bound=Enum)


class InvalidTransition(RuntimeError):
    """Raised when a pipeline tries to move along an undeclared edge."""


class AgeDetectionState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


class ScreenshotState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


AGE_DETECTION_TRANSITIONS: Mapping[AgeDetectionState, Iterable[AgeDetectionState]] = {
    AgeDetectionState.IDLE: (AgeDetectionState.UPLOADING, AgeDetectionState.PROCESSING),
    AgeDetectionState.UPLOADING: (AgeDetectionState.PROCESSING, AgeDetectionState.ERROR),
    AgeDetectionState.PROCESSING: (AgeDetectionState.SUCCESS, AgeDetectionState.ERROR),
    # "Run again" and "try again" restart directly from a terminal state.
    AgeDetectionState.SUCCESS: (
        AgeDetectionState.IDLE,
        AgeDetectionState.UPLOADING,
        AgeDetectionState.PROCESSING,
    ),
    AgeDetectionState.ERROR: (
        AgeDetectionState.IDLE,
        AgeDetectionState.UPLOADING,
        AgeDetectionState.PROCESSING,
    ),
}

SCREENSHOT_TRANSITIONS: Mapping[ScreenshotState, Iterable[ScreenshotState]] = {
    ScreenshotState.IDLE: (ScreenshotState.LOADING,),
    ScreenshotState.LOADING: (ScreenshotState.SUCCESS, ScreenshotState.ERROR),
    ScreenshotState.SUCCESS: (ScreenshotState.IDLE,),
    ScreenshotState.ERROR: (ScreenshotState.IDLE,),
}


class StateMachine(Generic[StateT]):
    """Track a single enum state and reject transitions not in the table."""

    def __init__(
        self,
        initial: StateT,
        transitions: Mapping[StateT, Iterable[StateT]],
        busy: Iterable[StateT] = (),
    ) -> None:
        self._initial = initial
        self._state = initial
        self._transitions: Dict[StateT, FrozenSet[StateT]] = {
            source: frozenset(targets) for source, targets in transitions.items()
        }
        self._busy = frozenset(busy)

    @property
    def state(self) -> StateT:
        return self._state

    @property
    def is_busy(self) -> bool:
        """True while a remote operation is in flight."""
        return self._state in self._busy

    def can_transition(self, target: StateT) -> bool:
        return target in self._transitions.get(self._state, frozenset())

    def transition(self, target: StateT) -> StateT:
        if not self.can_transition(target):
            raise InvalidTransition(f"Cannot move from {self._state.value} to {target.value}")
        self._state = target
        return target

    def reset(self) -> StateT:
        """Return to the initial state from any non-busy state."""
        if self._state == self._initial:
            return self._state
        return self.transition(self._initial)


def age_detection_machine() -> StateMachine[AgeDetectionState]:
    return StateMachine(
        AgeDetectionState.IDLE,
        AGE_DETECTION_TRANSITIONS,
        busy=(AgeDetectionState.UPLOADING, AgeDetectionState.PROCESSING),
    )


def screenshot_machine() -> StateMachine[ScreenshotState]:
    return StateMachine(
        ScreenshotState.IDLE,
        SCREENSHOT_TRANSITIONS,
        busy=(ScreenshotState.LOADING,),
    )
