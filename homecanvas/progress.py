"""
progress.py — Pipeline stages and forward-only progress tracking.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, Optional

from .errors import PipelineError


class Stage(str, Enum):
    RESIZING = "resizing"
    MARKING = "marking"
    DESCRIBING = "describing"
    COMPOSING = "composing"
    CROPPING = "cropping"
    DONE = "done"


class StageStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


# Stages shown to the user; DONE is only a terminal signal
STAGES: List[Stage] = [
    Stage.RESIZING,
    Stage.MARKING,
    Stage.DESCRIBING,
    Stage.COMPOSING,
    Stage.CROPPING,
]

ProgressCallback = Callable[[Stage], None]


class PipelineProgress:
    """
    Status per stage for one run.

    Entering a stage completes every earlier stage; nothing ever moves back
    to pending until `reset()`.
    """

    def __init__(self) -> None:
        self._status: Dict[Stage, StageStatus] = {}
        self._current: Optional[Stage] = None
        self.reset()

    def reset(self) -> None:
        self._status = {s: StageStatus.PENDING for s in STAGES}
        self._current = None

    @property
    def current(self) -> Optional[Stage]:
        return self._current

    def status(self, stage: Stage) -> StageStatus:
        return self._status[stage]

    def advance(self, stage: Stage) -> None:
        if stage is Stage.DONE:
            self.complete()
            return
        index = STAGES.index(stage)
        if self._current is not None and self._current is not Stage.DONE:
            if index < STAGES.index(self._current):
                raise PipelineError(
                    f"Progress cannot move back from {self._current.value} to {stage.value}",
                    stage=stage.value,
                )
        elif self._current is Stage.DONE:
            raise PipelineError("Progress already completed", stage=stage.value)
        for earlier in STAGES[:index]:
            self._status[earlier] = StageStatus.COMPLETED
        self._status[stage] = StageStatus.IN_PROGRESS
        self._current = stage

    def complete(self) -> None:
        for s in STAGES:
            self._status[s] = StageStatus.COMPLETED
        self._current = Stage.DONE

    def as_dict(self) -> Dict[str, str]:
        return {s.value: self._status[s].value for s in STAGES}
