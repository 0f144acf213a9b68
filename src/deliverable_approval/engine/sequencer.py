"""Step sequencer: which step is actionable, and which one comes next.

Works purely on the hydrated step list and the workflow's current-step
pointer; it has no persistence of its own.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Generic, Protocol, TypeVar

from .errors import InvalidStepSequence


class SequencedStep(Protocol):
    @property
    def step_number(self) -> int: ...

    @property
    def is_required(self) -> bool: ...


S = TypeVar("S", bound=SequencedStep)


def validate_step_numbers(steps: Sequence[SequencedStep]) -> None:
    """Steps must be numbered 1..N, in order, and include a required step."""

    if not steps:
        raise InvalidStepSequence("A workflow needs at least one step")

    numbers = [s.step_number for s in steps]
    expected = list(range(1, len(steps) + 1))
    if numbers != expected:
        raise InvalidStepSequence(
            "Steps must be numbered 1..N in order without gaps or duplicates",
            details={"step_numbers": numbers, "expected": expected},
        )

    if not any(s.is_required for s in steps):
        raise InvalidStepSequence("At least one step must be required")


class StepSequencer(Generic[S]):
    def __init__(self, steps: Sequence[S], current_step: int | None) -> None:
        ordered = sorted(steps, key=lambda s: s.step_number)
        validate_step_numbers(ordered)
        if current_step is not None and not 1 <= current_step <= len(ordered):
            raise InvalidStepSequence(
                f"Current step {current_step} is outside 1..{len(ordered)}"
            )
        self._steps = ordered
        self._current = current_step

    @property
    def steps(self) -> list[S]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    @property
    def current(self) -> S | None:
        if self._current is None:
            return None
        return self._steps[self._current - 1]

    def is_current(self, step: SequencedStep) -> bool:
        return self._current is not None and step.step_number == self._current

    def next(self, step: SequencedStep) -> S | None:
        """The step that becomes current once `step` is approved.

        Returns None when no required step follows; any trailing optional steps
        are left unactioned and the workflow is complete.
        """

        following = self._steps[step.step_number :]
        if not any(s.is_required for s in following):
            return None
        return following[0]
