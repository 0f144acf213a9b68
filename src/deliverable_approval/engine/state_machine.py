"""Explicit workflow state machine.

A workflow is in exactly one of four states. Only the two open states carry a
current-step pointer, so an approved workflow with a dangling pointer cannot be
represented.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

from .errors import InternalError, WorkflowTerminal


class WorkflowStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"


class StepStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class StepAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"


@dataclass(frozen=True, slots=True)
class Pending:
    current_step: int
    status: ClassVar[WorkflowStatus] = WorkflowStatus.PENDING


@dataclass(frozen=True, slots=True)
class InProgress:
    current_step: int
    status: ClassVar[WorkflowStatus] = WorkflowStatus.IN_PROGRESS


@dataclass(frozen=True, slots=True)
class Approved:
    status: ClassVar[WorkflowStatus] = WorkflowStatus.APPROVED


@dataclass(frozen=True, slots=True)
class Rejected:
    status: ClassVar[WorkflowStatus] = WorkflowStatus.REJECTED


WorkflowState = Pending | InProgress | Approved | Rejected

OpenState = Pending | InProgress


def is_terminal(state: WorkflowState) -> bool:
    return isinstance(state, Approved | Rejected)


def current_step_of(state: WorkflowState) -> int | None:
    if isinstance(state, Pending | InProgress):
        return state.current_step
    return None


def state_from_columns(status: str, current_step: int | None) -> WorkflowState:
    """Rebuild the tagged state from its persisted columns."""

    try:
        parsed = WorkflowStatus(status)
    except ValueError as e:
        raise InternalError(f"Unknown workflow status in storage: {status!r}") from e

    if parsed in (WorkflowStatus.APPROVED, WorkflowStatus.REJECTED):
        if current_step is not None:
            raise InternalError(
                f"Terminal workflow carries a current step: {parsed.value}/{current_step}"
            )
        return Approved() if parsed is WorkflowStatus.APPROVED else Rejected()

    if current_step is None or current_step < 1:
        raise InternalError(f"Open workflow without a valid current step: {current_step!r}")
    if parsed is WorkflowStatus.PENDING:
        return Pending(current_step=current_step)
    return InProgress(current_step=current_step)


def state_to_columns(state: WorkflowState) -> tuple[str, int | None]:
    return state.status.value, current_step_of(state)


def transition(
    *, current: WorkflowState, action: StepAction, next_step: int | None
) -> WorkflowState:
    """Policy: (state, action on the current step) -> next state.

    `next_step` is the number of the step that becomes current after an
    approval, or None when the approved step was the last one that needs action.
    """

    if not isinstance(current, Pending | InProgress):
        raise WorkflowTerminal(
            f"Workflow is {current.status.value}; no further step actions are accepted",
            details={"status": current.status.value},
        )

    if action is StepAction.APPROVE:
        if next_step is None:
            return Approved()
        if next_step <= current.current_step:
            raise InternalError(
                f"Next step {next_step} does not advance past {current.current_step}"
            )
        return InProgress(current_step=next_step)

    if action is StepAction.REJECT:
        return Rejected()

    # A revision request is a controlled retry: the same step stays current.
    return Pending(current_step=current.current_step)


STEP_STATUS_AFTER: dict[StepAction, StepStatus] = {
    StepAction.APPROVE: StepStatus.APPROVED,
    StepAction.REJECT: StepStatus.REJECTED,
    StepAction.REQUEST_REVISION: StepStatus.PENDING,
}
