"""Error taxonomy for the approval engine.

Every rejected transition surfaces as a typed `ApprovalError`; the REST adapter
maps `http_status` onto the response and never retries on its own.
"""

from __future__ import annotations

from typing import ClassVar


class ApprovalError(Exception):
    """Base class for every failure the engine reports to its caller."""

    code: ClassVar[str] = "approval_error"
    http_status: ClassVar[int] = 400

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(ApprovalError):
    code = "not_found"
    http_status = 404


class DeliverableNotFound(NotFound):
    code = "deliverable_not_found"


class WorkflowNotFound(NotFound):
    code = "workflow_not_found"


class InvalidInput(ApprovalError):
    """Malformed input caught before any mutation."""

    code = "invalid_input"
    http_status = 422


class InvalidStepSequence(InvalidInput):
    code = "invalid_step_sequence"


class InvalidSignaturePayload(InvalidInput):
    code = "invalid_signature_payload"


class UnsupportedWorkflowType(InvalidInput):
    code = "unsupported_workflow_type"


class StepOutOfOrder(ApprovalError):
    """The targeted step is not (or no longer) the current step.

    Callers should re-fetch the workflow and decide again.
    """

    code = "step_out_of_order"
    http_status = 409


class WorkflowTerminal(ApprovalError):
    """Mutation attempted on an approved or rejected workflow."""

    code = "workflow_terminal"
    http_status = 409


class RedefinitionRefused(ApprovalError):
    """Replacing a workflow with recorded progress needs an explicit `force`."""

    code = "redefinition_refused"
    http_status = 409


class InternalError(ApprovalError):
    """Storage or transaction failure. Safe to retry the whole operation."""

    code = "internal_error"
    http_status = 500


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to update or delete an evidentiary row."""
