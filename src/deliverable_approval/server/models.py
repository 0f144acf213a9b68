"""Pydantic models for the REST server.

Field names follow the JSON the portal front-end exchanges (camelCase).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from deliverable_approval.engine.models import (
    ApproverType,
    HistoryEntryView,
    SignatureMethod,
    SignatureView,
    StepDefinition,
    StepView,
    WorkflowType,
    WorkflowView,
)
from deliverable_approval.engine.state_machine import StepAction


class ApiStepInput(BaseModel):
    stepNumber: int
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    approverType: ApproverType
    approverId: str | None = None
    approverName: str | None = None
    isRequired: bool = True

    def to_definition(self) -> StepDefinition:
        return StepDefinition(
            step_number=self.stepNumber,
            name=self.name,
            description=self.description,
            approver_type=self.approverType,
            approver_id=self.approverId,
            approver_name=self.approverName,
            is_required=self.isRequired,
        )


class CreateWorkflowRequest(BaseModel):
    workflowType: WorkflowType = WorkflowType.SIMPLE
    steps: list[ApiStepInput] | None = None
    force: bool = Field(
        default=False,
        description="Required to replace a workflow that already recorded approvals.",
    )


class StepActionRequest(BaseModel):
    stepId: str
    action: StepAction
    comments: str | None = None


class SignatureRequest(BaseModel):
    # IP address and user agent come from the transport; reject attempts to send them.
    model_config = ConfigDict(extra="forbid")

    stepId: str | None = None
    signatureData: str
    signatureMethod: SignatureMethod = SignatureMethod.DRAW


class RestartRequest(BaseModel):
    force: bool = False


class ApiStep(BaseModel):
    id: str
    stepNumber: int
    name: str
    description: str | None = None
    approverType: str
    approverId: str | None = None
    approverName: str | None = None
    isRequired: bool
    status: str
    comments: str | None = None
    approvedAt: datetime | None = None
    approvedBy: str | None = None

    @classmethod
    def from_view(cls, step: StepView) -> ApiStep:
        return cls(
            id=step.id,
            stepNumber=step.step_number,
            name=step.name,
            description=step.description,
            approverType=step.approver_type,
            approverId=step.approver_id,
            approverName=step.approver_name,
            isRequired=step.is_required,
            status=step.status,
            comments=step.comments,
            approvedAt=step.approved_at,
            approvedBy=step.approved_by,
        )


class ApiSignature(BaseModel):
    id: str
    stepId: str | None = None
    signerType: str
    signerName: str
    signerEmail: str | None = None
    signatureData: str
    signatureMethod: str
    ipAddress: str
    userAgent: str
    signedAt: datetime

    @classmethod
    def from_view(cls, sig: SignatureView) -> ApiSignature:
        return cls(
            id=sig.id,
            stepId=sig.step_id,
            signerType=sig.signer_type,
            signerName=sig.signer_name,
            signerEmail=sig.signer_email,
            signatureData=sig.signature_data,
            signatureMethod=sig.signature_method,
            ipAddress=sig.ip_address,
            userAgent=sig.user_agent,
            signedAt=sig.signed_at,
        )


class ApiHistoryEntry(BaseModel):
    id: int
    stepId: str | None = None
    action: str
    actorType: str
    actorName: str
    comments: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    createdAt: datetime

    @classmethod
    def from_view(cls, entry: HistoryEntryView) -> ApiHistoryEntry:
        return cls(
            id=entry.id,
            stepId=entry.step_id,
            action=entry.action,
            actorType=entry.actor_type,
            actorName=entry.actor_name,
            comments=entry.comments,
            metadata=entry.metadata,
            createdAt=entry.created_at,
        )


class ApiWorkflow(BaseModel):
    id: str
    deliverableId: str
    workflowType: str
    status: str
    currentStep: int | None = None
    createdAt: datetime
    updatedAt: datetime

    steps: list[ApiStep] = Field(default_factory=list)
    signatures: list[ApiSignature] = Field(default_factory=list)
    history: list[ApiHistoryEntry] = Field(default_factory=list)

    @classmethod
    def from_view(cls, view: WorkflowView) -> ApiWorkflow:
        return cls(
            id=view.id,
            deliverableId=view.deliverable_id,
            workflowType=view.workflow_type,
            status=view.status,
            currentStep=view.current_step,
            createdAt=view.created_at,
            updatedAt=view.updated_at,
            steps=[ApiStep.from_view(s) for s in view.steps],
            signatures=[ApiSignature.from_view(s) for s in view.signatures],
            history=[ApiHistoryEntry.from_view(h) for h in view.history],
        )


class ApiError(BaseModel):
    error: str
    detail: str
    details: dict[str, Any] | None = None
