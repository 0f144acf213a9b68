"""Value types exchanged with the engine.

Payload types (what a caller may send) are kept apart from `Actor` and
`RequestContext`, which the transport layer fills in from the authenticated
session and the raw request.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WorkflowType(str, Enum):
    SIMPLE = "simple"
    MULTI_STEP = "multi_step"
    PARALLEL = "parallel"


class ApproverType(str, Enum):
    CLIENT = "client"
    EMPLOYEE = "employee"
    SPECIFIC_USER = "specific_user"


class SignatureMethod(str, Enum):
    DRAW = "draw"
    TYPE = "type"
    UPLOAD = "upload"


@dataclass(frozen=True, slots=True)
class Actor:
    """Who is acting. Resolved by the caller (portal session, employee login)."""

    actor_type: str
    name: str
    email: str | None = None


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Audit fields taken from the transport, never from the caller's payload."""

    ip_address: str = "unknown"
    user_agent: str = "unknown"


class StepDefinition(BaseModel):
    step_number: int
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    approver_type: ApproverType = ApproverType.CLIENT
    approver_id: str | None = None
    approver_name: str | None = None
    is_required: bool = True


class StepView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    step_number: int
    name: str
    description: str | None
    approver_type: str
    approver_id: str | None
    approver_name: str | None
    is_required: bool
    status: str
    comments: str | None
    approved_at: datetime | None
    approved_by: str | None


class SignatureView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    step_id: str | None
    signer_type: str
    signer_name: str
    signer_email: str | None
    signature_data: str
    signature_method: str
    ip_address: str
    user_agent: str
    signed_at: datetime


class HistoryEntryView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    step_id: str | None
    action: str
    actor_type: str
    actor_name: str
    comments: str | None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_json")
    created_at: datetime


class WorkflowView(BaseModel):
    """The hydrated workflow aggregate returned by every controller operation."""

    id: str
    deliverable_id: str
    workflow_type: str
    status: str
    current_step: int | None
    created_at: datetime
    updated_at: datetime

    steps: list[StepView] = Field(default_factory=list)
    signatures: list[SignatureView] = Field(default_factory=list)
    history: list[HistoryEntryView] = Field(default_factory=list)

    def step_by_number(self, step_number: int) -> StepView | None:
        for step in self.steps:
            if step.step_number == step_number:
                return step
        return None
