"""History ledger: the append-only audit trail of a workflow.

Entries are written in the same transaction as the state change they record,
so a committed change always has its entry and a rolled back one never does.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from deliverable_approval.db.models import ApprovalHistory

from .models import Actor


class HistoryAction(str, Enum):
    WORKFLOW_CREATED = "workflow_created"
    WORKFLOW_UPDATED = "workflow_updated"
    WORKFLOW_RESTARTED = "workflow_restarted"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"
    SIGNATURE_ADDED = "signature_added"


class WorkflowDefinedMetadata(BaseModel):
    workflow_type: str
    step_count: int
    previous_status: str | None = None
    previous_current_step: int | None = None
    discarded_steps: int = 0
    forced: bool = False


class StepActionMetadata(BaseModel):
    step_number: int
    step_name: str
    resulting_status: str
    resulting_current_step: int | None


class SignatureAddedMetadata(BaseModel):
    signature_id: str
    signature_method: str
    step_number: int | None = None


HistoryMetadata = WorkflowDefinedMetadata | StepActionMetadata | SignatureAddedMetadata

METADATA_SCHEMAS: dict[HistoryAction, type[BaseModel]] = {
    HistoryAction.WORKFLOW_CREATED: WorkflowDefinedMetadata,
    HistoryAction.WORKFLOW_UPDATED: WorkflowDefinedMetadata,
    HistoryAction.WORKFLOW_RESTARTED: WorkflowDefinedMetadata,
    HistoryAction.APPROVE: StepActionMetadata,
    HistoryAction.REJECT: StepActionMetadata,
    HistoryAction.REQUEST_REVISION: StepActionMetadata,
    HistoryAction.SIGNATURE_ADDED: SignatureAddedMetadata,
}


@dataclass(frozen=True, slots=True)
class HistoryEntryDraft:
    workflow_id: str
    action: HistoryAction
    actor: Actor
    metadata: HistoryMetadata
    step_id: str | None = None
    comments: str | None = None


class HistoryLedger:
    """Append and read history entries. There is no update or delete."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def append(self, entry: HistoryEntryDraft) -> ApprovalHistory:
        expected = METADATA_SCHEMAS[entry.action]
        if not isinstance(entry.metadata, expected):
            raise TypeError(
                f"{entry.action.value} entries take {expected.__name__} metadata, "
                f"got {type(entry.metadata).__name__}"
            )

        row = ApprovalHistory(
            workflow_id=entry.workflow_id,
            step_id=entry.step_id,
            action=entry.action.value,
            actor_type=entry.actor.actor_type,
            actor_name=entry.actor.name,
            comments=entry.comments,
            metadata_json=entry.metadata.model_dump(mode="json"),
        )
        self._session.add(row)
        # Flush so the entry is durable within the transaction before we respond.
        self._session.flush()
        return row

    def recent_for(self, workflow_id: str, limit: int) -> list[ApprovalHistory]:
        """Most recent entries first, in commit order."""

        stmt = (
            select(ApprovalHistory)
            .where(ApprovalHistory.workflow_id == workflow_id)
            .order_by(ApprovalHistory.created_at.desc(), ApprovalHistory.id.desc())
            .limit(limit)
        )
        return list(self._session.scalars(stmt))
