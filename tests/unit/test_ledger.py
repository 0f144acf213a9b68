"""Unit tests for the append-only history ledger."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from deliverable_approval.db.models import ApprovalHistory
from deliverable_approval.engine.errors import ImmutableRecordError
from deliverable_approval.engine.ledger import (
    HistoryAction,
    HistoryEntryDraft,
    HistoryLedger,
    SignatureAddedMetadata,
    StepActionMetadata,
)
from deliverable_approval.engine.models import WorkflowType


@pytest.fixture
def workflow_id(controller, seeded, actor) -> str:
    view = controller.create_or_replace_workflow(
        deliverable_id=seeded.deliverable_id, workflow_type=WorkflowType.SIMPLE, actor=actor
    )
    return view.id


def test_recent_for_returns_newest_first(sessions, workflow_id, actor) -> None:
    with sessions.begin() as session:
        ledger = HistoryLedger(session)
        for n in range(3):
            ledger.append(
                HistoryEntryDraft(
                    workflow_id=workflow_id,
                    action=HistoryAction.SIGNATURE_ADDED,
                    actor=actor,
                    metadata=SignatureAddedMetadata(
                        signature_id=f"sig-{n}", signature_method="type"
                    ),
                )
            )

    with sessions() as session:
        recent = HistoryLedger(session).recent_for(workflow_id, limit=2)
        assert [r.metadata_json["signature_id"] for r in recent] == ["sig-2", "sig-1"]

        everything = HistoryLedger(session).recent_for(workflow_id, limit=50)
        assert [r.action for r in everything][-1] == HistoryAction.WORKFLOW_CREATED.value
        assert len(everything) == 4


def test_metadata_must_match_action_schema(sessions, workflow_id, actor) -> None:
    with sessions.begin() as session:
        with pytest.raises(TypeError):
            HistoryLedger(session).append(
                HistoryEntryDraft(
                    workflow_id=workflow_id,
                    action=HistoryAction.APPROVE,
                    actor=actor,
                    metadata=SignatureAddedMetadata(signature_id="x", signature_method="draw"),
                )
            )


def test_metadata_is_stored_as_structured_json(sessions, workflow_id, actor) -> None:
    with sessions.begin() as session:
        HistoryLedger(session).append(
            HistoryEntryDraft(
                workflow_id=workflow_id,
                action=HistoryAction.REJECT,
                actor=actor,
                comments="Budget too high",
                metadata=StepActionMetadata(
                    step_number=1,
                    step_name="Approbation",
                    resulting_status="rejected",
                    resulting_current_step=None,
                ),
            )
        )

    with sessions() as session:
        latest = HistoryLedger(session).recent_for(workflow_id, limit=1)[0]
        assert latest.action == "reject"
        assert latest.actor_name == "Acme Corp"
        assert latest.comments == "Budget too high"
        assert latest.metadata_json == {
            "step_number": 1,
            "step_name": "Approbation",
            "resulting_status": "rejected",
            "resulting_current_step": None,
        }


def test_history_rows_cannot_be_updated_or_deleted(sessions, workflow_id) -> None:
    with pytest.raises(ImmutableRecordError):
        with sessions.begin() as session:
            row = session.scalars(
                select(ApprovalHistory).where(ApprovalHistory.workflow_id == workflow_id)
            ).first()
            assert row is not None
            row.comments = "rewritten"

    with pytest.raises(ImmutableRecordError):
        with sessions.begin() as session:
            row = session.scalars(
                select(ApprovalHistory).where(ApprovalHistory.workflow_id == workflow_id)
            ).first()
            session.delete(row)

    with sessions() as session:
        row = session.scalars(
            select(ApprovalHistory).where(ApprovalHistory.workflow_id == workflow_id)
        ).first()
        assert row is not None
        assert row.comments == "Workflow simple created"
