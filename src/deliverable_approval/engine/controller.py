"""Workflow controller: lifecycle, step transitions and status propagation.

Each public operation is one database transaction. The workflow row is read
`FOR UPDATE` and the state change is applied as a compare-and-set on
`(status, current_step)`, so of two concurrent approvals of the same step
exactly one advances the workflow and the other sees `StepOutOfOrder`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from deliverable_approval.config import ApprovalSettings
from deliverable_approval.db.base import utc_now
from deliverable_approval.db.models import ApprovalStep, ApprovalWorkflow

from .deliverables import DeliverableGateway
from .errors import (
    ApprovalError,
    InternalError,
    InvalidSignaturePayload,
    InvalidStepSequence,
    RedefinitionRefused,
    StepOutOfOrder,
    UnsupportedWorkflowType,
    WorkflowNotFound,
    WorkflowTerminal,
)
from .ledger import (
    HistoryAction,
    HistoryEntryDraft,
    HistoryLedger,
    SignatureAddedMetadata,
    StepActionMetadata,
    WorkflowDefinedMetadata,
)
from .models import (
    Actor,
    ApproverType,
    HistoryEntryView,
    RequestContext,
    SignatureMethod,
    SignatureView,
    StepDefinition,
    StepView,
    WorkflowType,
    WorkflowView,
)
from .sequencer import StepSequencer, validate_step_numbers
from .signatures import SignatureDraft, SignatureStore
from .state_machine import (
    STEP_STATUS_AFTER,
    Approved,
    Pending,
    Rejected,
    StepAction,
    StepStatus,
    WorkflowState,
    WorkflowStatus,
    current_step_of,
    is_terminal,
    state_from_columns,
    state_to_columns,
    transition,
)

logger = logging.getLogger(__name__)


class WorkflowController:
    def __init__(self, sessions: sessionmaker[Session], settings: ApprovalSettings) -> None:
        self._sessions = sessions
        self._settings = settings

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[Session]:
        try:
            with self._sessions.begin() as session:
                yield session
        except ApprovalError:
            raise
        except SQLAlchemyError as e:
            logger.error(
                "Storage failure; transaction rolled back",
                exc_info=True,
                extra={"operation": operation},
            )
            raise InternalError(f"Storage failure during {operation}") from e

    # Reads

    def get_workflow(self, deliverable_id: str) -> WorkflowView | None:
        with self._transaction("get_workflow") as session:
            DeliverableGateway(session).ensure_exists(deliverable_id)
            workflow = self._by_deliverable(session, deliverable_id)
            if workflow is None:
                return None
            return self._hydrate(session, workflow, self._settings.history_detail_limit)

    def find_workflow_id(self, deliverable_id: str) -> str:
        with self._transaction("find_workflow_id") as session:
            workflow = self._by_deliverable(session, deliverable_id)
            if workflow is None:
                raise WorkflowNotFound(f"No approval workflow for deliverable {deliverable_id}")
            return workflow.id

    # Lifecycle

    def create_or_replace_workflow(
        self,
        *,
        deliverable_id: str,
        workflow_type: WorkflowType,
        actor: Actor,
        steps: Sequence[StepDefinition] | None = None,
        force: bool = False,
    ) -> WorkflowView:
        """Define the approval process for a deliverable.

        An existing workflow is replaced: its steps are discarded and the new
        ones start from step 1. Replacing a workflow that already recorded
        progress requires `force=True`.
        """

        definitions = self._resolve_definitions(workflow_type, steps, actor)

        with self._transaction("create_or_replace_workflow") as session:
            gateway = DeliverableGateway(session)
            gateway.ensure_exists(deliverable_id)

            workflow = self._by_deliverable(session, deliverable_id, lock=True)
            if workflow is None:
                workflow = ApprovalWorkflow(
                    deliverable_id=deliverable_id,
                    workflow_type=workflow_type.value,
                    status=WorkflowStatus.PENDING.value,
                    current_step=1,
                )
                session.add(workflow)
                action = HistoryAction.WORKFLOW_CREATED
                metadata = WorkflowDefinedMetadata(
                    workflow_type=workflow_type.value, step_count=len(definitions)
                )
            else:
                action = HistoryAction.WORKFLOW_UPDATED
                metadata = self._reset(
                    session,
                    workflow,
                    force=force,
                    workflow_type=workflow_type,
                    step_count=len(definitions),
                    guard=_has_progress,
                )
                workflow.workflow_type = workflow_type.value

            workflow.steps.extend(_step_row(d) for d in definitions)
            gateway.enable_workflow(deliverable_id)
            session.flush()

            HistoryLedger(session).append(
                HistoryEntryDraft(
                    workflow_id=workflow.id,
                    action=action,
                    actor=actor,
                    metadata=metadata,
                    comments=f"Workflow {workflow_type.value} "
                    + ("created" if action is HistoryAction.WORKFLOW_CREATED else "updated"),
                )
            )
            logger.info(
                "Approval workflow defined",
                extra={
                    "workflow_id": workflow.id,
                    "deliverable_id": deliverable_id,
                    "workflow_type": workflow_type.value,
                    "history_action": action.value,
                    "step_count": len(definitions),
                },
            )
            return self._hydrate(session, workflow, self._settings.history_limit)

    def restart_workflow(
        self, *, deliverable_id: str, actor: Actor, force: bool = False
    ) -> WorkflowView:
        """Start sign-off over with the same steps, e.g. for a new deliverable version.

        Allowed without `force` when the workflow is pending (typically after a
        revision request) or rejected.
        """

        with self._transaction("restart_workflow") as session:
            workflow = self._by_deliverable(session, deliverable_id, lock=True)
            if workflow is None:
                raise WorkflowNotFound(f"No approval workflow for deliverable {deliverable_id}")

            definitions = [_step_definition(s) for s in workflow.steps]
            metadata = self._reset(
                session,
                workflow,
                force=force,
                workflow_type=WorkflowType(workflow.workflow_type),
                step_count=len(definitions),
                guard=_blocks_restart,
            )
            workflow.steps.extend(_step_row(d) for d in definitions)
            session.flush()

            HistoryLedger(session).append(
                HistoryEntryDraft(
                    workflow_id=workflow.id,
                    action=HistoryAction.WORKFLOW_RESTARTED,
                    actor=actor,
                    metadata=metadata,
                    comments=f"Workflow {workflow.workflow_type} restarted",
                )
            )
            logger.info(
                "Approval workflow restarted",
                extra={"workflow_id": workflow.id, "deliverable_id": deliverable_id},
            )
            return self._hydrate(session, workflow, self._settings.history_limit)

    # Step transitions

    def act_on_step(
        self,
        *,
        workflow_id: str,
        step_id: str,
        action: StepAction,
        actor: Actor,
        comments: str | None = None,
    ) -> WorkflowView:
        with self._transaction("act_on_step") as session:
            workflow = self._lock_workflow(session, workflow_id)
            state = state_from_columns(workflow.status, workflow.current_step)

            if is_terminal(state):
                raise WorkflowTerminal(
                    f"Workflow is {state.status.value}; no further step actions are accepted",
                    details={"status": state.status.value},
                )

            sequencer = StepSequencer(workflow.steps, current_step_of(state))
            step = next((s for s in sequencer.steps if s.id == step_id), None)
            if step is None or not sequencer.is_current(step):
                raise StepOutOfOrder(
                    "This step is not the next one to act on",
                    details={"step_id": step_id, "current_step": current_step_of(state)},
                )

            following = sequencer.next(step) if action is StepAction.APPROVE else None
            new_state = transition(
                current=state,
                action=action,
                next_step=following.step_number if following is not None else None,
            )

            now = utc_now()
            self._compare_and_set(session, workflow, expected=state, new=new_state)

            approved = action is StepAction.APPROVE
            step.status = STEP_STATUS_AFTER[action].value
            step.comments = comments
            step.approved_at = now if approved else None
            step.approved_by = actor.name if approved else None

            gateway = DeliverableGateway(session)
            if isinstance(new_state, Approved):
                gateway.mark_approved(workflow.deliverable_id, at=now, by=actor.name)
            elif isinstance(new_state, Rejected):
                gateway.mark_rejected(workflow.deliverable_id)
            elif action is StepAction.REQUEST_REVISION:
                gateway.mark_revision_requested(workflow.deliverable_id, feedback=comments)

            status, current = state_to_columns(new_state)
            HistoryLedger(session).append(
                HistoryEntryDraft(
                    workflow_id=workflow.id,
                    step_id=step.id,
                    action=HistoryAction(action.value),
                    actor=actor,
                    comments=comments,
                    metadata=StepActionMetadata(
                        step_number=step.step_number,
                        step_name=step.name,
                        resulting_status=status,
                        resulting_current_step=current,
                    ),
                )
            )
            logger.info(
                "Step action applied",
                extra={
                    "workflow_id": workflow.id,
                    "step_number": step.step_number,
                    "step_action": action.value,
                    "workflow_status": status,
                    "current_step": current,
                },
            )
            return self._hydrate(session, workflow, self._settings.history_limit)

    # Signatures

    def attach_signature(
        self,
        *,
        workflow_id: str,
        signature_data: str,
        signature_method: SignatureMethod,
        actor: Actor,
        context: RequestContext,
        step_id: str | None = None,
    ) -> WorkflowView:
        """Record a signing event. Does not change workflow or step status."""

        with self._transaction("attach_signature") as session:
            workflow = session.get(ApprovalWorkflow, workflow_id)
            if workflow is None:
                raise WorkflowNotFound(f"Workflow {workflow_id} not found")

            step_number: int | None = None
            if step_id is not None:
                step = next((s for s in workflow.steps if s.id == step_id), None)
                if step is None:
                    raise InvalidSignaturePayload(
                        "Signature step does not belong to this workflow",
                        details={"step_id": step_id},
                    )
                step_number = step.step_number

            signature_id = SignatureStore(
                session, max_bytes=self._settings.signature_max_bytes
            ).append(
                SignatureDraft(
                    workflow_id=workflow.id,
                    step_id=step_id,
                    signer=actor,
                    signature_data=signature_data,
                    signature_method=signature_method,
                    context=context,
                )
            )
            HistoryLedger(session).append(
                HistoryEntryDraft(
                    workflow_id=workflow.id,
                    step_id=step_id,
                    action=HistoryAction.SIGNATURE_ADDED,
                    actor=actor,
                    metadata=SignatureAddedMetadata(
                        signature_id=signature_id,
                        signature_method=signature_method.value,
                        step_number=step_number,
                    ),
                )
            )
            logger.info(
                "Signature attached",
                extra={
                    "workflow_id": workflow.id,
                    "signature_id": signature_id,
                    "signature_method": signature_method.value,
                },
            )
            return self._hydrate(session, workflow, self._settings.history_limit)

    # Internals

    def _resolve_definitions(
        self,
        workflow_type: WorkflowType,
        steps: Sequence[StepDefinition] | None,
        actor: Actor,
    ) -> list[StepDefinition]:
        if workflow_type is WorkflowType.PARALLEL:
            raise UnsupportedWorkflowType(
                "Parallel approval workflows are not supported",
                details={"workflow_type": workflow_type.value},
            )

        if steps:
            if workflow_type is WorkflowType.SIMPLE and len(steps) > 1:
                raise InvalidStepSequence("A simple workflow has exactly one step")
            definitions = [
                d if d.approver_name else d.model_copy(update={"approver_name": actor.name})
                for d in steps
            ]
        elif workflow_type is WorkflowType.SIMPLE:
            definitions = [
                StepDefinition(
                    step_number=1,
                    name=self._settings.default_step_name,
                    approver_type=ApproverType.CLIENT,
                    approver_name=actor.name,
                    is_required=True,
                )
            ]
        else:
            raise InvalidStepSequence(f"A {workflow_type.value} workflow needs explicit steps")

        validate_step_numbers(definitions)
        return definitions

    def _reset(
        self,
        session: Session,
        workflow: ApprovalWorkflow,
        *,
        force: bool,
        workflow_type: WorkflowType,
        step_count: int,
        guard: _Guard,
    ) -> WorkflowDefinedMetadata:
        """Discard the workflow's steps and put it back to pending at step 1."""

        previous = state_from_columns(workflow.status, workflow.current_step)
        if guard(previous, workflow.steps) and not force:
            raise RedefinitionRefused(
                "Workflow has recorded approvals; pass force to discard them",
                details={"status": previous.status.value},
            )

        discarded = len(workflow.steps)
        workflow.steps.clear()
        session.flush()

        self._compare_and_set(session, workflow, expected=previous, new=Pending(current_step=1))

        logger.warning(
            "Approval workflow reset; existing steps discarded",
            extra={
                "workflow_id": workflow.id,
                "previous_status": previous.status.value,
                "previous_current_step": current_step_of(previous),
                "discarded_steps": discarded,
                "forced": force,
            },
        )
        return WorkflowDefinedMetadata(
            workflow_type=workflow_type.value,
            step_count=step_count,
            previous_status=previous.status.value,
            previous_current_step=current_step_of(previous),
            discarded_steps=discarded,
            forced=force,
        )

    def _by_deliverable(
        self, session: Session, deliverable_id: str, *, lock: bool = False
    ) -> ApprovalWorkflow | None:
        stmt = select(ApprovalWorkflow).where(ApprovalWorkflow.deliverable_id == deliverable_id)
        if lock:
            stmt = stmt.with_for_update()
        return session.scalars(stmt).one_or_none()

    def _lock_workflow(self, session: Session, workflow_id: str) -> ApprovalWorkflow:
        stmt = select(ApprovalWorkflow).where(ApprovalWorkflow.id == workflow_id).with_for_update()
        workflow = session.scalars(stmt).one_or_none()
        if workflow is None:
            raise WorkflowNotFound(f"Workflow {workflow_id} not found")
        return workflow

    def _compare_and_set(
        self,
        session: Session,
        workflow: ApprovalWorkflow,
        *,
        expected: WorkflowState,
        new: WorkflowState,
    ) -> None:
        seen_status, seen_step = state_to_columns(expected)
        status, current = state_to_columns(new)
        current_clause = (
            ApprovalWorkflow.current_step.is_(None)
            if seen_step is None
            else ApprovalWorkflow.current_step == seen_step
        )
        result = session.execute(
            update(ApprovalWorkflow)
            .where(
                ApprovalWorkflow.id == workflow.id,
                ApprovalWorkflow.status == seen_status,
                current_clause,
            )
            .values(status=status, current_step=current, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StepOutOfOrder(
                "Workflow changed concurrently; re-fetch and try again",
                details={"workflow_id": workflow.id},
            )
        session.expire(workflow, ["status", "current_step", "updated_at"])

    def _hydrate(
        self, session: Session, workflow: ApprovalWorkflow, history_limit: int
    ) -> WorkflowView:
        session.flush()
        steps = sorted(workflow.steps, key=lambda s: s.step_number)
        signatures = SignatureStore(
            session, max_bytes=self._settings.signature_max_bytes
        ).list_for(workflow.id)
        history = HistoryLedger(session).recent_for(workflow.id, history_limit)
        return WorkflowView(
            id=workflow.id,
            deliverable_id=workflow.deliverable_id,
            workflow_type=workflow.workflow_type,
            status=workflow.status,
            current_step=workflow.current_step,
            created_at=workflow.created_at,
            updated_at=workflow.updated_at,
            steps=[StepView.model_validate(s) for s in steps],
            signatures=[SignatureView.model_validate(s) for s in signatures],
            history=[HistoryEntryView.model_validate(h) for h in history],
        )


_Guard = Callable[[WorkflowState, Sequence[ApprovalStep]], bool]


def _has_progress(state: WorkflowState, steps: Sequence[ApprovalStep]) -> bool:
    if state.status is not WorkflowStatus.PENDING:
        return True
    return any(s.status != StepStatus.PENDING.value for s in steps)


def _blocks_restart(state: WorkflowState, _steps: Sequence[ApprovalStep]) -> bool:
    return state.status in (WorkflowStatus.IN_PROGRESS, WorkflowStatus.APPROVED)


def _step_row(definition: StepDefinition) -> ApprovalStep:
    return ApprovalStep(
        step_number=definition.step_number,
        name=definition.name,
        description=definition.description,
        approver_type=definition.approver_type.value,
        approver_id=definition.approver_id,
        approver_name=definition.approver_name,
        is_required=definition.is_required,
        status=StepStatus.PENDING.value,
    )


def _step_definition(step: ApprovalStep) -> StepDefinition:
    return StepDefinition(
        step_number=step.step_number,
        name=step.name,
        description=step.description,
        approver_type=ApproverType(step.approver_type),
        approver_id=step.approver_id,
        approver_name=step.approver_name,
        is_required=step.is_required,
    )
