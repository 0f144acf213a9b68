"""Portal-facing approval API.

All routes are mounted under `/api`. Endpoints are thin wrappers over
`WorkflowController`; engine errors are turned into responses by the
`ApprovalError` handler registered in the app factory.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from sqlalchemy.orm import Session, sessionmaker

from deliverable_approval import __version__
from deliverable_approval.engine.controller import WorkflowController
from deliverable_approval.server.models import (
    ApiWorkflow,
    CreateWorkflowRequest,
    RestartRequest,
    SignatureRequest,
    StepActionRequest,
)
from deliverable_approval.server.portal import request_context, resolve_portal_actor

router = APIRouter()

_BASE = "/portal/{token}/deliverables/{deliverable_id}/approval"


def _controller(request: Request) -> WorkflowController:
    controller = getattr(request.app.state, "controller", None)
    if not isinstance(controller, WorkflowController):
        # This should never happen for the real app, but keeps the API fail-fast.
        raise HTTPException(status_code=500, detail="Workflow controller not configured")
    return controller


def _sessions(request: Request) -> sessionmaker[Session]:
    return request.app.state.sessions


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "version": __version__}


@router.get(_BASE, response_model=ApiWorkflow | None)
def get_approval(request: Request, token: str, deliverable_id: str) -> ApiWorkflow | None:
    resolve_portal_actor(_sessions(request), token=token, deliverable_id=deliverable_id)
    view = _controller(request).get_workflow(deliverable_id)
    return ApiWorkflow.from_view(view) if view is not None else None


@router.post(_BASE, response_model=ApiWorkflow)
def create_approval(
    request: Request, token: str, deliverable_id: str, payload: CreateWorkflowRequest
) -> ApiWorkflow:
    actor = resolve_portal_actor(_sessions(request), token=token, deliverable_id=deliverable_id)
    view = _controller(request).create_or_replace_workflow(
        deliverable_id=deliverable_id,
        workflow_type=payload.workflowType,
        actor=actor,
        steps=[s.to_definition() for s in payload.steps] if payload.steps else None,
        force=payload.force,
    )
    return ApiWorkflow.from_view(view)


@router.post(f"{_BASE}/actions", response_model=ApiWorkflow)
def act_on_step(
    request: Request, token: str, deliverable_id: str, payload: StepActionRequest
) -> ApiWorkflow:
    actor = resolve_portal_actor(_sessions(request), token=token, deliverable_id=deliverable_id)
    controller = _controller(request)
    workflow_id = controller.find_workflow_id(deliverable_id)
    view = controller.act_on_step(
        workflow_id=workflow_id,
        step_id=payload.stepId,
        action=payload.action,
        actor=actor,
        comments=payload.comments,
    )
    return ApiWorkflow.from_view(view)


@router.post(f"{_BASE}/signatures", response_model=ApiWorkflow)
def add_signature(
    request: Request, token: str, deliverable_id: str, payload: SignatureRequest
) -> ApiWorkflow:
    actor = resolve_portal_actor(_sessions(request), token=token, deliverable_id=deliverable_id)
    controller = _controller(request)
    workflow_id = controller.find_workflow_id(deliverable_id)
    view = controller.attach_signature(
        workflow_id=workflow_id,
        step_id=payload.stepId,
        signature_data=payload.signatureData,
        signature_method=payload.signatureMethod,
        actor=actor,
        context=request_context(request),
    )
    return ApiWorkflow.from_view(view)


@router.post(f"{_BASE}/restart", response_model=ApiWorkflow)
def restart_approval(
    request: Request, token: str, deliverable_id: str, payload: RestartRequest | None = None
) -> ApiWorkflow:
    actor = resolve_portal_actor(_sessions(request), token=token, deliverable_id=deliverable_id)
    view = _controller(request).restart_workflow(
        deliverable_id=deliverable_id,
        actor=actor,
        force=payload.force if payload is not None else False,
    )
    return ApiWorkflow.from_view(view)
