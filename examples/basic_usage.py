#!/usr/bin/env python3
"""Programmatic approval example.

This demonstrates using the engine components directly, without the REST API:

* load settings from `.env`
* create the schema and a demo portal with one deliverable
* define a two-step workflow and walk it to approval, signing along the way
"""

from __future__ import annotations

import argparse
import json
from typing import Sequence

from deliverable_approval.config import ApprovalSettings
from deliverable_approval.db.base import new_id
from deliverable_approval.db.models import ClientDeliverable, ClientPortal
from deliverable_approval.db.session import build_engine, build_session_factory, init_db
from deliverable_approval.engine.controller import WorkflowController
from deliverable_approval.engine.errors import ApprovalError
from deliverable_approval.engine.models import (
    Actor,
    RequestContext,
    SignatureMethod,
    StepDefinition,
    WorkflowType,
)
from deliverable_approval.engine.state_machine import StepAction
from deliverable_approval.logging import configure_logging


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Walk a demo deliverable through approval.")
    parser.add_argument("--client", default="Acme Corp", help="Client display name")
    parser.add_argument("--title", default="Homepage mockup", help="Deliverable title")
    parser.add_argument(
        "--signature",
        default="",
        help="Typed signature to attach to the final step (optional)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = ApprovalSettings()
    configure_logging(settings.log_level)

    engine = build_engine(settings)
    init_db(engine)
    sessions = build_session_factory(engine)

    with sessions.begin() as session:
        token = f"demo-{new_id()}"
        portal = ClientPortal(token=token, client_name=args.client)
        session.add(portal)
        session.flush()
        deliverable = ClientDeliverable(portal_id=portal.id, title=args.title)
        session.add(deliverable)
        session.flush()
        deliverable_id = deliverable.id

    controller = WorkflowController(sessions, settings)
    client = Actor(actor_type="client", name=args.client)

    try:
        view = controller.create_or_replace_workflow(
            deliverable_id=deliverable_id,
            workflow_type=WorkflowType.MULTI_STEP,
            actor=client,
            steps=[
                StepDefinition(step_number=1, name="Design review"),
                StepDefinition(step_number=2, name="Final sign-off"),
            ],
        )
        for step in view.steps:
            view = controller.act_on_step(
                workflow_id=view.id, step_id=step.id, action=StepAction.APPROVE, actor=client
            )
        if args.signature:
            view = controller.attach_signature(
                workflow_id=view.id,
                step_id=view.steps[-1].id,
                signature_data=args.signature,
                signature_method=SignatureMethod.TYPE,
                actor=client,
                context=RequestContext(user_agent="examples/basic_usage.py"),
            )
    except ApprovalError as exc:
        print(f"Approval failed: {exc.message}")
        return 1
    finally:
        engine.dispose()

    print(f"Workflow {view.id} is {view.status}")
    print(json.dumps([h.model_dump(mode="json") for h in view.history], indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
